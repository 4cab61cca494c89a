"""
Text-to-Speech Service using edge-tts neural voices.
Supports streaming audio synthesis for low-latency output.
"""

import asyncio
import logging
import re
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Optional

from kuber.config import get_settings, EDGE_TTS_VOICES
from kuber.core.exceptions import TTSException, TTSUnsupportedLanguageException

logger = logging.getLogger(__name__)
settings = get_settings()


@dataclass
class VoiceInfo:
    """A synthesis voice offered by the engine."""
    name: str
    locale: str
    gender: Optional[str] = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {"name": self.name, "locale": self.locale, "gender": self.gender}


def rate_to_percent(rate: float) -> str:
    """0.9 -> '-10%'"""
    return f"{round((rate - 1.0) * 100):+d}%"


def pitch_to_hz(pitch: float) -> str:
    """Relative pitch multiplier to an edge-tts Hz offset."""
    return f"{round((pitch - 1.0) * 50):+d}Hz"


class TTSService:
    """
    Text-to-Speech service using Microsoft Edge neural voices.

    Supports:
    - Streaming synthesis for low latency
    - Indian locales (hi-IN, en-IN, ta-IN, te-IN, bn-IN, mr-IN, gu-IN)
    - Rate and pitch control
    - Voice listing for locale matching
    """

    def __init__(self):
        self._edge_tts = None
        self._is_initialized = False
        self._voices: List[VoiceInfo] = []

    @property
    def is_available(self) -> bool:
        return self._is_initialized

    async def initialize(self):
        """Initialize edge-tts."""
        try:
            logger.info("Initializing TTS service...")

            import edge_tts

            self._edge_tts = edge_tts
            self._is_initialized = True
            logger.info("TTS service initialized successfully")

        except ImportError:
            logger.error("edge-tts not installed, server-side speech disabled")
            self._is_initialized = False

    async def list_voices(self) -> List[VoiceInfo]:
        """Voices offered by the service, cached after the first call."""
        if not self._is_initialized:
            return []
        if not self._voices:
            try:
                raw = await self._edge_tts.list_voices()
                self._voices = [
                    VoiceInfo(name=v["ShortName"], locale=v["Locale"], gender=v.get("Gender"))
                    for v in raw
                ]
            except Exception as e:
                logger.warning(f"Could not list voices: {e}")
                return [VoiceInfo(name=name, locale=locale) for locale, name in EDGE_TTS_VOICES.items()]
        return self._voices

    def default_voice(self, locale: str) -> str:
        if locale not in EDGE_TTS_VOICES:
            raise TTSUnsupportedLanguageException(locale, list(EDGE_TTS_VOICES))
        return EDGE_TTS_VOICES[locale]

    async def synthesize(
        self,
        text: str,
        locale: str = "hi-IN",
        rate: float = 1.0,
        pitch: float = 1.0,
        voice: Optional[str] = None
    ) -> bytes:
        """
        Synthesize speech from text.

        Args:
            text: Text to synthesize
            locale: BCP-47 locale (hi-IN, en-IN, ...)
            rate: Speaking rate multiplier
            pitch: Pitch multiplier
            voice: Optional voice short name

        Returns:
            MP3 audio bytes
        """
        audio = b""
        async for chunk in self.synthesize_streaming(text, locale, rate, pitch, voice):
            audio += chunk
        return audio

    async def synthesize_streaming(
        self,
        text: str,
        locale: str = "hi-IN",
        rate: float = 1.0,
        pitch: float = 1.0,
        voice: Optional[str] = None
    ) -> AsyncIterator[bytes]:
        """
        Stream synthesized audio sentence by sentence.
        Enables playback to start before full synthesis completes.
        """
        if not text.strip():
            return

        if not self._is_initialized:
            raise TTSException("TTS engine is not available")

        voice = voice or self.default_voice(locale)

        try:
            for sentence in self._split_into_sentences(text):
                communicate = self._edge_tts.Communicate(
                    sentence,
                    voice,
                    rate=rate_to_percent(rate),
                    pitch=pitch_to_hz(pitch)
                )
                stream = communicate.stream()
                while True:
                    try:
                        chunk = await asyncio.wait_for(
                            stream.__anext__(),
                            timeout=settings.TTS_TIMEOUT_SECONDS
                        )
                    except StopAsyncIteration:
                        break
                    if chunk["type"] == "audio":
                        yield chunk["data"]

        except asyncio.TimeoutError:
            raise TTSException(f"TTS timed out after {settings.TTS_TIMEOUT_SECONDS} seconds")
        except TTSException:
            raise
        except Exception as e:
            logger.error(f"TTS streaming error: {e}")
            raise TTSException(f"TTS streaming failed: {e}")

    def _split_into_sentences(self, text: str) -> List[str]:
        """Split text into sentences for streaming."""
        # Include Hindi danda (।)
        sentences = re.split(r'(?<=[.!?।])\s+', text)

        return [s.strip() for s in sentences if s.strip()]

    async def cleanup(self):
        """Cleanup resources."""
        self._edge_tts = None
        self._voices = []
        self._is_initialized = False
        logger.info("TTS service cleaned up")
