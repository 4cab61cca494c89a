"""
Device capabilities reached over the client connection.

Voice capture/synthesis and the camera either run on the shopkeeper's
device (we only send commands and receive events) or, for voice, on
the server with the STT and TTS services. The variant is chosen once
per connection.
"""

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

from kuber.config import get_settings
from kuber.core.exceptions import STTException, STTNoAudioException, TTSException
from kuber.core.voice import TranscriptFragment, VoiceCapability
from kuber.services.stt import STTService
from kuber.services.tts import TTSService, VoiceInfo

logger = logging.getLogger(__name__)
settings = get_settings()

SendJson = Callable[[Dict[str, Any]], Awaitable[None]]
SendBytes = Callable[[bytes], Awaitable[None]]


class ClientVoiceCapability(VoiceCapability):
    """Recognition and synthesis run on the client; we relay commands."""

    def __init__(
        self,
        send_json: SendJson,
        recognition: bool = True,
        voices: Optional[List[VoiceInfo]] = None
    ):
        self._send = send_json
        self._recognition = recognition
        self._voices = voices or []

    def update_capabilities(self, data: Dict[str, Any]):
        """Apply a 'capabilities' message from the client."""
        self._recognition = bool(data.get("speech_recognition", self._recognition))
        voices = data.get("voices")
        if voices is not None:
            self._voices = [
                VoiceInfo(name=v.get("name", ""), locale=v.get("lang") or v.get("locale", ""))
                for v in voices
                if isinstance(v, dict)
            ]

    def is_available(self) -> bool:
        return self._recognition

    async def start(self, locale: str):
        await self._send({"type": "listen_start", "locale": locale})

    async def stop(self):
        await self._send({"type": "listen_stop"})

    async def speak(self, text, locale, rate, pitch, voice, utterance_id):
        await self._send({
            "type": "speak",
            "id": utterance_id,
            "text": text,
            "locale": locale,
            "rate": rate,
            "pitch": pitch,
            "voice": voice,
        })

    async def cancel_speech(self):
        await self._send({"type": "speak_cancel"})

    async def list_voices(self) -> List[VoiceInfo]:
        return list(self._voices)


class ServerVoiceCapability(VoiceCapability):
    """
    Recognition with STTService and synthesis with TTSService.

    The client streams 16 kHz PCM while capture is on and marks the end
    of each speech segment; synthesized audio is streamed back as binary
    frames between speak_start and speak_end messages.
    """

    def __init__(
        self,
        send_json: SendJson,
        send_bytes: SendBytes,
        stt: STTService,
        tts: TTSService,
        language: Optional[str] = None
    ):
        self._send_json = send_json
        self._send_bytes = send_bytes
        self._stt = stt
        self._tts = tts
        self._language = language or settings.DEFAULT_LANGUAGE
        self._capturing = False
        self._buffer = bytearray()
        self._speech_task: Optional[asyncio.Task] = None

    def is_available(self) -> bool:
        return self._stt.is_available and self._tts.is_available

    async def start(self, locale: str):
        self._buffer.clear()
        self._capturing = True
        await self._send_json({"type": "listen_start", "locale": locale})

    async def stop(self):
        self._capturing = False
        self._buffer.clear()
        await self._send_json({"type": "listen_stop"})

    def feed_audio(self, chunk: bytes):
        if self._capturing:
            self._buffer.extend(chunk)

    async def end_segment(self):
        """Transcribe the buffered segment and report it to the session."""
        if not self._capturing or self.session is None:
            return

        audio = bytes(self._buffer)
        self._buffer.clear()

        try:
            result = await self._stt.transcribe(audio, language_hint=self._language)
        except STTNoAudioException:
            await self.session.on_capture_error("no-speech")
            return
        except STTException as e:
            logger.error(f"Server transcription failed: {e.message}")
            await self.session.on_capture_error("stt-failed")
            return

        if not result.text:
            await self.session.on_capture_error("no-speech")
            return

        await self.session.on_result([
            TranscriptFragment(text=result.text, is_final=True, confidence=result.confidence)
        ])

    async def speak(self, text, locale, rate, pitch, voice, utterance_id):
        await self.cancel_speech()
        self._speech_task = asyncio.create_task(
            self._stream_speech(text, locale, rate, pitch, voice, utterance_id)
        )

    async def _stream_speech(self, text, locale, rate, pitch, voice, utterance_id):
        session = self.session
        try:
            await self._send_json({"type": "speak_start", "id": utterance_id, "text": text})
            if session is not None:
                await session.on_speech_start(utterance_id)

            async for chunk in self._tts.synthesize_streaming(text, locale, rate, pitch, voice):
                await self._send_bytes(chunk)

            await self._send_json({"type": "speak_end", "id": utterance_id})
        except asyncio.CancelledError:
            raise
        except TTSException as e:
            logger.error(f"Server synthesis failed: {e.message}")
            if session is not None:
                await session.on_speech_error(e.message, utterance_id)
            return

        if session is not None:
            await session.on_speech_end(utterance_id)

    async def cancel_speech(self):
        task = self._speech_task
        self._speech_task = None
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
            await self._send_json({"type": "speak_cancel"})

    async def list_voices(self) -> List[VoiceInfo]:
        return await self._tts.list_voices()

    async def close(self):
        await self.cancel_speech()
        self._capturing = False
        self._buffer.clear()


def create_voice_capability(
    mode: str,
    send_json: SendJson,
    send_bytes: Optional[SendBytes] = None,
    stt: Optional[STTService] = None,
    tts: Optional[TTSService] = None,
    language: Optional[str] = None
) -> VoiceCapability:
    """Pick the capability variant for a connection."""
    if mode == "server":
        if send_bytes is None or stt is None or tts is None:
            raise ValueError("server voice mode needs send_bytes, stt and tts")
        return ServerVoiceCapability(send_json, send_bytes, stt, tts, language)
    return ClientVoiceCapability(send_json)


class ImageSource(ABC):
    """Somewhere a parchi photo can come from."""

    @abstractmethod
    async def capture(self) -> Optional[str]:
        """Return an image data URL, or None if the user cancelled."""


class ClientCameraSource(ImageSource):
    """Asks the client to open its camera and waits for the photo."""

    def __init__(self, send_json: SendJson, timeout: float = 120.0):
        self._send = send_json
        self._timeout = timeout
        self._pending: Optional[asyncio.Future] = None

    async def capture(self) -> Optional[str]:
        loop = asyncio.get_running_loop()
        if self._pending is not None and not self._pending.done():
            self._pending.cancel()
        self._pending = loop.create_future()

        await self._send({"type": "capture_image"})
        try:
            return await asyncio.wait_for(self._pending, timeout=self._timeout)
        except asyncio.TimeoutError:
            logger.info("Camera capture timed out")
            return None
        finally:
            self._pending = None

    def deliver(self, image_data_url: Optional[str]):
        """Called when the client sends the photo (or None on cancel)."""
        if self._pending is not None and not self._pending.done():
            self._pending.set_result(image_data_url)
