"""
Voice interaction state machine.

One VoiceSession per conversation drives a VoiceCapability (capture and
synthesis, on the client device or on the server) through
listen -> transcribe -> commit -> speak -> resume, with barge-in.

Final fragments accumulate until the speaker has been silent for the
commit debounce; the accumulated text is then handed to on_commit.
Capture and speech are each "last starter wins": a new start cancels
the previous holder before it is issued.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional

from kuber.config import get_settings, LOCALE_CODES
from kuber.core.text import clean_for_speech
from kuber.services.tts import VoiceInfo

logger = logging.getLogger(__name__)
settings = get_settings()

SURFACED_ERRORS = {
    "not-allowed": "Microphone access denied.",
    "permission-denied": "Microphone access denied.",
    "service-not-allowed": "Microphone access denied.",
    "network": "Network error. Check your connection.",
}


def locale_for(language: str) -> str:
    """Recognition/synthesis locale for a session language."""
    return LOCALE_CODES.get(language, LOCALE_CODES.get(settings.DEFAULT_LANGUAGE, "hi-IN"))


class VoicePhase(str, Enum):
    IDLE = "idle"
    LISTENING = "listening"
    THINKING = "thinking"
    SPEAKING = "speaking"


@dataclass
class VoiceState:
    """Snapshot handed to subscribers."""
    is_listening: bool = False
    is_speaking: bool = False
    transcript: str = ""
    confidence: float = 0.0
    error: Optional[str] = None
    phase: VoicePhase = VoicePhase.IDLE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_listening": self.is_listening,
            "is_speaking": self.is_speaking,
            "transcript": self.transcript,
            "confidence": self.confidence,
            "error": self.error,
            "phase": self.phase.value,
        }


@dataclass
class TranscriptFragment:
    """One recognition result, interim or final."""
    text: str
    is_final: bool = False
    confidence: float = 0.0

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TranscriptFragment":
        return cls(
            text=str(data.get("text", "")),
            is_final=bool(data.get("is_final", False)),
            confidence=float(data.get("confidence") or 0.0),
        )


@dataclass
class VoiceConfig:
    language: str = field(default_factory=lambda: settings.DEFAULT_LANGUAGE)
    continuous: bool = True
    enable_barge_in: bool = True
    voice_rate: float = field(default_factory=lambda: settings.VOICE_RATE)
    voice_pitch: float = field(default_factory=lambda: settings.VOICE_PITCH)
    commit_debounce_seconds: float = field(
        default_factory=lambda: settings.VOICE_COMMIT_DEBOUNCE_MS / 1000
    )
    resume_delay_seconds: float = field(
        default_factory=lambda: settings.VOICE_RESUME_DELAY_MS / 1000
    )


class VoiceCapability(ABC):
    """
    Speech capture and synthesis backend.

    Implementations report what happens back to the session they are
    bound to (on_result, on_capture_end, on_capture_error,
    on_speech_start, on_speech_end, on_speech_error).
    """

    session: Optional["VoiceSession"] = None

    def bind(self, session: "VoiceSession"):
        self.session = session

    @abstractmethod
    def is_available(self) -> bool:
        ...

    @abstractmethod
    async def start(self, locale: str):
        ...

    @abstractmethod
    async def stop(self):
        ...

    @abstractmethod
    async def speak(
        self,
        text: str,
        locale: str,
        rate: float,
        pitch: float,
        voice: Optional[str],
        utterance_id: int
    ):
        ...

    @abstractmethod
    async def cancel_speech(self):
        ...

    async def list_voices(self) -> List[VoiceInfo]:
        return []

    async def close(self):
        pass


StateCallback = Callable[[VoiceState], Any]
CommitCallback = Callable[[str], Awaitable[Any]]


class VoiceSession:
    """
    Listening/speaking controller for one conversation.

    The sleep function is injectable so timer behaviour can be driven
    by a fake clock.
    """

    def __init__(
        self,
        capability: VoiceCapability,
        config: Optional[VoiceConfig] = None,
        on_commit: Optional[CommitCallback] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ):
        self.capability = capability
        self.config = config or VoiceConfig()
        self.on_commit = on_commit
        self._sleep = sleep

        self._state = VoiceState()
        self._listeners: List[StateCallback] = []
        self._active = False
        self._final_parts: List[str] = []

        self._commit_task: Optional[asyncio.Task] = None
        self._resume_task: Optional[asyncio.Task] = None
        self._dispatch_tasks: set = set()
        self._utterance_id = 0
        self._closed = False

        capability.bind(self)

    # =========================
    # State and subscribers
    # =========================

    @property
    def state(self) -> VoiceState:
        return replace(self._state)

    @property
    def is_active(self) -> bool:
        return self._active

    @property
    def locale(self) -> str:
        return locale_for(self.config.language)

    def subscribe(self, callback: StateCallback) -> Callable[[], None]:
        """Register a state listener. Returns the matching unsubscribe."""
        self._listeners.append(callback)
        callback(self.state)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _set_state(self, **changes):
        old_phase = self._state.phase
        self._state = replace(self._state, **changes)
        if self._state.phase != old_phase:
            logger.debug(f"Voice phase {old_phase.value} -> {self._state.phase.value}")
        snapshot = self.state
        for callback in list(self._listeners):
            try:
                callback(snapshot)
            except Exception as e:
                logger.error(f"Voice state listener failed: {e}")

    def _idle_phase(self) -> VoicePhase:
        if self._state.is_speaking:
            return VoicePhase.SPEAKING
        return VoicePhase.LISTENING if self._state.is_listening else VoicePhase.IDLE

    def set_language(self, language: str):
        self.config = replace(self.config, language=language)

    # =========================
    # Listening
    # =========================

    async def start_listening(self) -> bool:
        """Begin (or resume) capture. Speech in progress is cancelled first."""
        if not self.capability.is_available():
            logger.warning("Speech capture not available, ignoring start")
            return False

        self._active = True
        self._cancel_resume()
        if self._state.is_speaking:
            await self._cancel_speech()
        return await self._start_capture()

    async def _start_capture(self) -> bool:
        try:
            await self.capability.start(self.locale)
        except Exception as e:
            logger.error(f"Failed to start listening: {e}")
            self._active = False
            self._set_state(is_listening=False, error="Failed to start listening", phase=self._idle_phase())
            return False

        self._set_state(is_listening=True, error=None, phase=VoicePhase.LISTENING)
        return True

    async def stop_listening(self):
        """Stop capture. Interim and uncommitted text is discarded."""
        self._active = False
        self._cancel_resume()
        self._cancel_commit()
        self._final_parts.clear()

        try:
            await self.capability.stop()
        except Exception as e:
            logger.warning(f"Error stopping capture: {e}")

        self._set_state(is_listening=False, transcript="", confidence=0.0)
        self._set_state(phase=self._idle_phase())

    async def on_result(self, fragments: List[TranscriptFragment]):
        """Recognition results from the capability."""
        if self._state.is_speaking and self.config.enable_barge_in:
            logger.info("Barge-in detected, cancelling speech")
            await self._cancel_speech()

        finals = [f for f in fragments if f.is_final and f.text.strip()]
        interim = " ".join(f.text.strip() for f in fragments if not f.is_final and f.text.strip())

        if finals:
            self._final_parts.extend(f.text.strip() for f in finals)
            self._set_state(
                transcript=" ".join(self._final_parts),
                confidence=max(f.confidence for f in finals)
            )
            self._schedule_commit()
        elif interim:
            self._set_state(transcript=" ".join(self._final_parts + [interim]))

    async def on_capture_end(self):
        """Capture stopped on its own (silence timeout, engine end)."""
        self._set_state(is_listening=False)
        self._set_state(phase=self._idle_phase())
        if self._active and self.config.continuous and not self._state.is_speaking:
            self._schedule_resume()

    async def on_capture_error(self, code: str):
        logger.info(f"Capture error: {code}")

        if code == "no-speech":
            if self._active:
                self._schedule_resume()
            return
        if code == "aborted":
            return

        message = SURFACED_ERRORS.get(code, f"Voice error: {code}")
        self._active = False
        self._cancel_resume()
        self._set_state(is_listening=False, error=message)
        self._set_state(phase=self._idle_phase())

    def _schedule_commit(self):
        self._cancel_commit()
        self._commit_task = asyncio.create_task(self._commit_after_silence())

    def _cancel_commit(self):
        if self._commit_task and not self._commit_task.done():
            self._commit_task.cancel()
        self._commit_task = None

    async def _commit_after_silence(self):
        try:
            await self._sleep(self.config.commit_debounce_seconds)
        except asyncio.CancelledError:
            return

        self._commit_task = None
        text = " ".join(self._final_parts).strip()
        self._final_parts.clear()
        if not text:
            return

        logger.info(f"Committing transcript: {text}")
        self._set_state(transcript="", phase=VoicePhase.THINKING)
        if self.on_commit is not None:
            task = asyncio.create_task(self._dispatch(text))
            self._dispatch_tasks.add(task)
            task.add_done_callback(self._dispatch_tasks.discard)

    async def _dispatch(self, text: str):
        try:
            result = self.on_commit(text)
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Commit handler failed: {e}")
        finally:
            if self._state.phase == VoicePhase.THINKING:
                self._set_state(phase=self._idle_phase())

    # =========================
    # Speaking
    # =========================

    async def speak(self, text: str) -> bool:
        """Speak text with control tokens removed. Replaces any utterance in flight."""
        spoken = clean_for_speech(text)
        if not spoken or self._closed:
            return False

        if self._state.is_speaking:
            await self._cancel_speech()

        self._utterance_id += 1
        utterance_id = self._utterance_id
        locale = self.locale
        voice = await self._choose_voice(locale)

        self._set_state(is_speaking=True, phase=VoicePhase.SPEAKING)
        try:
            await self.capability.speak(
                spoken,
                locale,
                self.config.voice_rate,
                self.config.voice_pitch,
                voice,
                utterance_id
            )
        except Exception as e:
            logger.error(f"Speech synthesis error: {e}")
            await self.on_speech_error(str(e), utterance_id)
            return False
        return True

    async def stop_speaking(self):
        if self._state.is_speaking:
            await self._cancel_speech()

    async def _cancel_speech(self):
        try:
            await self.capability.cancel_speech()
        except Exception as e:
            logger.warning(f"Error cancelling speech: {e}")
        self._set_state(is_speaking=False)
        self._set_state(phase=self._idle_phase())

    async def on_speech_start(self, utterance_id: Optional[int] = None):
        if utterance_id is not None and utterance_id != self._utterance_id:
            return
        if not self._state.is_speaking:
            self._set_state(is_speaking=True, phase=VoicePhase.SPEAKING)

    async def on_speech_end(self, utterance_id: Optional[int] = None):
        """Utterance finished. Listening resumes after the resume delay."""
        if utterance_id is not None and utterance_id != self._utterance_id:
            return
        if not self._state.is_speaking:
            return

        self._set_state(is_speaking=False)
        self._set_state(phase=self._idle_phase())
        if self.config.continuous and self._active:
            self._schedule_resume()

    async def on_speech_error(self, message: str, utterance_id: Optional[int] = None):
        logger.warning(f"Speech error: {message}")
        await self.on_speech_end(utterance_id)

    async def _choose_voice(self, locale: str) -> Optional[str]:
        try:
            voices = await self.capability.list_voices()
        except Exception as e:
            logger.debug(f"Voice listing failed: {e}")
            return None
        return choose_voice(voices, locale)

    # =========================
    # Resume
    # =========================

    def _schedule_resume(self):
        self._cancel_resume()
        self._resume_task = asyncio.create_task(self._resume_after_delay())

    def _cancel_resume(self):
        if self._resume_task and not self._resume_task.done():
            self._resume_task.cancel()
        self._resume_task = None

    async def _resume_after_delay(self):
        try:
            await self._sleep(self.config.resume_delay_seconds)
        except asyncio.CancelledError:
            return

        self._resume_task = None
        if self._active and not self._state.is_speaking and not self._state.is_listening:
            logger.debug("Resuming listening")
            await self._start_capture()

    # =========================
    # Teardown
    # =========================

    async def close(self):
        """Cancel timers, speech and capture; drop subscribers."""
        self._closed = True
        self._active = False
        self._cancel_commit()
        self._cancel_resume()
        for task in list(self._dispatch_tasks):
            task.cancel()
        self._final_parts.clear()

        if self._state.is_speaking:
            await self._cancel_speech()
        if self._state.is_listening:
            try:
                await self.capability.stop()
            except Exception as e:
                logger.warning(f"Error stopping capture: {e}")

        await self.capability.close()
        self._listeners.clear()


def choose_voice(voices: List[VoiceInfo], locale: str) -> Optional[str]:
    """Exact locale first, then any Indian voice."""
    for voice in voices:
        if voice.locale.lower() == locale.lower():
            return voice.name
    for voice in voices:
        if voice.locale.startswith("hi") or voice.locale == "en-IN" or "India" in voice.name:
            return voice.name
    return None
