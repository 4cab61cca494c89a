"""
Pipeline Orchestrator for the voice assistant.
Connects a VoiceSession to a ConversationSession:
committed speech -> turn -> spoken reply -> listening resumes.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set
import logging

from kuber.config import get_settings
from kuber.core.session import ConversationSession, Message
from kuber.core.text import extract_triggers
from kuber.core.voice import VoiceSession
from kuber.logging.agent_logger import AgentLogger

logger = logging.getLogger(__name__)
settings = get_settings()

SendJson = Callable[[Dict[str, Any]], Awaitable[None]]

LOW_CONFIDENCE_RESPONSES = {
    "en": "I didn't catch that clearly. Could you please repeat?",
    "hi": "मैं स्पष्ट रूप से नहीं सुन पाया। क्या आप दोहरा सकते हैं?",
    "hinglish": "Theek se sunayi nahi diya. Ek baar phir boliye?",
}

BUSY_RESPONSES = {
    "en": "One moment, I'm still working on your last request.",
    "hi": "एक पल रुकिए, पिछला काम चल रहा है।",
    "hinglish": "Ek second, pichla kaam chal raha hai.",
}


@dataclass
class PipelineMetrics:
    """Timings for a single turn."""
    start_time: float = field(default_factory=time.time)
    commit_wait_ms: Optional[float] = None
    action_start: Optional[float] = None
    action_end: Optional[float] = None
    speech_start: Optional[float] = None

    @property
    def action_latency_ms(self) -> Optional[float]:
        if self.action_start and self.action_end:
            return (self.action_end - self.action_start) * 1000
        return None

    @property
    def speech_start_ms(self) -> Optional[float]:
        """Commit to speak command."""
        if self.speech_start:
            return (self.speech_start - self.start_time) * 1000
        return None

    @property
    def total_latency_ms(self) -> float:
        end = self.speech_start or self.action_end or time.time()
        return (end - self.start_time) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "commit_wait_ms": self.commit_wait_ms,
            "action_latency_ms": self.action_latency_ms,
            "speech_start_ms": self.speech_start_ms,
            "total_latency_ms": self.total_latency_ms
        }


@dataclass
class PipelineResult:
    """Result of one turn."""
    session_id: str
    user_text: str
    agent_text: Optional[str]
    intent: Optional[str]
    language: Optional[str]
    metrics: PipelineMetrics
    triggers: List[str] = field(default_factory=list)
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "user_text": self.user_text,
            "agent_text": self.agent_text,
            "intent": self.intent,
            "language": self.language,
            "triggers": self.triggers,
            "error": self.error,
            "metrics": self.metrics.to_dict()
        }


class PipelineOrchestrator:
    """
    Runs turns for one connection.

    Every assistant message the conversation appends is spoken, including
    ones that arrive after the turn (parchi scan results). Optional
    send_json mirrors messages to the client.
    """

    def __init__(
        self,
        session: ConversationSession,
        voice: VoiceSession,
        agent_logger: Optional[AgentLogger] = None,
        send_json: Optional[SendJson] = None
    ):
        self.session = session
        self.voice = voice
        self.logger = agent_logger
        self._send_json = send_json
        self._tasks: Set[asyncio.Task] = set()
        self._metrics: Optional[PipelineMetrics] = None

        voice.on_commit = self.handle_transcript
        self._unsubscribe = session.subscribe(self._on_assistant_message)

    async def handle_transcript(self, text: str) -> Optional[PipelineResult]:
        """Committed speech from the voice session."""
        confidence = self.voice.state.confidence
        metrics = PipelineMetrics(commit_wait_ms=self.voice.config.commit_debounce_seconds * 1000)

        if self.logger:
            await self.logger.log_transcript(self.session.session_id, text, confidence, source="voice")

        if 0 < confidence < settings.STT_CONFIDENCE_THRESHOLD:
            logger.info(f"Low transcript confidence {confidence:.2f}, asking to repeat")
            await self.voice.speak(self._response_for(LOW_CONFIDENCE_RESPONSES))
            return None

        return await self._run_turn(text, metrics)

    async def handle_text(self, text: str) -> Optional[PipelineResult]:
        """Typed command from the client."""
        if self.logger:
            await self.logger.log_transcript(self.session.session_id, text, source="text")
        return await self._run_turn(text, PipelineMetrics())

    async def _run_turn(self, text: str, metrics: PipelineMetrics) -> Optional[PipelineResult]:
        if self.session.is_thinking:
            await self.voice.speak(self._response_for(BUSY_RESPONSES))
            return None

        await self._notify({"type": "message", "message": {"role": "user", "content": text}})

        self._metrics = metrics
        metrics.action_start = time.time()
        try:
            message = await self.session.send_message(text)
        except Exception as e:
            logger.exception(f"Pipeline error: {e}")
            if self.logger:
                await self.logger.log_error(self.session.session_id, "pipeline_error", str(e))
            message = None
        finally:
            metrics.action_end = time.time()
            self._metrics = None

        intent = self.session.context.last_intent
        result = PipelineResult(
            session_id=self.session.session_id,
            user_text=text,
            agent_text=message.content if message else None,
            intent=intent.value if intent else None,
            language=self.session.selected_language,
            metrics=metrics,
            triggers=extract_triggers(message.content) if message else [],
            error=self.session.error,
        )

        if message is None:
            if self.session.error:
                await self._notify({"type": "error", "message": self.session.error})
                await self.voice.speak(self.session.error)
            return result

        if self.logger:
            await self.logger.log_turn_complete(
                self.session.session_id,
                text,
                message.content,
                self.session.selected_language,
                result.intent or "unknown",
                metrics.to_dict()
            )

        logger.info(f"Turn completed in {metrics.total_latency_ms:.0f}ms ({result.intent})")
        return result

    def _on_assistant_message(self, message: Message):
        if self._metrics is not None and self._metrics.speech_start is None:
            self._metrics.speech_start = time.time()

        task = asyncio.create_task(self._deliver(message))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _deliver(self, message: Message):
        try:
            await self._notify({
                "type": "message",
                "message": message.to_dict(),
                "triggers": extract_triggers(message.content)
            })
            await self.voice.speak(message.content)
        except Exception as e:
            logger.error(f"Failed to deliver assistant message: {e}")

    async def _notify(self, payload: Dict[str, Any]):
        if self._send_json is None:
            return
        try:
            await self._send_json(payload)
        except Exception as e:
            logger.warning(f"Could not send {payload.get('type')} to client: {e}")

    def _response_for(self, responses: Dict[str, str]) -> str:
        return responses.get(self.session.selected_language or "", responses["hinglish"])

    async def drain(self):
        """Wait for queued message deliveries."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def close(self):
        self._unsubscribe()
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        self._tasks.clear()
