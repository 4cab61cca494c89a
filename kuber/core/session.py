"""
Conversation Sessions.
Message history, model choice and turn handling for one shopkeeper,
plus the registry of live sessions.
"""

import asyncio
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional
from uuid import uuid4

from kuber.config import get_settings, GREETINGS
from kuber.core.exceptions import (
    LLMException,
    LLMNotConfiguredException,
    ParchiExtractionException,
    SessionException
)
from kuber.core.intent import Intent, IntentResult, detect_intent, get_intent_context
from kuber.core.text import remove_triggers
from kuber.services.device import ImageSource
from kuber.services.llm import CloudLLMService, LocalLLMEngine
from kuber.services.vision import ParchiData, ParchiScanner
from kuber.tools.parchi import SCAN_UNREADABLE, summarize_parchi
from kuber.tools.registry import ActionRouter

logger = logging.getLogger(__name__)
settings = get_settings()

OFFLINE_ERROR = "System offline. Model se connect nahi ho pa raha, retry karein."


@dataclass(frozen=True)
class Message:
    """One entry of the conversation history."""
    id: str
    role: str  # "user", "assistant", "system"
    content: str
    timestamp: datetime = field(default_factory=datetime.now)

    @classmethod
    def create(cls, role: str, content: str) -> "Message":
        return cls(id=str(uuid4()), role=role, content=content)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
        }

    def to_llm_message(self) -> Dict[str, str]:
        content = remove_triggers(self.content) if self.role == "assistant" else self.content
        return {"role": self.role, "content": content}


@dataclass
class ConversationContext:
    """What the conversation is currently about."""
    last_intent: Optional[Intent] = None
    last_product: Optional[str] = None
    last_party: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "last_intent": self.last_intent.value if self.last_intent else None,
            "last_product": self.last_product,
            "last_party": self.last_party,
        }


def greeting_for(language: Optional[str]) -> Optional[str]:
    if not language:
        return None
    return GREETINGS.get(language, GREETINGS["en"])


MessageCallback = Callable[[Message], Any]


class ConversationSession:
    """
    One conversation with the assistant.

    The on-device model is tried once at initialize(); if it cannot be
    loaded the session switches to the cloud model for good. Turns are
    one at a time: send_message() is a no-op while a turn is running.
    """

    def __init__(
        self,
        router: ActionRouter,
        session_id: Optional[str] = None,
        language: Optional[str] = None,
        cloud: Optional[CloudLLMService] = None,
        local: Optional[LocalLLMEngine] = None,
        scanner: Optional[ParchiScanner] = None,
        image_source: Optional[ImageSource] = None,
        agent_logger: Any = None
    ):
        self.session_id = session_id or str(uuid4())
        self.router = router
        self.cloud = cloud or CloudLLMService()
        self.local = local or LocalLLMEngine()
        self.scanner = scanner
        self.image_source = image_source
        self.agent_logger = agent_logger

        self.created_at = datetime.now()
        self.last_activity = datetime.now()

        self.messages: List[Message] = []
        self.selected_language = language
        self.context = ConversationContext()
        self.is_thinking = False
        self.is_scanning = False
        self.error: Optional[str] = None
        self.use_cloud = False
        self.is_model_ready = False
        self.last_parchi: Optional[ParchiData] = None
        self.turn_count = 0

        self._listeners: List[MessageCallback] = []
        self._scan_task: Optional[asyncio.Task] = None

    # =========================
    # Model
    # =========================

    async def initialize(self):
        """Load the on-device model, or fall back to the cloud for good."""
        try:
            await self.local.load()
            self.use_cloud = False
            logger.info(f"Session {self.session_id} using local model")
        except Exception as e:
            logger.warning(f"Local model unavailable ({e}), switching to cloud")
            self.local.unload()
            self.use_cloud = True
            await self.cloud.initialize()

        self.is_model_ready = True
        if not self.messages:
            self._reset_history()

        if self.agent_logger:
            await self.agent_logger.log_session_start(
                self.session_id,
                self.selected_language,
                "cloud" if self.use_cloud else "local"
            )

    @property
    def has_model(self) -> bool:
        if self.use_cloud:
            return self.cloud.is_available
        return self.local.is_loaded

    async def complete(self, messages: List[Dict[str, str]]) -> str:
        """Run a completion on whichever model this session uses."""
        if not self.has_model:
            raise LLMNotConfiguredException()

        model = self.cloud if self.use_cloud else self.local
        try:
            response = await model.complete(messages)
        except LLMException:
            raise
        except Exception as e:
            raise LLMException(f"Model completion failed: {e}")
        return response.content

    async def retry_load_model(self):
        """Drop any local model handle and go through initialize() again."""
        self.local.unload()
        self.is_model_ready = False
        self.use_cloud = False
        self.error = None
        await self.initialize()

    # =========================
    # History
    # =========================

    def subscribe(self, callback: MessageCallback) -> Callable[[], None]:
        """Be told about every assistant message appended from now on."""
        self._listeners.append(callback)

        def unsubscribe():
            if callback in self._listeners:
                self._listeners.remove(callback)

        return unsubscribe

    def _append(self, message: Message) -> Message:
        self.messages.append(message)
        self.last_activity = datetime.now()
        if message.role == "assistant":
            for callback in list(self._listeners):
                try:
                    callback(message)
                except Exception as e:
                    logger.error(f"Message listener failed: {e}")
        return message

    def _reset_history(self):
        greeting = greeting_for(self.selected_language)
        self.messages = [Message.create("assistant", greeting)] if greeting else []
        self.context = ConversationContext()

    def history_for_model(self, n: Optional[int] = None) -> List[Dict[str, str]]:
        """Recent user/assistant messages in chat-completion format."""
        n = n or settings.CONTEXT_WINDOW_SIZE * 2
        recent = [m for m in self.messages if m.role in ("user", "assistant")][-n:]
        return [m.to_llm_message() for m in recent]

    def set_language(self, language: str):
        """Switch language; history restarts with that language's greeting."""
        if language not in settings.SUPPORTED_LANGUAGES:
            raise SessionException(
                f"Unsupported language: {language}",
                details={"supported": settings.SUPPORTED_LANGUAGES}
            )
        self.selected_language = language
        self.error = None
        self._reset_history()

    def clear_messages(self):
        self.error = None
        self._reset_history()

    # =========================
    # Turns
    # =========================

    async def send_message(self, text: Optional[str]) -> Optional[Message]:
        """
        Handle one user message.

        Returns the assistant reply, or None when the session is not
        ready, a turn is already running, the text is blank, or the
        model failed in model routing (error is set in that case).
        """
        if not self.is_model_ready or self.is_thinking or not text or not text.strip():
            return None

        text = text.strip()
        self.is_thinking = True
        self.error = None
        self.turn_count += 1
        start_time = time.time()

        try:
            self._append(Message.create("user", text))

            result = detect_intent(text)
            self.context.last_intent = result.intent
            if self.agent_logger:
                await self.agent_logger.log_intent(self.session_id, result.to_dict())

            if settings.INTENT_ROUTING == "model":
                reply = await self._reply_from_model(result)
                if reply is None:
                    return None
            else:
                reply = await self.router.handle(result, text, self)

            if self.agent_logger:
                await self.agent_logger.log_action(
                    self.session_id,
                    result.intent.value,
                    reply,
                    (time.time() - start_time) * 1000
                )

            return self._append(Message.create("assistant", reply))

        finally:
            self.is_thinking = False

    async def _reply_from_model(self, result: IntentResult) -> Optional[str]:
        messages = self.history_for_model()
        messages[-1]["content"] += get_intent_context(result)

        try:
            return await self.complete(messages)
        except LLMException as e:
            logger.error(f"Model reply failed for session {self.session_id}: {e.message}")
            self.error = OFFLINE_ERROR
            if self.agent_logger:
                await self.agent_logger.log_error(self.session_id, type(e).__name__, e.message)
            return None

    # =========================
    # Parchi scan
    # =========================

    def request_parchi_scan(self) -> bool:
        """
        Start a background parchi scan.

        Returns False when this session has no camera or scanner. Only
        one scan runs at a time; asking again while one runs is a no-op.
        """
        if self.scanner is None or self.image_source is None:
            return False
        if self._scan_task is not None and not self._scan_task.done():
            return True

        self._scan_task = asyncio.create_task(self._run_parchi_scan())
        return True

    async def _run_parchi_scan(self):
        self.is_scanning = True
        try:
            image = await self.image_source.capture()
            if not image:
                logger.info(f"Parchi capture cancelled for session {self.session_id}")
                return

            start_time = time.time()
            try:
                data = await self.scanner.scan(image)
            except ParchiExtractionException as e:
                logger.error(f"Parchi scan failed: {e.message}")
                if self.agent_logger:
                    await self.agent_logger.log_error(self.session_id, type(e).__name__, e.message)
                self._append(Message.create("assistant", SCAN_UNREADABLE))
                return

            self.last_parchi = data
            if self.agent_logger:
                await self.agent_logger.log_parchi_scan(
                    self.session_id,
                    data.to_dict(),
                    (time.time() - start_time) * 1000
                )
            self._append(Message.create("assistant", summarize_parchi(data)))

        finally:
            self.is_scanning = False

    async def wait_for_scan(self):
        """Wait for a running parchi scan, if any."""
        if self._scan_task is not None:
            await asyncio.gather(self._scan_task, return_exceptions=True)

    # =========================
    # Lifecycle
    # =========================

    def is_expired(self) -> bool:
        timeout = timedelta(minutes=settings.SESSION_TIMEOUT_MINUTES)
        return datetime.now() - self.last_activity > timeout

    async def close(self):
        if self._scan_task is not None and not self._scan_task.done():
            self._scan_task.cancel()
            await asyncio.gather(self._scan_task, return_exceptions=True)
        self._listeners.clear()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "created_at": self.created_at.isoformat(),
            "last_activity": self.last_activity.isoformat(),
            "language": self.selected_language,
            "model": "cloud" if self.use_cloud else "local",
            "is_model_ready": self.is_model_ready,
            "is_thinking": self.is_thinking,
            "is_scanning": self.is_scanning,
            "error": self.error,
            "context": self.context.to_dict(),
            "turn_count": self.turn_count,
            "messages": [m.to_dict() for m in self.messages],
        }


SessionFactory = Callable[[Optional[str], Optional[str]], ConversationSession]


class SessionManager:
    """
    Manages conversation sessions with automatic cleanup.
    Sessions are created through a factory so the app decides which
    services they share.
    """

    def __init__(self, factory: SessionFactory):
        self._factory = factory
        self._sessions: Dict[str, ConversationSession] = {}
        self._lock = asyncio.Lock()
        self._cleanup_task: Optional[asyncio.Task] = None

    async def start(self):
        """Start the session manager and cleanup task."""
        self._cleanup_task = asyncio.create_task(self._cleanup_loop())
        logger.info("Session manager started")

    async def stop(self):
        """Stop the session manager and close every session."""
        if self._cleanup_task:
            self._cleanup_task.cancel()
            try:
                await self._cleanup_task
            except asyncio.CancelledError:
                pass

        async with self._lock:
            for session_id in list(self._sessions):
                await self._remove_session(session_id)
        logger.info("Session manager stopped")

    async def create_session(
        self,
        session_id: Optional[str] = None,
        language: Optional[str] = None
    ) -> ConversationSession:
        """Create and initialize a new session."""
        session = self._factory(session_id, language or settings.DEFAULT_LANGUAGE)
        await session.initialize()

        async with self._lock:
            if len(self._sessions) >= settings.MAX_SESSIONS:
                await self._evict_oldest()
            self._sessions[session.session_id] = session

        logger.info(f"Created new session: {session.session_id}")
        return session

    async def get_session(self, session_id: str) -> Optional[ConversationSession]:
        """Get an existing, unexpired session."""
        async with self._lock:
            session = self._sessions.get(session_id)

            if session and session.is_expired():
                await self._remove_session(session_id)
                return None

            return session

    async def get_or_create_session(
        self,
        session_id: Optional[str] = None,
        language: Optional[str] = None
    ) -> ConversationSession:
        if session_id:
            session = await self.get_session(session_id)
            if session:
                return session

        return await self.create_session(session_id, language)

    async def delete_session(self, session_id: str) -> bool:
        async with self._lock:
            return await self._remove_session(session_id)

    async def get_active_session_count(self) -> int:
        async with self._lock:
            return sum(1 for s in self._sessions.values() if not s.is_expired())

    async def _remove_session(self, session_id: str) -> bool:
        """Remove session (must be called with lock held)."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return False
        await session.close()
        logger.info(f"Removed session: {session_id}")
        return True

    async def _evict_oldest(self):
        """Evict the least recently active session (must be called with lock held)."""
        if not self._sessions:
            return

        oldest_session = min(self._sessions.values(), key=lambda s: s.last_activity)
        await self._remove_session(oldest_session.session_id)

    async def _cleanup_loop(self):
        """Periodically clean up expired sessions."""
        while True:
            try:
                await asyncio.sleep(60)  # Check every minute

                async with self._lock:
                    expired = [
                        sid for sid, session in self._sessions.items()
                        if session.is_expired()
                    ]

                    for sid in expired:
                        await self._remove_session(sid)

                    if expired:
                        logger.info(f"Cleaned up {len(expired)} expired sessions")

            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error(f"Error in session cleanup: {e}")
