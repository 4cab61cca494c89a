"""
Conversation REST Endpoints.
Typed conversations and session management.
"""

import logging
import time
from typing import List, Optional
from datetime import datetime

from fastapi import APIRouter, Request
from pydantic import BaseModel, Field

from kuber.config import get_settings, LANGUAGE_NAMES
from kuber.core.exceptions import LLMException, SessionNotFoundException, SessionNotReadyException
from kuber.core.session import ConversationSession, SessionManager
from kuber.core.text import extract_triggers

logger = logging.getLogger(__name__)
settings = get_settings()

router = APIRouter()


class ConversationMessage(BaseModel):
    """Request model for sending a message."""
    text: str = Field(..., min_length=1)
    session_id: Optional[str] = None
    language: Optional[str] = None


class ConversationResponse(BaseModel):
    """Response model for conversation."""
    session_id: str
    response: str
    intent: Optional[str] = None
    triggers: List[str] = []
    language: Optional[str] = None
    latency_ms: float


class LanguageRequest(BaseModel):
    language: str


def _manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


async def _get_session(request: Request, session_id: str) -> ConversationSession:
    session = await _manager(request).get_session(session_id)
    if session is None:
        raise SessionNotFoundException(session_id)
    return session


@router.post("/message", response_model=ConversationResponse)
async def send_message(
    request: Request,
    message: ConversationMessage
):
    """
    Send a text command and get the assistant's reply.
    This is the main text-based conversation endpoint.
    """
    start_time = time.time()

    session = await _manager(request).get_or_create_session(message.session_id, message.language)

    if session.agent_logger:
        await session.agent_logger.log_transcript(session.session_id, message.text, source="text")

    reply = await session.send_message(message.text)

    if reply is None:
        if session.error:
            raise LLMException(session.error, details={"session_id": session.session_id})
        raise SessionNotReadyException(session.session_id)

    latency_ms = (time.time() - start_time) * 1000
    intent = session.context.last_intent

    return ConversationResponse(
        session_id=session.session_id,
        response=reply.content,
        intent=intent.value if intent else None,
        triggers=extract_triggers(reply.content),
        language=session.selected_language,
        latency_ms=round(latency_ms, 2)
    )


@router.get("/history/{session_id}")
async def get_history(
    request: Request,
    session_id: str,
    limit: Optional[int] = None
):
    """Get conversation history for a session."""
    session = await _get_session(request, session_id)

    messages = session.messages[-limit:] if limit else session.messages
    return {
        "session_id": session_id,
        "messages": [m.to_dict() for m in messages],
        "count": len(messages),
        "error": session.error,
        "context": session.context.to_dict()
    }


@router.post("/language/{session_id}")
async def set_language(
    request: Request,
    session_id: str,
    body: LanguageRequest
):
    """Switch language. History restarts with the greeting."""
    session = await _get_session(request, session_id)
    session.set_language(body.language)

    return {
        "session_id": session_id,
        "language": session.selected_language,
        "messages": [m.to_dict() for m in session.messages]
    }


@router.post("/clear/{session_id}")
async def clear_messages(
    request: Request,
    session_id: str
):
    """Reset history to a fresh greeting."""
    session = await _get_session(request, session_id)
    session.clear_messages()

    return {
        "session_id": session_id,
        "messages": [m.to_dict() for m in session.messages],
        "status": "cleared"
    }


@router.post("/retry/{session_id}")
async def retry_model(
    request: Request,
    session_id: str
):
    """Try loading the on-device model again."""
    session = await _get_session(request, session_id)
    await session.retry_load_model()

    return {
        "session_id": session_id,
        "model": "cloud" if session.use_cloud else "local",
        "is_model_ready": session.is_model_ready,
        "has_model": session.has_model
    }


@router.delete("/session/{session_id}")
async def delete_session(
    request: Request,
    session_id: str
):
    """End a session."""
    if not await _manager(request).delete_session(session_id):
        raise SessionNotFoundException(session_id)

    return {
        "session_id": session_id,
        "status": "deleted"
    }


@router.get("/active")
async def get_active_sessions(request: Request):
    """Get count of active sessions."""
    return {
        "active_sessions": await _manager(request).get_active_session_count(),
        "timestamp": datetime.now().isoformat()
    }


@router.get("/languages")
async def get_languages():
    """Languages a session can be switched to."""
    return {
        "default": settings.DEFAULT_LANGUAGE,
        "languages": [
            {"code": code, "name": LANGUAGE_NAMES.get(code, code)}
            for code in settings.SUPPORTED_LANGUAGES
        ]
    }
