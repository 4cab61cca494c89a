"""Core module initialization."""

from kuber.core.exceptions import (
    VoiceAgentException,
    STTException,
    TTSException,
    LLMException,
    ToolException,
    SessionException,
    DatabaseException,
    VisionException
)
from kuber.core.intent import Intent, IntentResult, detect_intent

__all__ = [
    "VoiceAgentException",
    "STTException",
    "TTSException",
    "LLMException",
    "ToolException",
    "SessionException",
    "DatabaseException",
    "VisionException",
    "Intent",
    "IntentResult",
    "detect_intent"
]
