"""Services module initialization."""

from kuber.services.stt import STTService
from kuber.services.tts import TTSService
from kuber.services.llm import CloudLLMService, LocalLLMEngine

__all__ = [
    "STTService",
    "TTSService",
    "CloudLLMService",
    "LocalLLMEngine"
]
