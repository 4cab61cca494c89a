"""
Core exceptions for Kuber.
Custom exception classes for structured error handling.
"""

from typing import Optional, Dict, Any


class VoiceAgentException(Exception):
    """Base exception for Kuber errors."""

    def __init__(
        self,
        message: str,
        error_code: str = "KUBER_ERROR",
        status_code: int = 500,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.error_code = error_code
        self.status_code = status_code
        self.details = details or {}
        super().__init__(self.message)


# =========================
# STT Exceptions
# =========================

class STTException(VoiceAgentException):
    """Base exception for STT errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="STT_ERROR",
            status_code=500,
            details=details
        )


class STTModelNotLoadedException(STTException):
    """Raised when STT model is not loaded."""

    def __init__(self):
        super().__init__(
            message="STT model is not loaded. Please wait for initialization.",
            details={"error_type": "model_not_loaded"}
        )


class STTTimeoutException(STTException):
    """Raised when STT processing times out."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            message=f"STT processing timed out after {timeout_seconds} seconds",
            details={"timeout_seconds": timeout_seconds}
        )


class STTNoAudioException(STTException):
    """Raised when no audio is detected."""

    def __init__(self):
        super().__init__(
            message="No audio detected in input",
            details={"error_type": "no_audio"}
        )


# =========================
# TTS Exceptions
# =========================

class TTSException(VoiceAgentException):
    """Base exception for TTS errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="TTS_ERROR",
            status_code=500,
            details=details
        )


class TTSUnsupportedLanguageException(TTSException):
    """Raised when TTS language is not supported."""

    def __init__(self, locale: str, supported: list):
        super().__init__(
            message=f"Locale '{locale}' is not supported for TTS",
            details={"locale": locale, "supported_locales": supported}
        )


# =========================
# LLM Exceptions
# =========================

class LLMException(VoiceAgentException):
    """Base exception for LLM errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="LLM_ERROR",
            status_code=500,
            details=details
        )


class LLMAPIException(LLMException):
    """Raised when Groq API returns an error."""

    def __init__(self, api_error: str, status_code: int = 500):
        super().__init__(
            message=f"LLM API error: {api_error}",
            details={"api_error": api_error, "api_status_code": status_code}
        )


class LLMTimeoutException(LLMException):
    """Raised when LLM processing times out."""

    def __init__(self, timeout_seconds: float):
        super().__init__(
            message=f"LLM processing timed out after {timeout_seconds} seconds",
            details={"timeout_seconds": timeout_seconds}
        )


class LLMRateLimitException(LLMException):
    """Raised when LLM API rate limit is exceeded."""

    def __init__(self, retry_after: Optional[float] = None):
        super().__init__(
            message="LLM API rate limit exceeded",
            details={"retry_after_seconds": retry_after}
        )


class LLMNotConfiguredException(LLMException):
    """Raised when no API key is configured for the cloud model."""

    def __init__(self):
        super().__init__(
            message="GROQ_API_KEY is not configured",
            details={"error_type": "not_configured"}
        )
        self.status_code = 503


class LocalModelUnavailableException(LLMException):
    """Raised when the on-device model cannot be loaded."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"Local model unavailable: {reason}",
            details={"reason": reason}
        )


# =========================
# Tool Exceptions
# =========================

class ToolException(VoiceAgentException):
    """Base exception for action handler errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="TOOL_ERROR",
            status_code=500,
            details=details
        )


class ToolNotFoundException(ToolException):
    """Raised when no handler is registered for an intent."""

    def __init__(self, tool_name: str):
        super().__init__(
            message=f"Action '{tool_name}' not found in router",
            details={"tool_name": tool_name}
        )


# =========================
# Session Exceptions
# =========================

class SessionException(VoiceAgentException):
    """Base exception for session errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="SESSION_ERROR",
            status_code=400,
            details=details
        )


class SessionNotFoundException(SessionException):
    """Raised when session is not found."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session '{session_id}' not found",
            details={"session_id": session_id}
        )
        self.status_code = 404


class SessionNotReadyException(SessionException):
    """Raised when a session is used before its model is ready."""

    def __init__(self, session_id: str):
        super().__init__(
            message=f"Session '{session_id}' is not ready",
            details={"session_id": session_id}
        )
        self.status_code = 409


# =========================
# Database Exceptions
# =========================

class DatabaseException(VoiceAgentException):
    """Base exception for database errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="DATABASE_ERROR",
            status_code=500,
            details=details
        )


class RecordNotFoundException(DatabaseException):
    """Raised when a database record is not found."""

    def __init__(self, entity: str, identifier: str):
        super().__init__(
            message=f"{entity} with identifier '{identifier}' not found",
            details={"entity": entity, "identifier": identifier}
        )
        self.status_code = 404


class UnknownTableException(DatabaseException):
    """Raised when a table name is not part of the record store."""

    def __init__(self, table: str):
        super().__init__(
            message=f"Unknown table '{table}'",
            details={"table": table}
        )
        self.status_code = 400


class InsufficientStockException(DatabaseException):
    """Raised when an order line asks for more than is in stock."""

    def __init__(self, product: str, requested: float, available: float):
        super().__init__(
            message=f"Insufficient stock for {product}: requested {requested}, available {available}",
            details={"product": product, "requested": requested, "available": available}
        )
        self.error_code = "INSUFFICIENT_STOCK"
        self.status_code = 409


# =========================
# Vision Exceptions
# =========================

class VisionException(VoiceAgentException):
    """Base exception for parchi extraction errors."""

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=message,
            error_code="VISION_ERROR",
            status_code=500,
            details=details
        )


class VisionTierException(VisionException):
    """Raised when the vision model tier fails."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Vision extraction failed: {error}",
            details={"error": error}
        )


class ImageDecodeException(VisionException):
    """Raised when an image data URL cannot be decoded."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Could not decode image: {error}",
            details={"error": error}
        )
        self.status_code = 400


class OCREngineUnavailableException(VisionException):
    """Raised when the OCR engine cannot be loaded."""

    def __init__(self, reason: str):
        super().__init__(
            message=f"OCR engine unavailable: {reason}",
            details={"reason": reason}
        )


class ParchiExtractionException(VisionException):
    """Raised when both extraction tiers fail."""

    def __init__(self, error: str):
        super().__init__(
            message=f"Parchi extraction failed: {error}",
            details={"error": error}
        )
        self.error_code = "PARCHI_EXTRACTION_FAILED"
        self.status_code = 422
