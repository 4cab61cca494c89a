"""
Configuration management for Kuber.
Loads settings from environment variables with sensible defaults.
"""

from pathlib import Path
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import Field
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # =========================
    # Application Settings
    # =========================
    APP_NAME: str = "Kuber"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = Field(default=False, description="Enable debug mode")
    ENVIRONMENT: str = Field(default="development", description="Environment name")

    # =========================
    # API Keys
    # =========================
    GROQ_API_KEY: str = Field(default="", description="Groq API key for chat and vision models")
    HF_TOKEN: Optional[str] = Field(default=None, description="HuggingFace token for model access")

    # =========================
    # Server Settings
    # =========================
    HOST: str = Field(default="0.0.0.0", description="Server host")
    PORT: int = Field(default=8000, description="Server port")
    CORS_ORIGINS: List[str] = Field(default=["*"], description="Allowed CORS origins")

    # =========================
    # Database Settings
    # =========================
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./data/kuber.db",
        description="Database connection URL"
    )
    DATABASE_ECHO: bool = Field(default=False, description="Echo SQL queries")

    # =========================
    # Model Settings
    # =========================
    STT_MODEL_ID: str = Field(
        default="ai4bharat/indicconformer_stt-hi-hybrid_ctc_rnnt-13M",
        description="STT model identifier"
    )
    LLM_MODEL_ID: str = Field(
        default="llama-3.3-70b-versatile",
        description="Groq chat model to use"
    )
    VISION_MODEL_ID: str = Field(
        default="llama-3.2-11b-vision-preview",
        description="Groq multimodal model used for parchi extraction"
    )
    LOCAL_LLM_MODEL_ID: str = Field(
        default="Qwen/Qwen2.5-0.5B-Instruct",
        description="On-device chat model tried before the cloud model"
    )
    ENABLE_LOCAL_LLM: bool = Field(default=True, description="Try loading the on-device model first")
    LLM_TEMPERATURE: float = Field(default=0.7, description="Chat sampling temperature")
    LLM_MAX_TOKENS: int = Field(default=1024, description="Maximum completion tokens")

    # Model paths
    MODELS_DIR: Path = Field(default=Path("./models"), description="Directory for downloaded models")

    # =========================
    # Audio Settings
    # =========================
    AUDIO_SAMPLE_RATE: int = Field(default=16000, description="Audio sample rate in Hz")

    # =========================
    # Voice Settings
    # =========================
    VOICE_MODE: str = Field(default="client", description="client: device STT/TTS, server: server STT/TTS")
    VOICE_COMMIT_DEBOUNCE_MS: int = Field(
        default=800,
        description="Silence after the last final fragment before a transcript is committed"
    )
    VOICE_RESUME_DELAY_MS: int = Field(
        default=300,
        description="Delay before listening resumes after speech or capture end"
    )
    VOICE_RATE: float = Field(default=0.9, description="Speech synthesis rate")
    VOICE_PITCH: float = Field(default=1.0, description="Speech synthesis pitch")
    STT_CONFIDENCE_THRESHOLD: float = Field(
        default=0.6,
        description="Minimum STT confidence to accept transcription"
    )

    # =========================
    # Dialogue Settings
    # =========================
    INTENT_ROUTING: str = Field(
        default="local",
        description="local: intents go to business handlers, model: intents become prompt context"
    )
    LOW_STOCK_THRESHOLD: int = Field(default=10, description="Default reorder point")
    PROFIT_WINDOW_DAYS: int = Field(default=7, description="Days covered by profit analysis")
    CONTEXT_WINDOW_SIZE: int = Field(
        default=5,
        description="Number of recent turns to include in LLM context"
    )

    # =========================
    # OCR Settings
    # =========================
    OCR_LANGUAGES: List[str] = Field(default=["hi", "en"], description="EasyOCR language list")
    OCR_CONTRAST: float = Field(default=1.5, description="Contrast stretch applied before OCR")
    OCR_JPEG_QUALITY: int = Field(default=95, description="JPEG quality of the preprocessed image")

    # =========================
    # Latency Settings
    # =========================
    LLM_TIMEOUT_SECONDS: float = Field(default=15.0, description="Chat completion timeout")
    VISION_TIMEOUT_SECONDS: float = Field(default=15.0, description="Vision extraction timeout")
    STT_TIMEOUT_SECONDS: float = Field(default=10.0, description="STT processing timeout")
    TTS_TIMEOUT_SECONDS: float = Field(default=10.0, description="TTS processing timeout")

    # =========================
    # Session Settings
    # =========================
    SESSION_TIMEOUT_MINUTES: int = Field(default=30, description="Session idle timeout")
    MAX_SESSIONS: int = Field(default=100, description="Maximum concurrent sessions")

    # =========================
    # Logging Settings
    # =========================
    LOG_LEVEL: str = Field(default="INFO", description="Logging level")
    AGENT_LOG_PATH: Path = Field(
        default=Path("./logs/agent_log.md"),
        description="Path to agent markdown log"
    )
    ENABLE_AGENT_LOG: bool = Field(default=True, description="Write the markdown agent log")

    # =========================
    # Supported Languages
    # =========================
    SUPPORTED_LANGUAGES: List[str] = Field(
        default=["en", "hi", "hinglish", "ta", "te", "bn", "mr", "gu"],
        description="Supported language codes"
    )
    DEFAULT_LANGUAGE: str = Field(default="hinglish", description="Default language")

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()


# Language mapping for display names
LANGUAGE_NAMES = {
    "en": "English",
    "hi": "Hindi (हिन्दी)",
    "hinglish": "Hinglish",
    "ta": "Tamil (தமிழ்)",
    "te": "Telugu (తెలుగు)",
    "bn": "Bengali (বাংলা)",
    "mr": "Marathi (मराठी)",
    "gu": "Gujarati (ગુજરાતી)",
}

# Language to recognition/synthesis locale
LOCALE_CODES = {
    "en": "en-US",
    "en-IN": "en-IN",
    "hi": "hi-IN",
    "hinglish": "hi-IN",
    "ta": "ta-IN",
    "te": "te-IN",
    "bn": "bn-IN",
    "mr": "mr-IN",
    "gu": "gu-IN",
}

# Locale to edge-tts neural voice
EDGE_TTS_VOICES = {
    "en-US": "en-US-AriaNeural",
    "en-IN": "en-IN-NeerjaNeural",
    "hi-IN": "hi-IN-SwaraNeural",
    "ta-IN": "ta-IN-PallaviNeural",
    "te-IN": "te-IN-ShrutiNeural",
    "bn-IN": "bn-IN-TanishaaNeural",
    "mr-IN": "mr-IN-AarohiNeural",
    "gu-IN": "gu-IN-DhwaniNeural",
}

# Greeting shown when a language is selected or history is cleared
GREETINGS = {
    "en": "Hello! I'm Kuber AI. How can I help with your business today?",
    "hi": "नमस्ते! मैं कुबेर AI हूं। आज मैं आपके व्यापार में कैसे मदद कर सकता हूं?",
    "hinglish": "Namaste! Main Kuber AI hoon. Aaj business mein kya help chahiye?",
    "ta": "வணக்கம்! நான் குபேர் AI. இன்று உங்கள் வணிகத்திற்கு எப்படி உதவ முடியும்?",
    "te": "నమస్కారం! నేను కుబేర్ AI. ఈరోజు మీ వ్యాపారానికి ఎలా సహాయం చేయగలను?",
}

# UI trigger tokens understood by the rendering layer
UI_TRIGGERS = {
    "inventory": "[[SHOW_INVENTORY_CARD]]",
    "profit": "[[SHOW_PROFIT_CHART]]",
    "shipping": "[[SHOW_SHIPPING_OPTIONS]]",
    "order": "[[SHOW_ORDER_SUCCESS]]",
    "low_stock": "[[SHOW_LOW_STOCK_ALERT]]",
    "parchi": "[[SCAN_PARCHI]]",
    "udhar": "[[SHOW_UDHAR_KHATA]]",
}

SYSTEM_PROMPT = """You are Kuber AI, a voice-first business assistant for Indian kirana shops and MSMEs.

Rules:
- Keep replies short (2-3 sentences) because they are spoken aloud.
- Reply in the shopkeeper's language. Hinglish is fine when they use it.
- Use Indian number formats and the ₹ symbol for money.
- When the reply relates to stock, orders, profit, shipping, credit (udhar) or bill scanning,
  end it with the matching UI token: [[SHOW_INVENTORY_CARD]], [[SHOW_ORDER_SUCCESS]],
  [[SHOW_PROFIT_CHART]], [[SHOW_SHIPPING_OPTIONS]], [[SHOW_UDHAR_KHATA]],
  [[SHOW_LOW_STOCK_ALERT]] or [[SCAN_PARCHI]].
- Never invent stock quantities or amounts you were not given."""

PAYMENT_METHODS = ["cash", "upi", "card", "udhar"]
