"""
FastAPI Application Entry Point
===============================
Main application with lifecycle management, middleware, and route mounting.
"""

from contextlib import asynccontextmanager
from datetime import datetime
from pathlib import Path
from typing import Optional
import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from kuber.config import get_settings
from kuber.core.exceptions import VoiceAgentException
from kuber.core.session import ConversationSession, SessionManager
from kuber.api.routes import chat, conversation, health, vision, voice
from kuber.db.database import init_db, close_db
from kuber.db.store import RecordStore
from kuber.services.stt import STTService
from kuber.services.tts import TTSService
from kuber.services.llm import CloudLLMService, LocalLLMEngine
from kuber.services.vision import ParchiScanner
from kuber.logging.agent_logger import AgentLogger
from kuber.tools.registry import ActionRouter

settings = get_settings()

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    logger.info("=" * 60)
    logger.info("Starting Kuber")
    logger.info("=" * 60)

    # ==================
    # STARTUP
    # ==================

    # Ensure directories exist
    Path("./logs").mkdir(parents=True, exist_ok=True)
    Path("./data").mkdir(parents=True, exist_ok=True)
    settings.MODELS_DIR.mkdir(parents=True, exist_ok=True)

    # Initialize agent logger
    agent_logger: Optional[AgentLogger] = None
    if settings.ENABLE_AGENT_LOG:
        logger.info("Initializing agent logger...")
        agent_logger = AgentLogger(str(settings.AGENT_LOG_PATH))
        await agent_logger.initialize_log(settings.SUPPORTED_LANGUAGES)
        await agent_logger.log_system_event("Application starting", {
            "version": settings.APP_VERSION,
            "environment": settings.ENVIRONMENT,
            "voice_mode": settings.VOICE_MODE,
            "intent_routing": settings.INTENT_ROUTING
        })
    app.state.agent_logger = agent_logger

    # Initialize database
    logger.info("Initializing database...")
    await init_db()

    # Speech services are only needed when the server does recognition
    app.state.stt_service = STTService()
    app.state.tts_service = TTSService()
    if settings.VOICE_MODE == "server":
        logger.info("Initializing STT service...")
        await app.state.stt_service.initialize()

        logger.info("Initializing TTS service...")
        await app.state.tts_service.initialize()

    logger.info("Initializing language models...")
    app.state.cloud_llm = CloudLLMService()
    await app.state.cloud_llm.initialize()
    app.state.local_llm = LocalLLMEngine()

    logger.info("Initializing parchi scanner...")
    app.state.parchi_scanner = ParchiScanner()
    await app.state.parchi_scanner.initialize()

    logger.info("Initializing action router...")
    app.state.action_router = ActionRouter(RecordStore())
    await app.state.action_router.initialize()

    def create_session(session_id: Optional[str], language: Optional[str]) -> ConversationSession:
        return ConversationSession(
            app.state.action_router,
            session_id=session_id,
            language=language,
            cloud=app.state.cloud_llm,
            local=app.state.local_llm,
            scanner=app.state.parchi_scanner,
            agent_logger=agent_logger
        )

    app.state.session_manager = SessionManager(create_session)
    await app.state.session_manager.start()

    logger.info("=" * 60)
    logger.info("Kuber Ready!")
    logger.info(f"Server: http://{settings.HOST}:{settings.PORT}")
    logger.info(f"Docs: http://{settings.HOST}:{settings.PORT}/docs")
    logger.info("=" * 60)

    if agent_logger:
        await agent_logger.log_system_event("Application started successfully", {
            "host": settings.HOST,
            "port": settings.PORT
        })

    yield  # Application runs here

    # ==================
    # SHUTDOWN
    # ==================

    logger.info("Shutting down Kuber...")

    if agent_logger:
        await agent_logger.log_system_event("Application shutting down", {})

    await app.state.session_manager.stop()

    # Cleanup services
    await app.state.stt_service.cleanup()
    await app.state.tts_service.cleanup()
    await app.state.cloud_llm.cleanup()
    app.state.local_llm.unload()
    if agent_logger:
        await agent_logger.close()

    # Close database
    await close_db()

    logger.info("Shutdown complete.")


# Create FastAPI application
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="""
    ## Kuber - Voice Assistant for Kirana Shops

    Speak or type business commands and get short spoken answers.

    ### Features:
    - 🎤 Hands-free voice loop via WebSocket (device or server speech)
    - 📦 Stock checks, low-stock alerts and order placement
    - 📈 Profit analysis and udhar-khata (customer credit)
    - 🚚 Courier rate comparison
    - 🧾 Parchi (bill photo) scanning with offline OCR fallback
    - 🌐 Hinglish, Hindi, English, Tamil, Telugu and more

    ### Pipeline:
    ```
    Speech → Commit → Intent → Action → Reply → Speech
    ```
    """,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json"
)

# ==================
# MIDDLEWARE
# ==================

# CORS middleware for frontend access
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def add_timing_header(request: Request, call_next):
    """Add request timing information to response headers."""
    start_time = datetime.now()
    response = await call_next(request)
    process_time = (datetime.now() - start_time).total_seconds() * 1000
    response.headers["X-Process-Time-Ms"] = f"{process_time:.2f}"
    return response


@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log incoming requests."""
    logger.debug(f"{request.method} {request.url.path}")
    response = await call_next(request)
    return response


# ==================
# EXCEPTION HANDLERS
# ==================

@app.exception_handler(VoiceAgentException)
async def voice_agent_exception_handler(request: Request, exc: VoiceAgentException):
    """Handle custom Kuber exceptions."""
    logger.error(f"VoiceAgentException: {exc.message}")
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "error": exc.error_code,
            "message": exc.message,
            "details": exc.details
        }
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions."""
    logger.exception(f"Unexpected error: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "error": "INTERNAL_ERROR",
            "message": "An unexpected error occurred",
            "details": str(exc) if settings.DEBUG else None
        }
    )


# ==================
# ROUTES
# ==================

# Mount route modules
app.include_router(health.router, tags=["Health"])
app.include_router(chat.router, prefix="/api/v1", tags=["Chat"])
app.include_router(vision.router, prefix="/api/v1", tags=["Parchi"])
app.include_router(voice.router, prefix="/api/v1/voice", tags=["Voice"])
app.include_router(conversation.router, prefix="/api/v1/conversation", tags=["Conversation"])


@app.get("/")
async def root():
    """Root endpoint with API information."""
    return {
        "name": settings.APP_NAME,
        "version": settings.APP_VERSION,
        "status": "running",
        "docs": "/docs",
        "health": "/health"
    }


# ==================
# DEBUG ENDPOINTS
# ==================

if settings.DEBUG:
    @app.get("/debug/config")
    async def debug_config():
        """Debug endpoint to view configuration (DEBUG mode only)."""
        return {
            "environment": settings.ENVIRONMENT,
            "supported_languages": settings.SUPPORTED_LANGUAGES,
            "voice_mode": settings.VOICE_MODE,
            "intent_routing": settings.INTENT_ROUTING,
            "stt_model": settings.STT_MODEL_ID,
            "llm_model": settings.LLM_MODEL_ID,
            "vision_model": settings.VISION_MODEL_ID,
            "local_llm_model": settings.LOCAL_LLM_MODEL_ID
        }
