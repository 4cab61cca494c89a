"""
Health Check Endpoints.
System health and readiness checks.
"""

from datetime import datetime
from fastapi import APIRouter, Request

from kuber.config import get_settings
from kuber.db.database import is_initialized as database_ready

router = APIRouter()
settings = get_settings()


@router.get("/health")
async def health_check():
    """Basic health check endpoint."""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.APP_VERSION
    }


@router.get("/health/ready")
async def readiness_check(request: Request):
    """
    Readiness check.

    The app is ready once the database and action router are up.
    Model, speech and OCR availability is reported but optional:
    without them the assistant still answers business commands.
    """
    state = request.app.state

    checks = {
        "database": database_ready(),
        "action_router": hasattr(state, "action_router") and len(state.action_router.describe()) > 0,
        "session_manager": hasattr(state, "session_manager")
    }

    services = {
        "cloud_llm": hasattr(state, "cloud_llm") and state.cloud_llm.is_available,
        "local_llm": hasattr(state, "local_llm") and state.local_llm.is_loaded,
        "vision": hasattr(state, "parchi_scanner") and state.parchi_scanner.vision.is_available,
        "ocr": hasattr(state, "parchi_scanner") and state.parchi_scanner.ocr.is_loaded,
        "stt": hasattr(state, "stt_service") and state.stt_service.is_available,
        "tts": hasattr(state, "tts_service") and state.tts_service.is_available
    }

    all_ready = all(checks.values())

    return {
        "status": "ready" if all_ready else "not_ready",
        "checks": checks,
        "services": services,
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/health/live")
async def liveness_check():
    """
    Liveness check - just verifies the server is responding.
    """
    return {
        "status": "alive",
        "timestamp": datetime.utcnow().isoformat()
    }


@router.get("/health/metrics")
async def metrics(request: Request):
    """
    Get basic system metrics.
    """
    metrics_data = {
        "timestamp": datetime.utcnow().isoformat(),
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "voice_mode": settings.VOICE_MODE,
        "intent_routing": settings.INTENT_ROUTING
    }

    if hasattr(request.app.state, "session_manager"):
        metrics_data["active_sessions"] = (
            await request.app.state.session_manager.get_active_session_count()
        )

    return metrics_data
