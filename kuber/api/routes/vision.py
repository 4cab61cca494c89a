"""
Parchi Extraction Endpoints.
Vision-only extraction and the full two-tier scan.
"""

import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from kuber.core.exceptions import ParchiExtractionException, VisionTierException

logger = logging.getLogger(__name__)

router = APIRouter()


class ImageRequest(BaseModel):
    image: str = Field(..., min_length=1, description="Image as a base64 data URL")


@router.post("/vision")
async def extract_with_vision(request: Request, body: ImageRequest):
    """Vision model only: returns {items, totalAmount} or {error}."""
    scanner = request.app.state.parchi_scanner

    try:
        return await scanner.vision.extract_payload(body.image)
    except VisionTierException as e:
        logger.error(f"Vision extraction failed: {e.message}")
        status = 503 if not scanner.vision.is_available else 500
        return JSONResponse(status_code=status, content={"error": e.message})


@router.post("/parchi/scan")
async def scan_parchi(request: Request, body: ImageRequest):
    """Vision model first, local OCR as fallback. 422 when both fail."""
    scanner = request.app.state.parchi_scanner

    try:
        result = await scanner.scan(body.image)
    except ParchiExtractionException as e:
        return JSONResponse(status_code=422, content={"error": e.message})

    return result.to_dict()
