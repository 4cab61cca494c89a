"""
Local OCR engine backed by EasyOCR.
Used as the offline tier when the vision model cannot be reached.
"""

import asyncio
import io
import logging
from typing import List, Optional

import numpy as np
from PIL import Image

from kuber.config import get_settings
from kuber.core.exceptions import ImageDecodeException, OCREngineUnavailableException

logger = logging.getLogger(__name__)
settings = get_settings()

DEVANAGARI_CHARS = "अआइईउऊएऐओऔकखगघचछजझटठडढणतथदधनपफबभमयरलवशषसह"
OCR_ALLOWLIST = (
    "0123456789"
    "ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz"
    + DEVANAGARI_CHARS
    + "₹./-() "
)


class OCREngine:
    """
    EasyOCR reader for Hindi and English.

    The reader is created on first use in a worker thread, since loading
    the detection and recognition models is slow.
    """

    def __init__(self, languages: Optional[List[str]] = None, reader=None):
        self.languages = languages or list(settings.OCR_LANGUAGES)
        self._reader = reader
        self._lock = asyncio.Lock()

    @property
    def is_loaded(self) -> bool:
        return self._reader is not None

    async def initialize(self):
        """Load the EasyOCR reader."""
        async with self._lock:
            if self._reader is not None:
                return
            logger.info(f"Loading EasyOCR reader for {self.languages}")
            loop = asyncio.get_event_loop()
            self._reader = await loop.run_in_executor(None, self._create_reader)
            logger.info("EasyOCR reader loaded")

    def _create_reader(self):
        try:
            import easyocr
        except ImportError:
            raise OCREngineUnavailableException("easyocr is not installed")

        try:
            return easyocr.Reader(
                self.languages,
                gpu=False,
                model_storage_directory=str(settings.MODELS_DIR / "easyocr"),
                verbose=False
            )
        except Exception as e:
            raise OCREngineUnavailableException(str(e))

    async def recognize(self, image_bytes: bytes) -> str:
        """Run OCR on an encoded image and return lines joined by newlines."""
        if self._reader is None:
            await self.initialize()

        try:
            image = np.asarray(Image.open(io.BytesIO(image_bytes)).convert("L"))
        except Exception as e:
            raise ImageDecodeException(str(e))

        loop = asyncio.get_event_loop()
        lines = await loop.run_in_executor(None, self._read_sync, image)
        text = "\n".join(line for line in lines if line and line.strip())
        logger.info(f"OCR extracted {len(lines)} text regions")
        return text

    def _read_sync(self, image: np.ndarray) -> List[str]:
        try:
            return self._reader.readtext(
                image,
                detail=0,
                paragraph=False,
                allowlist=OCR_ALLOWLIST
            )
        except Exception as e:
            raise OCREngineUnavailableException(f"recognition failed: {e}")

    def cleanup(self):
        self._reader = None
