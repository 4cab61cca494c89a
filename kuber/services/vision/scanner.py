"""
Two-tier parchi scanner.
Vision model first; local OCR when the vision tier fails for any reason.
"""

import asyncio
import logging
import time
from typing import Optional

from kuber.core.exceptions import (
    ParchiExtractionException,
    VisionException,
    VisionTierException
)
from kuber.services.vision.extractor import VisionExtractor
from kuber.services.vision.ocr import OCREngine
from kuber.services.vision.parser import ParchiData, parse_parchi_text
from kuber.services.vision.preprocess import preprocess_for_ocr

logger = logging.getLogger(__name__)


class ParchiScanner:
    """
    Extracts line items from a parchi photo.

    scan() only raises ParchiExtractionException, and only when both
    tiers fail. A readable parchi with no recognizable items is a
    successful scan with an empty item list.
    """

    def __init__(
        self,
        vision: Optional[VisionExtractor] = None,
        ocr: Optional[OCREngine] = None
    ):
        self.vision = vision or VisionExtractor()
        self.ocr = ocr or OCREngine()

    async def initialize(self):
        await self.vision.initialize()

    async def scan(self, image_data_url: str) -> ParchiData:
        start_time = time.time()

        try:
            logger.info("Attempting vision model extraction...")
            result = await self.vision.extract(image_data_url)
            logger.info(
                f"Vision extraction succeeded with {len(result.items)} items "
                f"in {(time.time() - start_time) * 1000:.0f}ms"
            )
            return result
        except VisionTierException as e:
            logger.warning(f"{e.message}, falling back to local OCR")
        except Exception as e:
            logger.error(f"Vision extraction error: {e}, falling back to local OCR")

        try:
            loop = asyncio.get_event_loop()
            processed = await loop.run_in_executor(None, preprocess_for_ocr, image_data_url)
            raw_text = await self.ocr.recognize(processed)
        except VisionException as e:
            logger.error(f"Local OCR failed: {e.message}")
            raise ParchiExtractionException(e.message)

        result = parse_parchi_text(raw_text)
        logger.info(
            f"OCR fallback parsed {len(result.items)} items "
            f"(confidence {result.confidence:.2f}) in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return result
