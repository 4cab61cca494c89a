"""
Vision model tier for parchi extraction.
Sends the photo to a Groq multimodal model and parses its JSON answer.
"""

import asyncio
import json
import logging
import time
from typing import Any, Dict, Optional

from kuber.config import get_settings
from kuber.core.exceptions import VisionTierException
from kuber.services.vision.parser import ParchiData, ParchiItem, to_float

logger = logging.getLogger(__name__)
settings = get_settings()

EXTRACTION_PROMPT = """You are a specialized OCR parser for Indian merchant "Parchis" (handwritten or printed bills).
Extract all items from the image into a JSON format.
Include product name, quantity, unit (if any), and price for each item.
Also calculate the total amount if visible.
Respond ONLY with the JSON object.

Example format:
{
  "items": [
    {"product": "Atta", "quantity": 10, "unit": "kg", "price": 450},
    {"product": "Milk", "quantity": 2, "unit": "packet", "price": 60}
  ],
  "totalAmount": 510
}"""

VISION_CONFIDENCE = 0.95


def strip_code_fences(content: str) -> str:
    """Return the body of a ```json fenced block, or the text unchanged."""
    if "```json" in content:
        return content.split("```json", 1)[1].split("```", 1)[0].strip()
    if "```" in content:
        return content.split("```", 1)[1].split("```", 1)[0].strip()
    return content.strip()


def parse_vision_payload(content: str) -> Dict[str, Any]:
    """Decode the model answer into a dict with items and totalAmount."""
    try:
        payload = json.loads(strip_code_fences(content or "{}"))
    except (json.JSONDecodeError, TypeError) as e:
        raise VisionTierException(f"malformed JSON from vision model: {e}")

    if not isinstance(payload, dict):
        raise VisionTierException("vision model did not return an object")

    items = payload.get("items") or []
    if not isinstance(items, list):
        raise VisionTierException("items is not a list")

    return {"items": items, "totalAmount": payload.get("totalAmount")}


class VisionExtractor:
    """Groq vision client for structured parchi extraction."""

    def __init__(self, client=None, model: Optional[str] = None):
        self._client = client
        self._model = model or settings.VISION_MODEL_ID

    async def initialize(self):
        if self._client is not None:
            return
        if not settings.GROQ_API_KEY.strip():
            logger.warning("GROQ_API_KEY not set, vision tier disabled")
            return

        from groq import AsyncGroq

        self._client = AsyncGroq(api_key=settings.GROQ_API_KEY)
        logger.info(f"Vision extractor initialized with model: {self._model}")

    @property
    def is_available(self) -> bool:
        return self._client is not None

    async def extract_payload(self, image_data_url: str) -> Dict[str, Any]:
        """Ask the model for {items, totalAmount}. Any failure raises VisionTierException."""
        if self._client is None:
            raise VisionTierException("Groq API key not configured.")

        start_time = time.time()
        try:
            response = await asyncio.wait_for(
                self._client.chat.completions.create(
                    model=self._model,
                    messages=[
                        {
                            "role": "user",
                            "content": [
                                {"type": "text", "text": EXTRACTION_PROMPT},
                                {"type": "image_url", "image_url": {"url": image_data_url}}
                            ]
                        }
                    ],
                    temperature=0,
                    max_tokens=1024
                ),
                timeout=settings.VISION_TIMEOUT_SECONDS
            )
        except asyncio.TimeoutError:
            raise VisionTierException(f"timed out after {settings.VISION_TIMEOUT_SECONDS} seconds")
        except Exception as e:
            raise VisionTierException(str(e))

        try:
            content = response.choices[0].message.content or "{}"
        except (AttributeError, IndexError, TypeError) as e:
            raise VisionTierException(f"unexpected response from vision model: {e}")

        payload = parse_vision_payload(content)
        logger.info(
            f"Vision model returned {len(payload['items'])} items "
            f"in {(time.time() - start_time) * 1000:.0f}ms"
        )
        return payload

    async def extract(self, image_data_url: str) -> ParchiData:
        payload = await self.extract_payload(image_data_url)
        items = [
            ParchiItem.from_dict(item)
            for item in payload["items"]
            if isinstance(item, dict)
        ]
        total = to_float(payload.get("totalAmount"))
        return ParchiData(
            raw_text=json.dumps(payload, ensure_ascii=False),
            items=[item for item in items if item.product],
            total_amount=total,
            confidence=VISION_CONFIDENCE,
            source="vision"
        )
