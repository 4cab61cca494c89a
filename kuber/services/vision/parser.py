"""
Parchi text parsing.
Turns OCR text into structured line items with a best-effort total.
"""

import logging
import re
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)

_UNIT = r"(kg|kilo|किलो|किग्रा|packet|box|pcs)"
_CURRENCY = r"(?:₹|Rs\.?|रु\.?)"

# Atta - 10 kg - ₹450
STANDARD_LINE = re.compile(
    rf"^(.+?)\s*[-–]\s*(\d+\.?\d*)\s*{_UNIT}?\s*[-–]?\s*{_CURRENCY}?\s*(\d+\.?\d*)$",
    re.IGNORECASE,
)
# चावल 5 किलो 200
SPACED_LINE = re.compile(
    rf"^(.+?)\s+(\d+\.?\d*)\s*{_UNIT}?\s+{_CURRENCY}?\s*(\d+\.?\d*)$",
    re.IGNORECASE,
)
TOTAL_LINE = re.compile(
    rf"(?:total|कुल).*?{_CURRENCY}?\s*(\d+\.?\d*)",
    re.IGNORECASE,
)


@dataclass
class ParchiItem:
    """One line item read from a parchi."""
    product: str
    quantity: Optional[float] = None
    unit: Optional[str] = None
    price: Optional[float] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ParchiItem":
        return cls(
            product=str(data.get("product", "")).strip(),
            quantity=to_float(data.get("quantity")),
            unit=data.get("unit") or None,
            price=to_float(data.get("price")),
        )


@dataclass
class ParchiData:
    """Structured result of a parchi scan."""
    raw_text: str
    items: List[ParchiItem] = field(default_factory=list)
    total_amount: Optional[float] = None
    confidence: float = 0.0
    source: str = "ocr"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "rawText": self.raw_text,
            "items": [asdict(item) for item in self.items],
            "totalAmount": self.total_amount,
            "confidence": self.confidence,
            "source": self.source,
        }


def to_float(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def parse_parchi_text(raw_text: str) -> ParchiData:
    """
    Parse OCR output line by line.

    Total lines set the total and are not parsed as items. Lines that
    match neither item format are dropped. Without a total line the
    total is the sum of item prices. Confidence is the share of lines
    that produced an item.
    """
    lines = [line.strip() for line in (raw_text or "").split("\n") if line.strip()]
    items: List[ParchiItem] = []
    total_amount: Optional[float] = None

    for line in lines:
        total_match = TOTAL_LINE.search(line)
        if total_match:
            total_amount = float(total_match.group(1))
            continue

        match = STANDARD_LINE.match(line) or SPACED_LINE.match(line)
        if not match:
            continue

        product = match.group(1).strip()
        if product:
            items.append(ParchiItem(
                product=product,
                quantity=float(match.group(2)),
                unit=match.group(3) or "unit",
                price=float(match.group(4)),
            ))

    if not total_amount and items:
        total_amount = sum(item.price or 0 for item in items)

    confidence = min(1.0, len(items) / len(lines)) if lines else 0.0
    logger.debug(f"Parsed {len(items)} items from {len(lines)} lines")

    return ParchiData(
        raw_text=raw_text or "",
        items=items,
        total_amount=total_amount,
        confidence=confidence,
        source="ocr",
    )
