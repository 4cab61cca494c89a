"""
Intent and entity detection for shopkeeper commands.

Rules are evaluated in a fixed priority order and the first match wins.
The order is part of the contract: parchi/scan phrasing beats stock and
order words, and specific low-stock phrasing beats the generic
"stock" trigger.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from kuber.config import UI_TRIGGERS


class Intent(str, Enum):
    """Supported shopkeeper intents."""
    INVENTORY_CHECK = "INVENTORY_CHECK"
    PLACE_ORDER = "PLACE_ORDER"
    SHIPPING_QUERY = "SHIPPING_QUERY"
    PARCHI_SCAN = "PARCHI_SCAN"
    PROFIT_ANALYSIS = "PROFIT_ANALYSIS"
    UDHAR_KHATA = "UDHAR_KHATA"
    LOW_STOCK_ALERT = "LOW_STOCK_ALERT"
    UNKNOWN = "UNKNOWN"


@dataclass(frozen=True)
class Entities:
    """Entities pulled out of an utterance. Missing values stay None."""
    product: Optional[str] = None
    quantity: Optional[float] = None
    unit: Optional[str] = None
    party: Optional[str] = None
    date: Optional[str] = None

    def is_empty(self) -> bool:
        return all(
            value is None
            for value in (self.product, self.quantity, self.unit, self.party, self.date)
        )

    def to_dict(self):
        return {
            key: value
            for key, value in (
                ("product", self.product),
                ("quantity", self.quantity),
                ("unit", self.unit),
                ("party", self.party),
                ("date", self.date),
            )
            if value is not None
        }


@dataclass(frozen=True)
class IntentResult:
    """Outcome of intent detection for one input."""
    intent: Intent
    entities: Entities = field(default_factory=Entities)
    confidence: float = 0.5
    trigger: Optional[str] = None

    def to_dict(self):
        return {
            "intent": self.intent.value,
            "entities": self.entities.to_dict(),
            "confidence": self.confidence,
            "trigger": self.trigger,
        }


@dataclass(frozen=True)
class IntentRule:
    """A substring-triggered rule in the priority list."""
    intent: Intent
    triggers: Tuple[str, ...]
    confidence: float
    trigger: str
    extract_entities: bool = True

    def matches(self, text: str) -> bool:
        return any(token in text for token in self.triggers)


# Priority order, first match wins
INTENT_RULES: Tuple[IntentRule, ...] = (
    IntentRule(
        intent=Intent.PARCHI_SCAN,
        triggers=("scan", "parchi", "photo", "bill", "पर्ची", "स्कैन", "बिल"),
        confidence=0.95,
        trigger=UI_TRIGGERS["parchi"],
        extract_entities=False,
    ),
    IntentRule(
        intent=Intent.LOW_STOCK_ALERT,
        triggers=("low stock", "stock kam", "kam stock", "khatam", "कम स्टॉक", "स्टॉक कम", "खत्म"),
        confidence=0.8,
        trigger=UI_TRIGGERS["low_stock"],
    ),
    IntentRule(
        intent=Intent.INVENTORY_CHECK,
        triggers=("stock", "maal", "item", "inventory", "स्टॉक", "माल"),
        confidence=0.9,
        trigger=UI_TRIGGERS["inventory"],
    ),
    IntentRule(
        intent=Intent.PLACE_ORDER,
        triggers=("order", "buy", "kharid", "mangao", "ऑर्डर", "खरीद", "मंगाओ"),
        confidence=0.85,
        trigger=UI_TRIGGERS["order"],
    ),
    IntentRule(
        intent=Intent.SHIPPING_QUERY,
        triggers=("ship", "delivery", "bhejna", "courier", "डिलीवरी", "भेजना"),
        confidence=0.8,
        trigger=UI_TRIGGERS["shipping"],
    ),
    IntentRule(
        intent=Intent.PROFIT_ANALYSIS,
        triggers=("profit", "faida", "kamayi", "kamai", "analysis", "hikmat", "मुनाफा", "फायदा", "कमाई"),
        confidence=0.85,
        trigger=UI_TRIGGERS["profit"],
        extract_entities=False,
    ),
    IntentRule(
        intent=Intent.UDHAR_KHATA,
        triggers=("udhar", "khata", "bokeh", "hisab", "उधार", "खाता", "हिसाब"),
        confidence=0.9,
        trigger=UI_TRIGGERS["udhar"],
    ),
    IntentRule(
        intent=Intent.LOW_STOCK_ALERT,
        triggers=("kam", "low"),
        confidence=0.8,
        trigger=UI_TRIGGERS["low_stock"],
    ),
)

KNOWN_PRODUCTS: Tuple[str, ...] = (
    "atta", "milk", "doodh", "oil", "shakkar", "chini", "sugar", "rice", "chawal",
    "dal", "namak", "salt", "आटा", "दूध", "चीनी", "चावल",
)

QUANTITY_PATTERN = re.compile(
    r"(\d+(?:\.\d+)?)\s*(kg|kilo|gram|gm|packet|bori|drum|ltr|liter)?",
    re.IGNORECASE,
)
PARTY_PATTERN = re.compile(
    r"\b(?:pe|ka|ki|ko)\s+([a-zA-Zऀ-ॿ]+)",
    re.IGNORECASE,
)

DEFAULT_TRIGGERS = {
    Intent.INVENTORY_CHECK: UI_TRIGGERS["inventory"],
    Intent.PLACE_ORDER: UI_TRIGGERS["order"],
    Intent.SHIPPING_QUERY: UI_TRIGGERS["shipping"],
    Intent.PARCHI_SCAN: UI_TRIGGERS["parchi"],
    Intent.PROFIT_ANALYSIS: UI_TRIGGERS["profit"],
    Intent.UDHAR_KHATA: UI_TRIGGERS["udhar"],
    Intent.LOW_STOCK_ALERT: UI_TRIGGERS["low_stock"],
}

CONTEXT_TEMPLATES = {
    Intent.INVENTORY_CHECK: "User wants to check stock. Include {trigger} in response if items found.",
    Intent.PLACE_ORDER: "User wants to place an order. Confirm details and include {trigger}.",
    Intent.SHIPPING_QUERY: "User is asking about shipping. Show options using {trigger}.",
    Intent.PARCHI_SCAN: "User wants to scan a parchi. Inform them that the camera is opening. Trigger: {trigger}",
    Intent.PROFIT_ANALYSIS: "User wants to see profit/sales analysis. Include {trigger}.",
    Intent.UDHAR_KHATA: "User is checking or adding to the credit ledger (Udhar-Khata). Include {trigger}.",
    Intent.LOW_STOCK_ALERT: "User is worried about low stock. Show alerts via {trigger}.",
}


def detect_intent(text: Optional[str]) -> IntentResult:
    """
    Detect the intent of a typed or spoken command.

    Never raises; empty or unmatched input yields UNKNOWN with
    confidence 0.5 and no trigger.
    """
    normalized = (text or "").lower().strip()
    if not normalized:
        return IntentResult(intent=Intent.UNKNOWN)

    for rule in INTENT_RULES:
        if rule.matches(normalized):
            entities = extract_entities(normalized) if rule.extract_entities else Entities()
            return IntentResult(
                intent=rule.intent,
                entities=entities,
                confidence=rule.confidence,
                trigger=rule.trigger,
            )

    return IntentResult(intent=Intent.UNKNOWN)


def extract_entities(text: str) -> Entities:
    """Extract product, quantity/unit and party name from text."""
    normalized = (text or "").lower()

    product = next((p for p in KNOWN_PRODUCTS if p in normalized), None)

    quantity = None
    unit = None
    match = QUANTITY_PATTERN.search(normalized)
    if match:
        quantity = float(match.group(1))
        unit = match.group(2).lower() if match.group(2) else None

    party = None
    party_match = PARTY_PATTERN.search(normalized)
    if party_match:
        party = party_match.group(1)

    return Entities(product=product, quantity=quantity, unit=unit, party=party)


def get_intent_context(result: IntentResult) -> str:
    """Bracketed instruction appended to an outbound model prompt."""
    template = CONTEXT_TEMPLATES.get(result.intent)
    if template is None:
        return ""
    trigger = result.trigger or DEFAULT_TRIGGERS[result.intent]
    return f"\n[CONTEXT: {template.format(trigger=trigger)}]"
