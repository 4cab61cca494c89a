"""
Text helpers shared by the dialogue and voice layers.
UI trigger handling, speech cleanup and Indian formatting.
"""

import re
from datetime import datetime
from typing import List, Optional

TRIGGER_PATTERN = re.compile(r"\[\[(.*?)\]\]")
SPEECH_NOISE_PATTERNS = (
    re.compile(r"\[\[.*?\]\]"),
    re.compile(r"\[SHOW_.*?\]"),
    re.compile(r"\[INTENT:.*?\]"),
    re.compile(r"\[CONTEXT:.*?\]", re.DOTALL),
)
WHITESPACE_PATTERN = re.compile(r"\s+")
CONTROL_TOKEN_PATTERN = re.compile(
    r"[ \t]*(?:\[\[.*?\]\]|\[SHOW_.*?\]|\[INTENT:.*?\]|\[CONTEXT:.*?\])",
    re.DOTALL
)


def remove_triggers(text: str) -> str:
    """
    Remove UI triggers and prompt annotations, with the spaces before them.

    Other whitespace in the text is kept as written.
    """
    return CONTROL_TOKEN_PATTERN.sub("", text or "").strip()


def extract_triggers(text: str) -> List[str]:
    """Return the [[...]] tokens in the order they appear."""
    return [f"[[{name}]]" for name in TRIGGER_PATTERN.findall(text or "")]


def clean_for_speech(text: str) -> str:
    """Strip every control token so only speakable text remains."""
    cleaned = text or ""
    for pattern in SPEECH_NOISE_PATTERNS:
        cleaned = pattern.sub("", cleaned)
    return WHITESPACE_PATTERN.sub(" ", cleaned).strip()


def append_trigger(text: str, trigger: Optional[str]) -> str:
    """Append a trigger token unless the reply already carries it."""
    if not trigger or trigger in text:
        return text
    return f"{text} {trigger}"


def format_inr(amount: float) -> str:
    """Format an amount in rupees with Indian digit grouping."""
    negative = amount < 0
    rupees, paise = f"{abs(amount):.2f}".split(".")

    if len(rupees) > 3:
        head, tail = rupees[:-3], rupees[-3:]
        groups = []
        while len(head) > 2:
            groups.insert(0, head[-2:])
            head = head[:-2]
        if head:
            groups.insert(0, head)
        rupees = ",".join(groups + [tail])

    formatted = f"₹{rupees}" if paise == "00" else f"₹{rupees}.{paise}"
    return f"-{formatted}" if negative else formatted


def format_quantity(quantity: float) -> str:
    """Drop a trailing .0 from whole quantities."""
    if float(quantity).is_integer():
        return str(int(quantity))
    return f"{quantity:g}"


def generate_order_number(now: Optional[datetime] = None) -> str:
    """Order numbers look like ORD-20240131-142530-123456."""
    now = now or datetime.now()
    return f"ORD-{now.strftime('%Y%m%d-%H%M%S-%f')}"
