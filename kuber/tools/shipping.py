"""
Shipping Actions.
Courier rate comparison with a cost/speed recommendation score.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from kuber.core.intent import Intent
from kuber.core.text import format_inr, format_quantity
from kuber.tools.registry import Action, ActionContext, ActionReply, ActionRouter

logger = logging.getLogger(__name__)

RATE_PER_KG = 15.0
COD_SURCHARGE = 30.0
MIN_WEIGHT_KG = 0.1
MAX_WEIGHT_KG = 50.0
VOLUME_DISCOUNT_MIN_KG = 10.0
VOLUME_DISCOUNT_THRESHOLD_KG = 15

DELIVERY_SPEEDS = ("express", "standard", "economy")
PAYMENT_MODES = ("prepaid", "cod")

KG_UNITS = ("kg", "kilo")
EXPRESS_WORDS = ("express", "jaldi", "urgent", "fast")
ECONOMY_WORDS = ("economy", "sasta", "cheap", "saste")


@dataclass(frozen=True)
class Courier:
    provider: str
    name: str
    rate_multiplier: float
    fuel_surcharge: float
    express_days: int
    standard_days: int
    tracking: bool = True
    insurance: bool = False


COURIERS = (
    Courier("bluedart", "BlueDart", 1.8, 0.10, express_days=1, standard_days=2, insurance=True),
    Courier("delhivery", "Delhivery", 1.2, 0.08, express_days=2, standard_days=3),
    Courier("dtdc", "DTDC", 1.0, 0.05, express_days=3, standard_days=5),
)


@dataclass
class ShippingRate:
    provider: str
    provider_name: str
    rate: float
    fuel_surcharge: float
    cod_charges: float
    total_cost: float
    estimated_days: int
    tracking_available: bool
    insurance_included: bool
    recommendation_score: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "provider": self.provider,
            "providerName": self.provider_name,
            "rate": self.rate,
            "fuelSurcharge": self.fuel_surcharge,
            "codCharges": self.cod_charges,
            "totalCost": self.total_cost,
            "estimatedDays": self.estimated_days,
            "trackingAvailable": self.tracking_available,
            "insuranceIncluded": self.insurance_included,
            "recommendationScore": self.recommendation_score,
        }


@dataclass
class ShippingQuote:
    weight: float
    payment_mode: str
    delivery_speed: str
    rates: List[ShippingRate] = field(default_factory=list)
    origin: Optional[str] = None
    destination: Optional[str] = None

    @property
    def recommended(self) -> ShippingRate:
        return self.rates[0]

    @property
    def volume_discount_available(self) -> bool:
        return self.weight > VOLUME_DISCOUNT_MIN_KG

    @property
    def message(self) -> str:
        best = self.recommended
        message = (
            f"Found {len(self.rates)} shipping options. "
            f"Best: {best.provider_name} at {format_inr(best.total_cost)} ({best.estimated_days} days)."
        )
        if self.volume_discount_available:
            message += f" Volume discount available for orders above {VOLUME_DISCOUNT_THRESHOLD_KG}kg!"
        return message


def recommendation_score(rate: ShippingRate, delivery_speed: str) -> float:
    """Balance cost against speed; higher is better, clamped to 0..100."""
    score = 100 - rate.total_cost / 10

    if delivery_speed == "express":
        score -= rate.estimated_days * 10
    elif delivery_speed == "economy":
        score += rate.estimated_days * 2

    if rate.tracking_available:
        score += 5
    if rate.insurance_included:
        score += 3

    return max(0.0, min(100.0, score))


def calculate_shipping_rates(
    weight: float = 1.0,
    payment_mode: str = "prepaid",
    delivery_speed: str = "standard",
    origin: Optional[str] = None,
    destination: Optional[str] = None
) -> ShippingQuote:
    """
    Quote every courier for a parcel.

    Rates are sorted best recommendation first. Weight is clamped to
    0.1..50 kg.
    """
    if payment_mode not in PAYMENT_MODES:
        raise ValueError(f"Unknown payment mode: {payment_mode}")
    if delivery_speed not in DELIVERY_SPEEDS:
        raise ValueError(f"Unknown delivery speed: {delivery_speed}")

    weight = max(MIN_WEIGHT_KG, min(MAX_WEIGHT_KG, weight))
    base = weight * RATE_PER_KG
    cod = COD_SURCHARGE if payment_mode == "cod" else 0.0

    rates = []
    for courier in COURIERS:
        rate = base * courier.rate_multiplier
        fuel = base * courier.fuel_surcharge
        shipping_rate = ShippingRate(
            provider=courier.provider,
            provider_name=courier.name,
            rate=round(rate, 2),
            fuel_surcharge=round(fuel, 2),
            cod_charges=cod,
            total_cost=round(rate + fuel + cod, 2),
            estimated_days=courier.express_days if delivery_speed == "express" else courier.standard_days,
            tracking_available=courier.tracking,
            insurance_included=courier.insurance,
        )
        shipping_rate.recommendation_score = recommendation_score(shipping_rate, delivery_speed)
        rates.append(shipping_rate)

    rates.sort(key=lambda r: r.recommendation_score, reverse=True)

    return ShippingQuote(
        weight=weight,
        payment_mode=payment_mode,
        delivery_speed=delivery_speed,
        rates=rates,
        origin=origin,
        destination=destination,
    )


def _speed_from_text(text: str) -> str:
    lowered = text.lower()
    if any(word in lowered for word in EXPRESS_WORDS):
        return "express"
    if any(word in lowered for word in ECONOMY_WORDS):
        return "economy"
    return "standard"


async def shipping_handler(ctx: ActionContext) -> ActionReply:
    entities = ctx.entities
    weight = 1.0
    if entities.quantity is not None and entities.unit in KG_UNITS:
        weight = entities.quantity

    payment_mode = "cod" if "cod" in ctx.text.lower().split() else "prepaid"
    quote = calculate_shipping_rates(weight, payment_mode, _speed_from_text(ctx.text))

    options = ", ".join(
        f"{r.provider_name}: {format_inr(r.total_cost)} ({r.estimated_days} days)"
        for r in quote.rates
    )
    reply = (
        f"{format_quantity(quote.weight)} kg ke liye shipping options: {options}. "
        f"Best option: {quote.recommended.provider_name}."
    )
    if quote.volume_discount_available:
        reply += f" {VOLUME_DISCOUNT_THRESHOLD_KG} kg se upar volume discount milega!"
    return ActionReply(reply)


async def register_shipping_actions(router: ActionRouter):
    """Register shipping actions with the router."""

    router.register(Action(
        intent=Intent.SHIPPING_QUERY,
        name="calculate_shipping",
        description="Compare courier rates and recommend one.",
        handler=shipping_handler
    ))

    logger.info("Shipping actions registered")
