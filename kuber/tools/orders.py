"""
Order Actions.
Order intake and atomic order placement against inventory.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from kuber.config import PAYMENT_METHODS
from kuber.core.exceptions import RecordNotFoundException
from kuber.core.intent import Intent
from kuber.core.text import format_quantity, generate_order_number
from kuber.db.models import Order
from kuber.db.store import RecordStore
from kuber.tools.registry import Action, ActionContext, ActionReply, ActionRouter

logger = logging.getLogger(__name__)

DEFAULT_GST_RATE = 5.0


@dataclass
class OrderLine:
    """Requested quantity of one inventory item."""
    product_id: int
    quantity: float
    gst_rate: float = DEFAULT_GST_RATE


class OrderService:
    """Prices order lines from inventory and commits them in one transaction."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def place_order(
        self,
        lines: List[OrderLine],
        payment_method: str = "cash",
        customer_name: str = "Walk-in",
        customer_phone: Optional[str] = None
    ) -> Order:
        """
        Place an order.

        Prices come from the inventory's current sell price, profit from
        sell minus buy price. Stock is validated and decremented by
        RecordStore.place_order, so an order that exceeds stock raises
        InsufficientStockException and changes nothing.

        Args:
            lines: Items and quantities to sell
            payment_method: One of PAYMENT_METHODS
            customer_name: Customer for the bill
            customer_phone: Optional phone number

        Returns:
            The persisted Order with its items
        """
        if not lines:
            raise ValueError("An order needs at least one line")
        if payment_method not in PAYMENT_METHODS:
            raise ValueError(f"Unknown payment method: {payment_method}")

        subtotal = 0.0
        gst_amount = 0.0
        profit = 0.0
        line_items = []

        for line in lines:
            product = await self.store.get_by_id("inventory", line.product_id)
            if product is None:
                raise RecordNotFoundException("inventory", str(line.product_id))

            amount = line.quantity * product.sell_price
            subtotal += amount
            gst_amount += amount * line.gst_rate / 100
            profit += line.quantity * (product.sell_price - product.buy_price)

            line_items.append({
                "product_id": product.id,
                "product_name": product.product_name,
                "quantity": line.quantity,
                "unit_price": product.sell_price,
                "gst_rate": line.gst_rate,
            })

        order = {
            "order_number": generate_order_number(),
            "customer_name": customer_name,
            "customer_phone": customer_phone,
            "subtotal": round(subtotal, 2),
            "gst_amount": round(gst_amount, 2),
            "total": round(subtotal + gst_amount, 2),
            "profit": round(profit, 2),
            "payment_method": payment_method,
            "status": "completed",
        }

        return await self.store.place_order(order, line_items)


async def place_order_handler(ctx: ActionContext) -> ActionReply:
    """
    Take an order request.

    The order is not written yet: the shopkeeper is asked for the
    payment mode first.
    """
    entities = ctx.entities
    if entities.product and ctx.session is not None:
        ctx.session.context.last_product = entities.product

    if entities.product:
        amount = ""
        if entities.quantity is not None:
            amount = f"{format_quantity(entities.quantity)} {entities.unit or ''}".rstrip() + " "
        return ActionReply(
            f"Order samajh liya: {amount}{entities.product}. "
            f"Abhi payment mode choose karein - Cash, UPI, ya Card?",
            grounded=False
        )

    return ActionReply(
        "Order samajh liya. Abhi payment mode choose karein - Cash, UPI, ya Card?",
        grounded=False
    )


async def register_order_actions(router: ActionRouter):
    """Register order actions with the router."""

    router.register(Action(
        intent=Intent.PLACE_ORDER,
        name="place_order",
        description="Take an order and ask how the customer will pay.",
        handler=place_order_handler
    ))

    logger.info("Order actions registered")
