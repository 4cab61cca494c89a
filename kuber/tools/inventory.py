"""
Inventory Actions.
Stock lookups, stock statistics and low-stock alerts.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

from kuber.config import get_settings
from kuber.core.intent import Intent
from kuber.core.text import format_inr, format_quantity
from kuber.db.models import InventoryItem
from kuber.db.store import RecordStore
from kuber.tools.registry import Action, ActionContext, ActionReply, ActionRouter

logger = logging.getLogger(__name__)
settings = get_settings()

MAX_LISTED_ITEMS = 5


@dataclass
class InventoryStats:
    total_items: int
    total_value: float
    low_stock_count: int


class InventoryService:
    """Read-side queries over the inventory table."""

    def __init__(self, store: RecordStore, threshold: Optional[float] = None):
        self.store = store
        self.threshold = threshold if threshold is not None else settings.LOW_STOCK_THRESHOLD

    async def search(self, query: str) -> List[InventoryItem]:
        """Case-insensitive substring match on product name."""
        needle = (query or "").lower().strip()
        items = await self.store.get_all("inventory")
        if not needle:
            return items
        return [item for item in items if needle in item.product_name.lower()]

    async def stats(self) -> InventoryStats:
        items = await self.store.get_all("inventory")
        return InventoryStats(
            total_items=len(items),
            total_value=sum(item.quantity * (item.sell_price or 0) for item in items),
            low_stock_count=sum(1 for item in items if item.is_low_stock(self.threshold)),
        )

    async def low_stock(self) -> List[InventoryItem]:
        """Items at or below their reorder point, emptiest first."""
        items = await self.store.get_all("inventory")
        low = [item for item in items if item.is_low_stock(self.threshold)]
        return sorted(low, key=lambda item: item.quantity)


def describe_item(item: InventoryItem, threshold: float) -> str:
    status = "Stock kam hai!" if item.is_low_stock(threshold) else "Stock theek hai."
    return f"{item.product_name}: {format_quantity(item.quantity)} {item.unit} available. {status}"


async def inventory_check_handler(ctx: ActionContext) -> ActionReply:
    """
    Answer a stock question.

    With a product entity, report that product's stock and whether it
    is running low. Without one, summarize the whole inventory.
    """
    service = InventoryService(ctx.store)
    product = ctx.entities.product

    if product:
        matches = await service.search(product)
        if not matches:
            return ActionReply(f"Sorry, {product} nahi mila. Stock mein nahi hai.", grounded=False)

        item = matches[0]
        if ctx.session is not None:
            ctx.session.context.last_product = item.product_name
        return ActionReply(describe_item(item, service.threshold))

    stats = await service.stats()
    return ActionReply(
        f"Total {stats.total_items} items hain. Value: {format_inr(stats.total_value)}. "
        f"{stats.low_stock_count} items ka stock kam hai."
    )


async def low_stock_handler(ctx: ActionContext) -> ActionReply:
    service = InventoryService(ctx.store)
    items = await service.low_stock()

    if not items:
        return ActionReply("Sab items ka stock theek hai. Koi alert nahi!", grounded=False)

    names = ", ".join(item.product_name for item in items[:MAX_LISTED_ITEMS])
    reply = f"{len(items)} items ka stock kam hai: {names}"
    if len(items) > MAX_LISTED_ITEMS:
        reply += f" (+{len(items) - MAX_LISTED_ITEMS} aur)"
    return ActionReply(reply + ". Jaldi order karein!")


async def register_inventory_actions(router: ActionRouter):
    """Register inventory actions with the router."""

    router.register(Action(
        intent=Intent.INVENTORY_CHECK,
        name="check_inventory",
        description="Stock of one product, or a summary of the whole inventory.",
        handler=inventory_check_handler
    ))

    router.register(Action(
        intent=Intent.LOW_STOCK_ALERT,
        name="low_stock_alert",
        description="Items at or below their reorder point.",
        handler=low_stock_handler
    ))

    logger.info("Inventory actions registered")
