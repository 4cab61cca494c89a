"""
Record Store.
Async data access for inventory, orders and the udhar ledger.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import delete, select, update

from kuber.core.exceptions import (
    InsufficientStockException,
    RecordNotFoundException,
    UnknownTableException
)
from kuber.db.database import get_db
from kuber.db.models import InventoryItem, Order, OrderItem, UdharEntry

logger = logging.getLogger(__name__)

TABLES = {
    "inventory": InventoryItem,
    "orders": Order,
    "order_items": OrderItem,
    "udhar_khata": UdharEntry,
}


class RecordStore:
    """
    Table-level access to the shop database.

    Every call opens its own session through get_db(), so each
    operation is one transaction.
    """

    def __init__(self):
        self._order_lock = asyncio.Lock()

    def _model(self, table: str):
        try:
            return TABLES[table]
        except KeyError:
            raise UnknownTableException(table)

    async def get_all(self, table: str) -> List[Any]:
        model = self._model(table)
        async with get_db() as db:
            result = await db.execute(select(model).order_by(model.id))
            return list(result.scalars().all())

    async def filter(self, table: str, **fields) -> List[Any]:
        """Rows whose columns equal every given value."""
        model = self._model(table)
        async with get_db() as db:
            stmt = select(model)
            for name, value in fields.items():
                stmt = stmt.where(getattr(model, name) == value)
            result = await db.execute(stmt.order_by(model.id))
            return list(result.scalars().all())

    async def get_by_id(self, table: str, record_id: int) -> Optional[Any]:
        model = self._model(table)
        async with get_db() as db:
            return await db.get(model, record_id)

    async def insert(self, table: str, row: Dict[str, Any]) -> Any:
        model = self._model(table)
        async with get_db() as db:
            record = model(**row)
            db.add(record)
            await db.flush()
            logger.debug(f"Inserted into {table}: {record!r}")
            return record

    async def update_fields(self, table: str, record_id: int, fields: Dict[str, Any]) -> Any:
        model = self._model(table)
        async with get_db() as db:
            record = await db.get(model, record_id)
            if record is None:
                raise RecordNotFoundException(table, str(record_id))
            for name, value in fields.items():
                setattr(record, name, value)
            await db.flush()
            return record

    async def place_order(
        self,
        order: Dict[str, Any],
        line_items: List[Dict[str, Any]]
    ) -> Order:
        """
        Insert an order and decrement stock for each line in one transaction.

        Stock is decremented with a conditional UPDATE, so the check and
        the write happen together in the database. If any product lacks
        stock, InsufficientStockException is raised and the transaction
        rolls back with nothing applied. Orders from this process are
        placed one at a time.
        """
        requested_totals: Dict[Any, float] = {}
        names: Dict[Any, str] = {}
        for line in line_items:
            product_id = line["product_id"]
            requested_totals[product_id] = requested_totals.get(product_id, 0) + line["quantity"]
            names.setdefault(product_id, line.get("product_name") or str(product_id))

        async with self._order_lock:
            async with get_db() as db:
                for product_id, requested in requested_totals.items():
                    result = await db.execute(
                        update(InventoryItem)
                        .where(InventoryItem.id == product_id, InventoryItem.quantity >= requested)
                        .values(quantity=InventoryItem.quantity - requested)
                        .execution_options(synchronize_session=False)
                    )
                    if result.rowcount == 0:
                        product = await db.get(InventoryItem, product_id)
                        raise InsufficientStockException(
                            names[product_id],
                            requested,
                            product.quantity if product is not None else 0
                        )

                record = Order(**order)
                for line in line_items:
                    record.items.append(OrderItem(**line))

                db.add(record)
                await db.flush()

                logger.info(f"Order {record.order_number} placed with {len(line_items)} lines")
                return record

    async def export(self) -> Dict[str, List[Dict[str, Any]]]:
        """Dump every table as plain dicts."""
        return {
            table: [row.to_dict() for row in await self.get_all(table)]
            for table in ("inventory", "orders", "order_items", "udhar_khata")
        }

    async def clear_all(self):
        async with get_db() as db:
            for model in (OrderItem, Order, UdharEntry, InventoryItem):
                await db.execute(delete(model))
        logger.info("All records cleared")
