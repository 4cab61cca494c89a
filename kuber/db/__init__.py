"""Database module initialization."""

from kuber.db.database import init_db, close_db, get_db
from kuber.db.models import InventoryItem, Order, OrderItem, UdharEntry
from kuber.db.store import RecordStore

__all__ = [
    "init_db",
    "close_db",
    "get_db",
    "InventoryItem",
    "Order",
    "OrderItem",
    "UdharEntry",
    "RecordStore"
]
