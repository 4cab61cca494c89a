"""
SQLAlchemy Database Models.
Defines the shop's inventory, orders and credit ledger.
"""

from datetime import datetime
from typing import Any, Dict

from sqlalchemy import Column, String, Float, Integer, DateTime, ForeignKey, Text, Boolean
from sqlalchemy.orm import relationship

from kuber.db.database import Base


class SerializableMixin:
    """Column-wise dict conversion for API responses and exports."""

    def to_dict(self) -> Dict[str, Any]:
        data = {}
        for column in self.__table__.columns:
            value = getattr(self, column.name)
            if isinstance(value, datetime):
                value = value.isoformat()
            data[column.name] = value
        return data


class InventoryItem(SerializableMixin, Base):
    """Stocked product."""
    __tablename__ = "inventory"

    id = Column(Integer, primary_key=True, autoincrement=True)
    product_name = Column(String(255), nullable=False, index=True)
    category = Column(String(100), index=True)
    quantity = Column(Float, nullable=False, default=0)
    unit = Column(String(20), default="pcs")
    buy_price = Column(Float, default=0)
    sell_price = Column(Float, default=0)
    reorder_point = Column(Float, default=10)
    last_updated = Column(DateTime, default=datetime.now, onupdate=datetime.now)

    def is_low_stock(self, default_threshold: float = 10) -> bool:
        threshold = self.reorder_point if self.reorder_point is not None else default_threshold
        return self.quantity <= threshold

    def __repr__(self):
        return f"<InventoryItem {self.id}: {self.product_name} ({self.quantity} {self.unit})>"


class Order(SerializableMixin, Base):
    """Sale placed against inventory."""
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_number = Column(String(50), unique=True, index=True, nullable=False)
    customer_name = Column(String(255), default="Walk-in")
    customer_phone = Column(String(20))
    subtotal = Column(Float, default=0)
    gst_amount = Column(Float, default=0)
    total = Column(Float, default=0)
    profit = Column(Float, default=0)
    payment_method = Column(String(20), default="cash")
    status = Column(String(20), default="completed", index=True)
    created_at = Column(DateTime, default=datetime.now, index=True)

    # Relationships
    items = relationship("OrderItem", back_populates="order", lazy="selectin")

    def __repr__(self):
        return f"<Order {self.order_number}: {self.total}>"


class OrderItem(SerializableMixin, Base):
    """Order line item."""
    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True, autoincrement=True)
    order_id = Column(Integer, ForeignKey("orders.id"), index=True)
    product_id = Column(Integer, ForeignKey("inventory.id"), index=True)
    product_name = Column(String(255))
    quantity = Column(Float, default=1)
    unit_price = Column(Float, default=0)
    gst_rate = Column(Float, default=0)

    # Relationships
    order = relationship("Order", back_populates="items")

    def __repr__(self):
        return f"<OrderItem {self.product_name} x{self.quantity}>"


class UdharEntry(SerializableMixin, Base):
    """Credit ledger entry. Credits add to a party's balance, payments reduce it."""
    __tablename__ = "udhar_khata"

    id = Column(Integer, primary_key=True, autoincrement=True)
    party_name = Column(String(255), nullable=False, index=True)
    amount = Column(Float, nullable=False)
    type = Column(String(20), nullable=False, default="credit")
    description = Column(Text)
    created_at = Column(DateTime, default=datetime.now)
    settled_at = Column(DateTime)
    is_settled = Column(Boolean, default=False, index=True)

    def __repr__(self):
        return f"<UdharEntry {self.party_name}: {self.type} {self.amount}>"
