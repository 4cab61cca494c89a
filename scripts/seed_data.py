"""
Seed Database with Sample Data.
Populates the database with a kirana inventory, a week of orders and
udhar-khata entries.
"""

import asyncio
import json
import random
import sys
from pathlib import Path
from datetime import datetime, timedelta

# Add parent to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from kuber.db.database import init_db, close_db
from kuber.db.store import RecordStore
from kuber.tools.orders import OrderLine, OrderService
from kuber.tools.udhar import UdharLedger


INVENTORY = [
    {"product_name": "Tata Salt", "category": "grocery", "quantity": 50, "unit": "kg", "buy_price": 18, "sell_price": 22, "reorder_point": 10},
    {"product_name": "Maggi Noodles", "category": "snacks", "quantity": 120, "unit": "pcs", "buy_price": 12, "sell_price": 15, "reorder_point": 30},
    {"product_name": "Basmati Rice", "category": "grocery", "quantity": 5, "unit": "kg", "buy_price": 80, "sell_price": 100, "reorder_point": 20},
    {"product_name": "Cooking Oil", "category": "grocery", "quantity": 8, "unit": "ltr", "buy_price": 120, "sell_price": 145, "reorder_point": 10},
    {"product_name": "Sugar", "category": "grocery", "quantity": 25, "unit": "kg", "buy_price": 38, "sell_price": 45, "reorder_point": 10},
    {"product_name": "Aashirvaad Atta", "category": "grocery", "quantity": 40, "unit": "kg", "buy_price": 32, "sell_price": 40, "reorder_point": 10},
    {"product_name": "Toor Dal", "category": "grocery", "quantity": 15, "unit": "kg", "buy_price": 95, "sell_price": 115, "reorder_point": 10},
    {"product_name": "Tea Powder", "category": "beverages", "quantity": 12, "unit": "kg", "buy_price": 280, "sell_price": 320, "reorder_point": 5},
    {"product_name": "Coffee", "category": "beverages", "quantity": 8, "unit": "kg", "buy_price": 450, "sell_price": 520, "reorder_point": 5},
    {"product_name": "Milk Powder", "category": "dairy", "quantity": 20, "unit": "kg", "buy_price": 380, "sell_price": 425, "reorder_point": 5},
    {"product_name": "Blue Pen", "category": "stationery", "quantity": 145, "unit": "pcs", "buy_price": 5, "sell_price": 10, "reorder_point": 50},
    {"product_name": "Red Pen", "category": "stationery", "quantity": 8, "unit": "pcs", "buy_price": 5, "sell_price": 10, "reorder_point": 50},
    {"product_name": "Notebook A4", "category": "stationery", "quantity": 0, "unit": "pcs", "buy_price": 30, "sell_price": 60, "reorder_point": 20},
    {"product_name": "Pencil Box", "category": "stationery", "quantity": 25, "unit": "pcs", "buy_price": 40, "sell_price": 80, "reorder_point": 10},
    {"product_name": "Eraser", "category": "stationery", "quantity": 200, "unit": "pcs", "buy_price": 2, "sell_price": 5, "reorder_point": 30},
    {"product_name": "Sharpener", "category": "stationery", "quantity": 150, "unit": "pcs", "buy_price": 3, "sell_price": 6, "reorder_point": 30},
    {"product_name": "Ruler", "category": "stationery", "quantity": 60, "unit": "pcs", "buy_price": 8, "sell_price": 15, "reorder_point": 10},
    {"product_name": "Glue Stick", "category": "stationery", "quantity": 45, "unit": "pcs", "buy_price": 15, "sell_price": 25, "reorder_point": 10},
    {"product_name": "Surf Excel", "category": "household", "quantity": 30, "unit": "pcs", "buy_price": 90, "sell_price": 110, "reorder_point": 10},
    {"product_name": "Dettol Soap", "category": "personal_care", "quantity": 18, "unit": "pcs", "buy_price": 35, "sell_price": 45, "reorder_point": 20},
]

UDHAR_ENTRIES = [
    ("Ramesh", 450, "credit", "Atta aur dal"),
    ("Ramesh", 200, "payment", "Cash diya"),
    ("Suresh", 1200, "credit", "Mahine ka saman"),
    ("Geeta", 320, "credit", "Chai patti, cheeni"),
    ("Geeta", 320, "payment", "UPI"),
    ("Mohan", 780, "credit", "Tel aur chawal"),
]


async def seed_inventory(store: RecordStore):
    """Seed the inventory."""
    print("📦 Seeding inventory...")

    for item in INVENTORY:
        await store.insert("inventory", item)

    print(f"   ✅ Added {len(INVENTORY)} items")


async def seed_orders(store: RecordStore, days: int = 7):
    """Place a few orders per day for the last week."""
    print("🧾 Seeding orders...")

    rng = random.Random(42)
    service = OrderService(store)
    items = [i for i in await store.get_all("inventory") if i.quantity >= 5]
    now = datetime.now()
    count = 0

    for day in range(days):
        for _ in range(rng.randint(2, 4)):
            picked = rng.sample(items, k=rng.randint(1, 3))
            lines = [OrderLine(product_id=item.id, quantity=rng.randint(1, 2)) for item in picked]
            order = await service.place_order(
                lines,
                payment_method=rng.choice(["cash", "upi", "card"])
            )
            created_at = now - timedelta(days=day, hours=rng.randint(0, 10))
            await store.update_fields("orders", order.id, {"created_at": created_at})
            count += 1

    print(f"   ✅ Added {count} orders")


async def seed_udhar(store: RecordStore):
    """Seed the udhar-khata."""
    print("📒 Seeding udhar-khata...")

    ledger = UdharLedger(store)
    for party, amount, entry_type, description in UDHAR_ENTRIES:
        await ledger.add_entry(party, amount, entry_type, description)

    print(f"   ✅ Added {len(UDHAR_ENTRIES)} entries")


async def main():
    """Seed all data."""
    print("🌱 Starting database seeding...\n")

    # Initialize database first
    await init_db()
    store = RecordStore()

    if "--reset" in sys.argv:
        await store.clear_all()

    # Seed data
    await seed_inventory(store)
    await seed_orders(store)
    await seed_udhar(store)

    if "--export" in sys.argv:
        print(json.dumps(await store.export(), indent=2, ensure_ascii=False, default=str))

    await close_db()

    print("\n✅ Database seeding complete!")


if __name__ == "__main__":
    asyncio.run(main())
