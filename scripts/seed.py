"""
Demo Data Seeding Script

Creates the tables and inserts one demo restaurant: its menu and a default
payment method. Safe to run repeatedly; existing rows are left untouched.
Run from project root: python scripts/seed.py
"""

import asyncio
import os
import sys
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))
# Windows event loop fix
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from order_engine.database import async_session_maker, engine, init_db
from order_engine.models import MenuItem, PaymentMethod, PaymentMethodType, PaymentProvider

DEMO_TENANT_ID = "rest_demo"
DEMO_PAYMENT_METHOD_ID = "pm_demo_default"

DEMO_MENU = [
    {"id": "menu_margherita", "name": "Pizza Margherita", "price": "14.99"},
    {"id": "menu_pepperoni", "name": "Pepperoni Pizza", "price": "16.99"},
    {"id": "menu_caesar", "name": "Caesar Salad", "price": "8.99"},
    {"id": "menu_garlic_bread", "name": "Garlic Bread", "price": "5.99"},
    {"id": "menu_carbonara", "name": "Pasta Carbonara", "price": "13.99"},
    {"id": "menu_tiramisu", "name": "Tiramisu", "price": "7.99"},
    {"id": "menu_coke", "name": "Coke", "price": "2.99"},
]


async def seed() -> None:
    print("=" * 60)
    print("SEEDING DEMO DATA")
    print("=" * 60)

    await init_db()

    created = 0
    async with async_session_maker() as session:
        for item in DEMO_MENU:
            if await session.get(MenuItem, item["id"]) is not None:
                continue
            session.add(
                MenuItem(
                    id=item["id"],
                    tenant_id=DEMO_TENANT_ID,
                    name=item["name"],
                    price=Decimal(item["price"]),
                    is_available=True,
                )
            )
            created += 1

        if await session.get(PaymentMethod, DEMO_PAYMENT_METHOD_ID) is None:
            session.add(
                PaymentMethod(
                    id=DEMO_PAYMENT_METHOD_ID,
                    tenant_id=DEMO_TENANT_ID,
                    type=PaymentMethodType.CREDIT_CARD,
                    provider=PaymentProvider.STRIPE,
                    last4="4242",
                    is_default=True,
                )
            )
            created += 1

        await session.commit()

    await engine.dispose()

    print(f"\nTenant:         {DEMO_TENANT_ID}")
    print(f"Menu items:     {len(DEMO_MENU)}")
    print(f"Payment method: {DEMO_PAYMENT_METHOD_ID}")
    print(f"Rows created:   {created}")
    print("=" * 60)


if __name__ == "__main__":
    asyncio.run(seed())
