"""
Helpers shared by the test modules.

Each helper opens its own session so reads never come from the identity
map of the session under test.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from order_engine.core.identity import Caller
from order_engine.models import Order, Payment, PaymentMethod
from order_engine.schemas import OrderItemCreate
from order_engine.services.orders import OrderService

TENANT_A = "rest_a"
TENANT_B = "rest_b"


async def place_order(
    session_factory: async_sessionmaker[AsyncSession],
    caller: Caller,
    items: Optional[list[tuple[str, int]]] = None,
    tenant_id: str = TENANT_A,
) -> Order:
    """Create an order through OrderService; defaults to 3 x Pizza = 45.99."""
    items = items or [("menu_pizza", 3)]
    async with session_factory() as session:
        return await OrderService(session).create_order(
            caller,
            tenant_id=tenant_id,
            items=[OrderItemCreate(menu_item_id=m, quantity=q) for m, q in items],
            phone="555-123-4567",
        )


async def fetch_order(
    session_factory: async_sessionmaker[AsyncSession],
    order_id: str,
) -> Optional[Order]:
    async with session_factory() as session:
        return await session.get(Order, order_id)


async def count_payments(
    session_factory: async_sessionmaker[AsyncSession],
    order_id: Optional[str] = None,
) -> int:
    query = select(func.count(Payment.id))
    if order_id is not None:
        query = query.where(Payment.order_id == order_id)
    async with session_factory() as session:
        return (await session.execute(query)).scalar() or 0


async def default_methods(
    session_factory: async_sessionmaker[AsyncSession],
    tenant_id: str,
) -> list[str]:
    """Ids of the tenant's payment methods flagged as default."""
    async with session_factory() as session:
        result = await session.execute(
            select(PaymentMethod.id).where(
                PaymentMethod.tenant_id == tenant_id,
                PaymentMethod.is_default.is_(True),
            )
        )
        return list(result.scalars().all())
