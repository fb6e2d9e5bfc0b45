"""
Shared pytest fixtures for the order engine tests.

This module provides:
- Database fixtures (engine, session_factory, db): a fresh in-memory
  SQLite database per test, via aiosqlite and a StaticPool
- Caller fixtures for every role and tenant
- Catalog and payment method fixtures for two restaurants
- Cache and settlement provider fixtures
- A pending order of 3 x 15.33 = 45.99

Fixture objects are created in their own session, so the `db` session
under test always starts with an empty identity map.
"""

import os

# Must be set before order_engine reads its settings
os.environ["DATABASE_URL"] = "sqlite+aiosqlite://"
os.environ["ENV_MODE"] = "development"

from collections.abc import AsyncGenerator
from decimal import Decimal

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from order_engine.core.identity import Caller, Role
from order_engine.database import init_db
from order_engine.models import (
    MenuItem,
    Order,
    PaymentMethod,
    PaymentMethodType,
    PaymentProvider,
)
from order_engine.services.cache import MemoryCacheService
from order_engine.services.payment import ImmediateSettlementProvider
from tests.helpers import TENANT_A, TENANT_B, place_order


# ============================================================================
# Database
# ============================================================================


@pytest_asyncio.fixture
async def engine() -> AsyncGenerator[AsyncEngine, None]:
    """In-memory SQLite engine with all tables created."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    await init_db(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncGenerator[AsyncSession, None]:
    """Session handed to the service under test."""
    async with session_factory() as session:
        yield session


# ============================================================================
# Callers
# ============================================================================


@pytest.fixture
def admin() -> Caller:
    return Caller(id="admin_1", role=Role.ADMIN)


@pytest.fixture
def manager() -> Caller:
    return Caller(id="manager_a", role=Role.MANAGER, tenant_id=TENANT_A)


@pytest.fixture
def other_manager() -> Caller:
    return Caller(id="manager_b", role=Role.MANAGER, tenant_id=TENANT_B)


@pytest.fixture
def member() -> Caller:
    return Caller(id="user_1", role=Role.MEMBER, tenant_id=TENANT_A)


@pytest.fixture
def other_member() -> Caller:
    return Caller(id="user_2", role=Role.MEMBER, tenant_id=TENANT_A)


# ============================================================================
# Services
# ============================================================================


@pytest.fixture
def cache() -> MemoryCacheService:
    return MemoryCacheService()


@pytest.fixture
def provider() -> ImmediateSettlementProvider:
    return ImmediateSettlementProvider()


# ============================================================================
# Sample data
# ============================================================================


@pytest_asyncio.fixture
async def catalog(session_factory: async_sessionmaker[AsyncSession]) -> dict[str, MenuItem]:
    """Menu of restaurant A (one item unavailable) and restaurant B."""
    items = [
        MenuItem(id="menu_pizza", tenant_id=TENANT_A, name="Pizza", price=Decimal("15.33")),
        MenuItem(id="menu_salad", tenant_id=TENANT_A, name="Salad", price=Decimal("8.99")),
        MenuItem(
            id="menu_soup",
            tenant_id=TENANT_A,
            name="Soup",
            price=Decimal("4.50"),
            is_available=False,
        ),
        MenuItem(id="menu_burger", tenant_id=TENANT_B, name="Burger", price=Decimal("11.00")),
    ]
    async with session_factory() as session:
        session.add_all(items)
        await session.commit()
    return {item.id: item for item in items}


@pytest_asyncio.fixture
async def payment_methods(
    session_factory: async_sessionmaker[AsyncSession],
) -> dict[str, PaymentMethod]:
    """Two methods for restaurant A (pm_a1 default) and one for restaurant B."""
    methods = [
        PaymentMethod(
            id="pm_a1",
            tenant_id=TENANT_A,
            type=PaymentMethodType.CREDIT_CARD,
            provider=PaymentProvider.STRIPE,
            last4="4242",
            is_default=True,
        ),
        PaymentMethod(
            id="pm_a2",
            tenant_id=TENANT_A,
            type=PaymentMethodType.DEBIT_CARD,
            provider=PaymentProvider.SQUARE,
            last4="1881",
        ),
        PaymentMethod(
            id="pm_b1",
            tenant_id=TENANT_B,
            type=PaymentMethodType.PAYPAL,
            provider=PaymentProvider.PAYPAL,
        ),
    ]
    async with session_factory() as session:
        session.add_all(methods)
        await session.commit()
    return {method.id: method for method in methods}


@pytest_asyncio.fixture
async def pending_order(
    session_factory: async_sessionmaker[AsyncSession],
    catalog: dict[str, MenuItem],
    member: Caller,
) -> Order:
    """A PENDING order of restaurant A placed by `member`, total 45.99."""
    return await place_order(session_factory, member)
