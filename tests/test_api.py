"""
HTTP tests for the FastAPI transport.

Runs the app in-process through httpx's ASGI transport with the database,
cache and settlement provider dependencies pointed at test fixtures.
"""

from collections.abc import AsyncGenerator
from typing import Optional

import httpx
import pytest
import pytest_asyncio

from order_engine.database import get_db
from order_engine.main import app, get_cache, get_provider
from order_engine.services.cache import MemoryCacheService
from tests.helpers import TENANT_A, TENANT_B


def headers(user_id: str, role: str, tenant_id: Optional[str] = None) -> dict[str, str]:
    result = {"X-User-Id": user_id, "X-User-Role": role}
    if tenant_id:
        result["X-Tenant-Id"] = tenant_id
    return result


ADMIN = headers("admin_1", "ADMIN")
MANAGER = headers("manager_a", "MANAGER", TENANT_A)
MEMBER = headers("user_1", "MEMBER", TENANT_A)
OTHER_MEMBER = headers("user_2", "MEMBER", TENANT_A)

PIZZA_ORDER = {
    "tenant_id": TENANT_A,
    "items": [{"menu_item_id": "menu_pizza", "quantity": 3}],
    "phone": "555-123-4567",
}


@pytest_asyncio.fixture
async def client(session_factory, cache, provider) -> AsyncGenerator[httpx.AsyncClient, None]:
    async def override_db():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_provider] = lambda: provider

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_order(client: httpx.AsyncClient, caller: dict = MEMBER) -> dict:
    response = await client.post("/api/orders", json=PIZZA_ORDER, headers=caller)
    assert response.status_code == 201, response.text
    return response.json()


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client: httpx.AsyncClient):
        response = await client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "operational"
        assert data["database"] == "healthy"
        assert data["cache"] == "healthy"
        assert data["settlement_provider"] == "healthy"

    @pytest.mark.asyncio
    async def test_root(self, client: httpx.AsyncClient):
        response = await client.get("/")
        assert response.status_code == 200
        assert response.json()["health"] == "/health"


class TestErrorMapping:
    """The error taxonomy maps onto HTTP statuses with a uniform body."""

    @pytest.mark.asyncio
    async def test_anonymous_is_401(self, client: httpx.AsyncClient, catalog):
        response = await client.post("/api/orders", json=PIZZA_ORDER)
        assert response.status_code == 401
        assert response.json() == {
            "success": False,
            "error": "UNAUTHENTICATED",
            "detail": "Not authenticated",
        }

    @pytest.mark.asyncio
    async def test_unknown_role_is_401(self, client: httpx.AsyncClient, catalog):
        response = await client.get("/api/orders", headers=headers("user_1", "OWNER"))
        assert response.status_code == 401

    @pytest.mark.asyncio
    async def test_validation_error_is_400(self, client: httpx.AsyncClient, catalog):
        body = {**PIZZA_ORDER, "items": [{"menu_item_id": "menu_pizza", "quantity": 0}]}
        response = await client.post("/api/orders", json=body, headers=MEMBER)
        assert response.status_code == 400
        assert response.json()["error"] == "BAD_INPUT"

    @pytest.mark.asyncio
    async def test_unknown_menu_item_is_404(self, client: httpx.AsyncClient, catalog):
        body = {**PIZZA_ORDER, "items": [{"menu_item_id": "menu_ghost", "quantity": 1}]}
        response = await client.post("/api/orders", json=body, headers=MEMBER)
        assert response.status_code == 404
        assert response.json()["detail"] == "Menu item menu_ghost not found"

    @pytest.mark.asyncio
    async def test_invalid_transition_is_400(self, client: httpx.AsyncClient, catalog):
        order = await create_order(client)
        response = await client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "delivered"}, headers=MANAGER
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Invalid status transition from pending to delivered"


class TestOrderRoutes:
    """Order endpoints."""

    @pytest.mark.asyncio
    async def test_create_and_read_order(self, client: httpx.AsyncClient, catalog):
        order = await create_order(client)
        assert order["status"] == "pending"
        assert order["total_amount"] == "45.99"
        assert order["user_id"] == "user_1"
        assert len(order["items"]) == 1

        response = await client.get(f"/api/orders/{order['id']}", headers=MEMBER)
        assert response.status_code == 200
        assert response.json()["id"] == order["id"]

    @pytest.mark.asyncio
    async def test_other_member_gets_404(self, client: httpx.AsyncClient, catalog):
        order = await create_order(client)
        response = await client.get(f"/api/orders/{order['id']}", headers=OTHER_MEMBER)
        assert response.status_code == 404

    @pytest.mark.asyncio
    async def test_list_orders_is_scoped_and_cached(
        self, client: httpx.AsyncClient, catalog, cache: MemoryCacheService
    ):
        await create_order(client)
        await create_order(client, OTHER_MEMBER)

        response = await client.get("/api/orders", headers=MEMBER)
        assert response.status_code == 200
        assert response.json()["total"] == 1
        assert "orders:user_1:0:20:any" in cache.keys()

        response = await client.get("/api/orders", headers=MANAGER)
        assert response.json()["total"] == 2

        # A new order invalidates the member's cached listing
        await create_order(client)
        response = await client.get("/api/orders", headers=MEMBER)
        assert response.json()["total"] == 2

    @pytest.mark.asyncio
    async def test_list_rejects_oversized_page(self, client: httpx.AsyncClient, catalog):
        response = await client.get("/api/orders?limit=1000", headers=ADMIN)
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_cancel_order(self, client: httpx.AsyncClient, catalog):
        order = await create_order(client)
        response = await client.post(f"/api/orders/{order['id']}/cancel", headers=MEMBER)
        assert response.status_code == 200
        assert response.json()["status"] == "cancelled"

    @pytest.mark.asyncio
    async def test_member_cannot_update_status(self, client: httpx.AsyncClient, catalog):
        order = await create_order(client)
        response = await client.patch(
            f"/api/orders/{order['id']}/status", json={"status": "confirmed"}, headers=MEMBER
        )
        assert response.status_code == 403
        assert response.json()["detail"] == "Members cannot update order status"


class TestPaymentRoutes:
    """Settlement through the HTTP boundary."""

    @pytest.mark.asyncio
    async def test_settlement_scenario(self, client: httpx.AsyncClient, catalog, payment_methods):
        order = await create_order(client)
        payload = {"order_id": order["id"], "payment_method_id": "pm_a1", "amount": "45.99"}

        # Cache the member's view while the order is still pending
        response = await client.get(f"/api/orders/{order['id']}", headers=MEMBER)
        assert response.json()["status"] == "pending"

        response = await client.post("/api/payments", json=payload, headers=MEMBER)
        assert response.status_code == 403
        assert response.json()["detail"] == "Only admins and managers can process payments"

        response = await client.post("/api/payments", json=payload, headers=MANAGER)
        assert response.status_code == 201
        payment = response.json()
        assert payment["status"] == "completed"
        assert payment["amount"] == "45.99"
        assert payment["method"]["last4"] == "4242"

        response = await client.post("/api/payments", json=payload, headers=MANAGER)
        assert response.status_code == 400
        assert response.json()["detail"] == "Order already has a payment"

        response = await client.get(f"/api/orders/{order['id']}", headers=MEMBER)
        assert response.json()["status"] == "confirmed"

        response = await client.get(f"/api/payments/{payment['id']}", headers=MEMBER)
        assert response.status_code == 200

    @pytest.mark.asyncio
    async def test_amount_mismatch(self, client: httpx.AsyncClient, catalog, payment_methods):
        order = await create_order(client)
        response = await client.post(
            "/api/payments",
            json={"order_id": order["id"], "payment_method_id": "pm_a1", "amount": "40.00"},
            headers=ADMIN,
        )
        assert response.status_code == 400
        assert response.json()["detail"] == "Payment amount does not match order total"

    @pytest.mark.asyncio
    async def test_non_positive_amount_is_400(self, client: httpx.AsyncClient, catalog, payment_methods):
        order = await create_order(client)
        response = await client.post(
            "/api/payments",
            json={"order_id": order["id"], "payment_method_id": "pm_a1", "amount": "-1"},
            headers=ADMIN,
        )
        assert response.status_code == 400

    @pytest.mark.asyncio
    async def test_payment_listing_is_admin_only(
        self, client: httpx.AsyncClient, catalog, payment_methods
    ):
        order = await create_order(client)
        await client.post(
            "/api/payments",
            json={"order_id": order["id"], "payment_method_id": "pm_a1", "amount": "45.99"},
            headers=ADMIN,
        )
        assert (await client.get("/api/payments", headers=MANAGER)).status_code == 403
        response = await client.get("/api/payments", headers=ADMIN)
        assert response.status_code == 200
        assert [p["order_id"] for p in response.json()] == [order["id"]]


class TestPaymentMethodRoutes:
    """Payment method administration."""

    @pytest.mark.asyncio
    async def test_admin_manages_methods(self, client: httpx.AsyncClient, payment_methods):
        response = await client.post(
            "/api/payment-methods",
            json={
                "tenant_id": TENANT_B,
                "type": "credit_card",
                "provider": "stripe",
                "token": "tok_visa_4242424242424242",
                "is_default": True,
            },
            headers=ADMIN,
        )
        assert response.status_code == 201
        method = response.json()
        assert method["last4"] == "4242"
        assert "token" not in method

        response = await client.get(f"/api/payment-methods?tenant_id={TENANT_B}", headers=ADMIN)
        defaults = [m["id"] for m in response.json() if m["is_default"]]
        assert defaults == [method["id"]]

        response = await client.patch(
            "/api/payment-methods/pm_b1", json={"is_default": True}, headers=ADMIN
        )
        assert response.status_code == 200
        assert response.json()["is_default"] is True

        response = await client.delete(f"/api/payment-methods/{method['id']}", headers=ADMIN)
        assert response.json() == {"success": True, "id": method["id"]}

    @pytest.mark.asyncio
    async def test_manager_cannot_create(self, client: httpx.AsyncClient):
        response = await client.post(
            "/api/payment-methods",
            json={"tenant_id": TENANT_A, "type": "paypal", "provider": "paypal", "token": "pp"},
            headers=MANAGER,
        )
        assert response.status_code == 403

    @pytest.mark.asyncio
    async def test_listing_policy(self, client: httpx.AsyncClient, payment_methods):
        assert (await client.get("/api/payment-methods", headers=ADMIN)).status_code == 400
        response = await client.get("/api/payment-methods", headers=MANAGER)
        assert {m["id"] for m in response.json()} == {"pm_a1", "pm_a2"}
        response = await client.get(f"/api/payment-methods?tenant_id={TENANT_B}", headers=MANAGER)
        assert response.status_code == 403
        assert (await client.get("/api/payment-methods", headers=MEMBER)).status_code == 403

    @pytest.mark.asyncio
    async def test_read_single_method(self, client: httpx.AsyncClient, payment_methods):
        response = await client.get("/api/payment-methods/pm_a1", headers=MANAGER)
        assert response.status_code == 200
        assert response.json()["last4"] == "4242"

        response = await client.get(f"/api/payment-methods/pm_a1?tenant_id={TENANT_A}", headers=ADMIN)
        assert response.status_code == 200

        assert (await client.get("/api/payment-methods/pm_a1", headers=ADMIN)).status_code == 400
        response = await client.get("/api/payment-methods/pm_b1", headers=MANAGER)
        assert response.status_code == 404
        assert response.json()["detail"] == "Payment method not found"
        assert (await client.get("/api/payment-methods/pm_a1", headers=MEMBER)).status_code == 403
