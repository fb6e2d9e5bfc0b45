"""
FastAPI Application Entry Point

Restaurant Order Engine - order lifecycle and payment settlement.
Identity is resolved upstream and passed in the X-User-Id, X-User-Role
and X-Tenant-Id headers.

Endpoints:
    - POST /api/orders: Create order
    - GET /api/orders: List orders (scoped by role)
    - GET /api/orders/{id}: Get order
    - PATCH /api/orders/{id}/status: Move order through the state machine
    - POST /api/orders/{id}/cancel: Cancel order
    - POST /api/payments: Settle an order
    - GET /api/payments: List payments (admin)
    - GET /api/payments/{id}: Get payment
    - /api/payment-methods: Payment method administration
    - GET /health: System health check
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime
from typing import Optional

from fastapi import Depends, FastAPI, Header, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

# Windows-specific event loop policy (psycopg async needs a selector loop)
if sys.platform == "win32":
    asyncio.set_event_loop_policy(asyncio.WindowsSelectorEventLoopPolicy())

from order_engine.core.config import get_settings, setup_logging
from order_engine.core.errors import EngineError, ErrorKind
from order_engine.core.identity import Caller, require_caller, resolve_caller
from order_engine.database import engine, get_db, init_db
from order_engine.models import OrderStatus
from order_engine.schemas import (
    DeleteResponse,
    ErrorResponse,
    HealthResponse,
    OrderCreate,
    OrderListResponse,
    OrderResponse,
    OrderStatusUpdate,
    PaymentMethodCreate,
    PaymentMethodResponse,
    PaymentMethodUpdate,
    PaymentResponse,
    ProcessPaymentRequest,
)
from order_engine.services.authorization import Operation, Scope, require
from order_engine.services.cache import BaseCacheService, get_cache_service
from order_engine.services.orders import OrderService
from order_engine.services.payment import BaseSettlementProvider, get_settlement_provider
from order_engine.services.payments import PaymentMethodService, PaymentQueryService
from order_engine.services.settlement import SettlementCoordinator

# Initialize configuration and logging
settings = get_settings()
setup_logging()
logger = logging.getLogger(__name__)

ERROR_RESPONSES = {
    400: {"model": ErrorResponse},
    401: {"model": ErrorResponse},
    403: {"model": ErrorResponse},
    404: {"model": ErrorResponse},
    409: {"model": ErrorResponse},
}


# =============================================================================
# APPLICATION LIFECYCLE
# =============================================================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Manage application startup and shutdown events.
    """
    # Startup
    logger.info("=" * 60)
    logger.info(f"Starting {settings.app_name}")
    logger.info(f"   Version: {settings.app_version}")
    logger.info(f"   Environment: {settings.env_mode.value}")
    logger.info(f"   Debug: {settings.debug}")
    logger.info("=" * 60)

    await init_db()
    logger.info("Database initialized")

    cache = get_cache_service()
    provider = get_settlement_provider()
    logger.info(f"Cache Service: {cache.provider_name}")
    logger.info(f"Settlement Provider: {provider.provider_name}")
    logger.info("Application ready")

    yield  # Application runs

    # Shutdown
    logger.info("Shutting down...")
    close = getattr(cache, "close", None)
    if close is not None:
        await close()
    await engine.dispose()
    logger.info("Cleanup complete")


# =============================================================================
# APPLICATION INSTANCE
# =============================================================================

app = FastAPI(
    title=settings.app_name,
    description=(
        "Multi-tenant restaurant order lifecycle and payment settlement engine. "
        "Every order is settled at most once."
    ),
    version=settings.app_version,
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# =============================================================================
# ERROR HANDLING
# =============================================================================

@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Map the engine error taxonomy onto HTTP statuses."""
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Malformed requests are reported as BAD_INPUT, like business-rule failures."""
    errors = exc.errors()
    if errors:
        first = errors[0]
        location = ".".join(str(part) for part in first.get("loc", ()) if part != "body")
        detail = f"{location}: {first.get('msg')}" if location else first.get("msg")
    else:
        detail = "Invalid request"
    return JSONResponse(
        status_code=400,
        content={"success": False, "error": ErrorKind.BAD_INPUT.value, "detail": detail},
    )


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    """Last resort: log the traceback, never leak it."""
    logger.exception(f"Unhandled error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "error": ErrorKind.INTERNAL.value,
            "detail": str(exc) if settings.debug else "Internal server error",
        },
    )


# =============================================================================
# DEPENDENCIES
# =============================================================================

async def get_caller(
    x_user_id: Optional[str] = Header(None, alias="X-User-Id"),
    x_user_role: Optional[str] = Header(None, alias="X-User-Role"),
    x_tenant_id: Optional[str] = Header(None, alias="X-Tenant-Id"),
) -> Optional[Caller]:
    """Resolve the caller from upstream-verified identity headers."""
    return resolve_caller(x_user_id, x_user_role, x_tenant_id)


def get_cache() -> BaseCacheService:
    return get_cache_service()


def get_provider() -> BaseSettlementProvider:
    return get_settlement_provider()


def order_list_key(caller: Caller, scope: Scope, skip: int, limit: int,
                   status: Optional[OrderStatus]) -> str:
    """Cache key of an order listing, partitioned the way it is filtered."""
    if scope == Scope.ANY:
        prefix = "orders:all"
    elif scope == Scope.TENANT:
        prefix = f"orders:tenant:{caller.tenant_id}"
    else:
        prefix = f"orders:{caller.id}"
    return f"{prefix}:{skip}:{limit}:{status.value if status else 'any'}"


# =============================================================================
# ROOT & HEALTH ENDPOINTS
# =============================================================================

@app.get("/", tags=["Root"])
async def root() -> dict[str, str]:
    """API root with navigation links."""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": settings.app_version,
        "environment": settings.env_mode.value,
        "documentation": "/docs",
        "health": "/health",
    }


@app.get(
    "/health",
    response_model=HealthResponse,
    tags=["Health"],
    summary="System Health Check",
)
async def health_check(
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
    provider: BaseSettlementProvider = Depends(get_provider),
) -> HealthResponse:
    """Verify all system components are operational."""

    # Check database
    db_status = "healthy"
    try:
        await db.execute(text("SELECT 1"))
    except Exception as e:
        db_status = f"unhealthy: {str(e)}"
        logger.error(f"Database health check failed: {e}")

    cache_status = "healthy" if await cache.health_check() else "unhealthy"
    provider_status = "healthy" if await provider.health_check() else "unhealthy"

    overall = "operational" if all(
        s == "healthy" for s in [db_status, cache_status, provider_status]
    ) else "degraded"

    return HealthResponse(
        status=overall,
        database=db_status,
        cache=cache_status,
        settlement_provider=provider_status,
        timestamp=datetime.now(),
    )


# =============================================================================
# ORDER API ENDPOINTS
# =============================================================================

@app.post(
    "/api/orders",
    response_model=OrderResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Create Order",
)
async def create_order(
    order_data: OrderCreate,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
) -> OrderResponse:
    """
    Place an order from a cart. Prices and the total are computed
    server-side from the restaurant's menu.
    """
    service = OrderService(db, cache)
    order = await service.create_order(
        caller,
        tenant_id=order_data.tenant_id,
        items=order_data.items,
        phone=order_data.phone,
        special_instructions=order_data.special_instructions,
    )
    return OrderResponse.model_validate(order)


@app.get(
    "/api/orders",
    response_model=OrderListResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="List Orders",
)
async def list_orders(
    skip: int = Query(0, ge=0),
    limit: int = Query(settings.orders_page_size, ge=1, le=settings.orders_max_page_size),
    status: Optional[OrderStatus] = Query(None),
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
) -> OrderListResponse:
    """Retrieve a paginated list of the orders visible to the caller."""
    caller = require_caller(caller)
    scope = require(Operation.LIST_ORDERS, caller)

    key = order_list_key(caller, scope, skip, limit, status)
    cached = await cache.get(key)
    if cached is not None:
        return OrderListResponse.model_validate(cached)

    total, orders = await OrderService(db, cache).list_orders(caller, skip, limit, status)
    response = OrderListResponse(
        total=total,
        orders=[OrderResponse.model_validate(order) for order in orders],
    )
    await cache.set(key, response.model_dump(mode="json"), settings.cache_ttl_orders)
    return response


@app.get(
    "/api/orders/{order_id}",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
)
async def get_order(
    order_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
) -> OrderResponse:
    """Get a specific order by ID."""
    caller = require_caller(caller)

    key = f"order:{order_id}:{caller.id}"
    cached = await cache.get(key)
    if cached is not None:
        return OrderResponse.model_validate(cached)

    order = await OrderService(db, cache).get_order(order_id, caller)
    response = OrderResponse.model_validate(order)
    await cache.set(key, response.model_dump(mode="json"), settings.cache_ttl_orders)
    return response


@app.patch(
    "/api/orders/{order_id}/status",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Update Order Status",
)
async def update_order_status(
    order_id: str,
    update: OrderStatusUpdate,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
) -> OrderResponse:
    order = await OrderService(db, cache).transition_status(order_id, update.status, caller)
    return OrderResponse.model_validate(order)


@app.post(
    "/api/orders/{order_id}/cancel",
    response_model=OrderResponse,
    responses=ERROR_RESPONSES,
    tags=["Orders"],
    summary="Cancel Order",
)
async def cancel_order(
    order_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
) -> OrderResponse:
    order = await OrderService(db, cache).cancel_order(order_id, caller)
    return OrderResponse.model_validate(order)


# =============================================================================
# PAYMENT API ENDPOINTS
# =============================================================================

@app.post(
    "/api/payments",
    response_model=PaymentResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Payments"],
    summary="Process Payment",
)
async def process_payment(
    payment_data: ProcessPaymentRequest,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
    provider: BaseSettlementProvider = Depends(get_provider),
) -> PaymentResponse:
    """
    Settle an order. At most one payment is ever recorded per order;
    a losing concurrent request receives 400 or 409.
    """
    coordinator = SettlementCoordinator(db, cache, provider)
    payment = await coordinator.process_payment(
        payment_data.order_id,
        payment_data.payment_method_id,
        payment_data.amount,
        caller,
    )
    return PaymentResponse.model_validate(payment)


@app.get(
    "/api/payments",
    response_model=list[PaymentResponse],
    responses=ERROR_RESPONSES,
    tags=["Payments"],
)
async def list_payments(
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
    cache: BaseCacheService = Depends(get_cache),
) -> list[PaymentResponse]:
    """All payments, newest first (admin only)."""
    require(Operation.LIST_PAYMENTS, caller)

    cached = await cache.get("payments:all")
    if cached is not None:
        return [PaymentResponse.model_validate(item) for item in cached]

    payments = await PaymentQueryService(db).list_payments(caller)
    response = [PaymentResponse.model_validate(payment) for payment in payments]
    await cache.set(
        "payments:all",
        [item.model_dump(mode="json") for item in response],
        settings.cache_ttl_orders,
    )
    return response


@app.get(
    "/api/payments/{payment_id}",
    response_model=PaymentResponse,
    responses=ERROR_RESPONSES,
    tags=["Payments"],
)
async def get_payment(
    payment_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> PaymentResponse:
    payment = await PaymentQueryService(db).get_payment(payment_id, caller)
    return PaymentResponse.model_validate(payment)


# =============================================================================
# PAYMENT METHOD ENDPOINTS
# =============================================================================

@app.post(
    "/api/payment-methods",
    response_model=PaymentMethodResponse,
    status_code=201,
    responses=ERROR_RESPONSES,
    tags=["Payment Methods"],
)
async def create_payment_method(
    method_data: PaymentMethodCreate,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> PaymentMethodResponse:
    method = await PaymentMethodService(db).create_payment_method(method_data, caller)
    return PaymentMethodResponse.model_validate(method)


@app.patch(
    "/api/payment-methods/{payment_method_id}",
    response_model=PaymentMethodResponse,
    responses=ERROR_RESPONSES,
    tags=["Payment Methods"],
)
async def update_payment_method(
    payment_method_id: str,
    update: PaymentMethodUpdate,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> PaymentMethodResponse:
    method = await PaymentMethodService(db).update_payment_method(
        payment_method_id, update.is_default, caller
    )
    return PaymentMethodResponse.model_validate(method)


@app.delete(
    "/api/payment-methods/{payment_method_id}",
    response_model=DeleteResponse,
    responses=ERROR_RESPONSES,
    tags=["Payment Methods"],
)
async def delete_payment_method(
    payment_method_id: str,
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> DeleteResponse:
    await PaymentMethodService(db).delete_payment_method(payment_method_id, caller)
    return DeleteResponse(success=True, id=payment_method_id)


@app.get(
    "/api/payment-methods",
    response_model=list[PaymentMethodResponse],
    responses=ERROR_RESPONSES,
    tags=["Payment Methods"],
)
async def list_payment_methods(
    tenant_id: Optional[str] = Query(None),
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> list[PaymentMethodResponse]:
    """A restaurant's payment methods. Admins must pass tenant_id."""
    methods = await PaymentMethodService(db).list_payment_methods(caller, tenant_id)
    return [PaymentMethodResponse.model_validate(method) for method in methods]


@app.get(
    "/api/payment-methods/{payment_method_id}",
    response_model=PaymentMethodResponse,
    responses=ERROR_RESPONSES,
    tags=["Payment Methods"],
)
async def get_payment_method(
    payment_method_id: str,
    tenant_id: Optional[str] = Query(None),
    caller: Optional[Caller] = Depends(get_caller),
    db: AsyncSession = Depends(get_db),
) -> PaymentMethodResponse:
    method = await PaymentMethodService(db).get_payment_method(payment_method_id, caller, tenant_id)
    return PaymentMethodResponse.model_validate(method)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "order_engine.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.is_development,
    )
