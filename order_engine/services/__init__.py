"""
                        Services Module

Business logic of the order engine. Backends with more than one
implementation (cache, settlement provider) are chosen by a cached
factory according to ENV_MODE.

Services:
    - orders: order creation, reads and status transitions
    - settlement: at-most-once payment of an order
    - payments: payment method administration and payment reads
    - ledger: payment persistence
    - cache: read-view cache (memory or Redis)
    - payment: settlement provider strategy
"""

from order_engine.services.orders import OrderService
from order_engine.services.payments import PaymentMethodService, PaymentQueryService
from order_engine.services.settlement import SettlementCoordinator

__all__ = [
    "OrderService",
    "PaymentMethodService",
    "PaymentQueryService",
    "SettlementCoordinator",
]
