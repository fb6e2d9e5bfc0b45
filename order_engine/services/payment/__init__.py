"""
Settlement Provider Factory

Provides a single entry point for obtaining a settlement provider instance.
The factory keeps the settlement coordinator agnostic about which
implementation is being used.

Usage:
    from order_engine.services.payment import get_settlement_provider

    provider = get_settlement_provider()
    result = await provider.settle(Decimal("29.99"), transaction_ref)

Only ImmediateSettlementProvider exists today; every env mode gets it.
"""

import logging
from functools import lru_cache

from order_engine.core.config import get_settings
from order_engine.services.payment.base import (
    BaseSettlementProvider,
    SettlementResult,
)
from order_engine.services.payment.immediate import ImmediateSettlementProvider

logger = logging.getLogger(__name__)


@lru_cache()
def get_settlement_provider() -> BaseSettlementProvider:
    """
    Get the configured settlement provider instance.

    The instance is cached (singleton pattern) to avoid creating
    multiple instances.

    Returns:
        BaseSettlementProvider: Configured provider instance
    """
    settings = get_settings()
    logger.info(
        f"Settlement Provider: Using ImmediateSettlementProvider "
        f"({settings.env_mode.value} mode)"
    )
    return ImmediateSettlementProvider()


def reset_settlement_provider() -> None:
    """
    Clear the cached provider instance.

    Useful for testing or when configuration changes at runtime.
    """
    get_settlement_provider.cache_clear()
    logger.debug("Settlement provider cache cleared")


__all__ = [
    "get_settlement_provider",
    "reset_settlement_provider",
    "BaseSettlementProvider",
    "SettlementResult",
    "ImmediateSettlementProvider",
]
