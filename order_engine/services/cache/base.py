"""
Cache Service Abstract Base Class

Defines the interface for the read-view cache and its invalidation sink.
Both MemoryCacheService and RedisCacheService implement it, so the order
and settlement services never need to know which backend is active.

Keys follow the conventions:
    order:{order_id}:{caller_id}             single order read-view
    orders:all:{skip}:{limit}:{status}       admin order listings
    orders:tenant:{tenant_id}:{...}          manager (tenant-wide) listings
    orders:{user_id}:{...}                   member (own orders) listings
    payments:*                               payment listings
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Iterable, Optional

logger = logging.getLogger(__name__)


class BaseCacheService(ABC):
    """Abstract base class for cache services."""

    @property
    @abstractmethod
    def provider_name(self) -> str:
        """Return the cache backend name (e.g., "memory", "redis")."""
        pass

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Return the cached JSON value for `key`, or None on a miss."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        """Store a JSON-serializable value."""
        pass

    @abstractmethod
    async def delete_pattern(self, pattern: str) -> int:
        """
        Delete every key matching a glob pattern.

        Returns:
            int: Number of keys removed
        """
        pass

    @abstractmethod
    async def health_check(self) -> bool:
        """Verify the backend is reachable."""
        pass

    def _defer(self, pattern: str) -> None:
        """Hook for backends that can retry a failed invalidation later."""

    async def invalidate(self, patterns: Iterable[str]) -> int:
        """
        Invalidate read-views after a committed write.

        Runs after the transaction is durable, so a failure here is logged
        and handed to `_defer()` instead of being raised.
        """
        removed = 0
        for pattern in patterns:
            try:
                removed += await self.delete_pattern(pattern)
            except Exception as e:
                logger.warning(f"Cache invalidation failed for '{pattern}': {e}")
                self._defer(pattern)
        if removed:
            logger.debug(f"Invalidated {removed} cache keys")
        return removed
