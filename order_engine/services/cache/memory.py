"""
In-Memory Cache Service Implementation

Process-local stand-in for Redis, used in development mode and in tests.
Values round-trip through JSON so cached objects behave exactly as they
would coming back from Redis.
"""

import json
import logging
import time
from fnmatch import fnmatchcase
from typing import Any, Optional

from order_engine.services.cache.base import BaseCacheService

logger = logging.getLogger(__name__)


class MemoryCacheService(BaseCacheService):
    """
    Dictionary-backed cache with per-key expiry.

    Example:
        >>> cache = MemoryCacheService()
        >>> await cache.set("order:1:u1", {"id": "1"}, ttl_seconds=60)
        >>> await cache.delete_pattern("order:1:*")
        1
    """

    def __init__(self):
        self._store: dict[str, tuple[str, Optional[float]]] = {}

    @property
    def provider_name(self) -> str:
        return "memory"

    async def get(self, key: str) -> Optional[Any]:
        entry = self._store.get(key)
        if entry is None:
            return None
        raw, expires_at = entry
        if expires_at is not None and expires_at <= time.monotonic():
            del self._store[key]
            return None
        return json.loads(raw)

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        expires_at = time.monotonic() + ttl_seconds if ttl_seconds else None
        self._store[key] = (json.dumps(value), expires_at)

    async def delete_pattern(self, pattern: str) -> int:
        matched = [key for key in self._store if fnmatchcase(key, pattern)]
        for key in matched:
            del self._store[key]
        return len(matched)

    async def health_check(self) -> bool:
        return True

    def keys(self) -> list[str]:
        """Currently stored keys (expired entries included until read)."""
        return list(self._store)
