"""
Cache Service Factory

Returns the in-memory or Redis cache based on ENV_MODE.

Environment Switching:
    - ENV_MODE=development → MemoryCacheService
    - ENV_MODE=staging/production → RedisCacheService
"""

import logging
from functools import lru_cache
from typing import Optional

from order_engine.core.config import get_settings
from order_engine.services.cache.base import BaseCacheService
from order_engine.services.cache.memory import MemoryCacheService

logger = logging.getLogger(__name__)


@lru_cache()
def get_cache_service() -> BaseCacheService:
    """Get the configured cache service (cached singleton)."""
    settings = get_settings()

    if settings.use_real_services:
        from order_engine.services.cache.redis import RedisCacheService

        logger.info(f"Cache Service: Using RedisCacheService ({settings.env_mode.value} mode)")
        return RedisCacheService()

    logger.info("Cache Service: Using MemoryCacheService (development mode)")
    return MemoryCacheService()


def reset_cache_service() -> None:
    """Clear the cached service instance."""
    get_cache_service.cache_clear()


def order_keys(order_id: str, *user_ids: str, tenant_id: Optional[str] = None) -> list[str]:
    """Cache patterns covering every read-view of an order."""
    patterns = [f"order:{order_id}:*", "orders:all:*"]
    patterns.extend(f"orders:{user_id}:*" for user_id in dict.fromkeys(user_ids) if user_id)
    if tenant_id:
        patterns.append(f"orders:tenant:{tenant_id}:*")
    return patterns


__all__ = [
    "get_cache_service",
    "reset_cache_service",
    "order_keys",
    "BaseCacheService",
    "MemoryCacheService",
]
