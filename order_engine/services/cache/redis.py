"""
Redis Cache Service Implementation

Production cache backed by Redis, used when ENV_MODE=staging or production.
Pattern invalidation uses SCAN rather than KEYS so it never blocks the
server. Invalidations that fail are queued for the Celery worker.
"""

import json
import logging
from typing import Any, Optional

import redis.asyncio as aioredis
from redis.exceptions import RedisError

from order_engine.core.config import get_settings
from order_engine.services.cache.base import BaseCacheService

logger = logging.getLogger(__name__)


class RedisCacheService(BaseCacheService):
    """Redis-backed read-view cache."""

    def __init__(self, url: Optional[str] = None):
        settings = get_settings()
        self._url = url or settings.redis_url
        self._client = aioredis.from_url(self._url, decode_responses=True)
        logger.info("RedisCacheService initialized")

    @property
    def provider_name(self) -> str:
        return "redis"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self._client.get(key)
        except RedisError as e:
            logger.error(f"Failed to get cache for key: {key} - {e}")
            return None
        return json.loads(raw) if raw is not None else None

    async def set(self, key: str, value: Any, ttl_seconds: Optional[int] = None) -> None:
        try:
            payload = json.dumps(value)
            if ttl_seconds:
                await self._client.setex(key, ttl_seconds, payload)
            else:
                await self._client.set(key, payload)
        except RedisError as e:
            logger.error(f"Failed to set cache for key: {key} - {e}")

    async def delete_pattern(self, pattern: str) -> int:
        keys = [key async for key in self._client.scan_iter(match=pattern, count=500)]
        if not keys:
            return 0
        return await self._client.delete(*keys)

    def _defer(self, pattern: str) -> None:
        from order_engine.tasks import purge_cache_pattern

        try:
            purge_cache_pattern.delay(pattern)
            logger.info(f"Queued deferred cache purge for '{pattern}'")
        except Exception as e:
            logger.error(f"Could not queue cache purge for '{pattern}': {e}")

    async def health_check(self) -> bool:
        try:
            return bool(await self._client.ping())
        except RedisError as e:
            logger.error(f"Redis health check failed: {e}")
            return False

    async def close(self) -> None:
        await self._client.aclose()
