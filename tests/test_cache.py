"""
Tests for the read-view cache services and their factory.
"""

import pytest

import order_engine.services.cache.memory as memory
from order_engine.services.cache import (
    MemoryCacheService,
    get_cache_service,
    order_keys,
    reset_cache_service,
)
from order_engine.services.cache.base import BaseCacheService


class FailingCache(MemoryCacheService):
    """Memory cache whose deletes always fail; records deferred patterns."""

    def __init__(self):
        super().__init__()
        self.deferred: list[str] = []

    async def delete_pattern(self, pattern: str) -> int:
        raise ConnectionError("cache down")

    def _defer(self, pattern: str) -> None:
        self.deferred.append(pattern)


class TestMemoryCacheService:
    """Tests for MemoryCacheService."""

    @pytest.fixture
    def cache(self) -> MemoryCacheService:
        return MemoryCacheService()

    @pytest.mark.asyncio
    async def test_get_returns_none_on_miss(self, cache: MemoryCacheService):
        assert await cache.get("order:1:user_1") is None

    @pytest.mark.asyncio
    async def test_values_round_trip_through_json(self, cache: MemoryCacheService):
        value = {"id": "1", "total_amount": "45.99", "items": [{"quantity": 3}]}
        await cache.set("order:1:user_1", value)
        cached = await cache.get("order:1:user_1")
        assert cached == value
        assert cached is not value

    @pytest.mark.asyncio
    async def test_entries_expire(self, cache: MemoryCacheService, monkeypatch: pytest.MonkeyPatch):
        await cache.set("orders:all:0:20:any", {"total": 0}, ttl_seconds=1)
        real_monotonic = memory.time.monotonic
        monkeypatch.setattr(memory.time, "monotonic", lambda: real_monotonic() + 5)
        assert await cache.get("orders:all:0:20:any") is None

    @pytest.mark.asyncio
    async def test_delete_pattern_matches_globs(self, cache: MemoryCacheService):
        await cache.set("order:1:user_1", {})
        await cache.set("order:1:manager_a", {})
        await cache.set("order:12:user_1", {})
        assert await cache.delete_pattern("order:1:*") == 2
        assert cache.keys() == ["order:12:user_1"]

    @pytest.mark.asyncio
    async def test_health_check(self, cache: MemoryCacheService):
        assert await cache.health_check() is True


class TestInvalidate:
    """invalidate() never raises; failures are deferred."""

    @pytest.mark.asyncio
    async def test_counts_removed_keys(self):
        cache = MemoryCacheService()
        await cache.set("order:1:user_1", {})
        await cache.set("payments:all", [])
        assert await cache.invalidate(["order:1:*", "payments:*", "orders:all:*"]) == 2

    @pytest.mark.asyncio
    async def test_failures_are_deferred_not_raised(self):
        cache = FailingCache()
        removed = await cache.invalidate(["order:1:*", "payments:*"])
        assert removed == 0
        assert cache.deferred == ["order:1:*", "payments:*"]


class TestOrderKeys:
    def test_covers_every_view_of_an_order(self):
        assert order_keys("o1", "user_1", "manager_a", tenant_id="rest_a") == [
            "order:o1:*",
            "orders:all:*",
            "orders:user_1:*",
            "orders:manager_a:*",
            "orders:tenant:rest_a:*",
        ]

    def test_deduplicates_users(self):
        assert order_keys("o1", "user_1", "user_1") == [
            "order:o1:*",
            "orders:all:*",
            "orders:user_1:*",
        ]


class TestFactory:
    def test_development_mode_uses_memory_cache(self):
        reset_cache_service()
        try:
            service = get_cache_service()
            assert isinstance(service, BaseCacheService)
            assert service.provider_name == "memory"
            assert get_cache_service() is service
        finally:
            reset_cache_service()
