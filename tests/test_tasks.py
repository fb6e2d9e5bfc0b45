"""
Tests for the deferred cache purge Celery task.
"""

import fnmatch

import pytest
import redis

from order_engine import tasks


class FakeRedis:
    """Just enough of redis.Redis for SCAN-and-delete."""

    def __init__(self, keys):
        self.keys = set(keys)
        self.closed = False
        self.delete_calls = 0

    def scan_iter(self, match=None, count=None):
        return iter(sorted(k for k in self.keys if fnmatch.fnmatchcase(k, match)))

    def delete(self, *names):
        self.delete_calls += 1
        present = [n for n in names if n in self.keys]
        self.keys.difference_update(present)
        return len(present)

    def close(self):
        self.closed = True


class TestPurgePattern:
    def test_deletes_only_matching_keys(self):
        client = FakeRedis(["order:1:user_1", "order:1:manager_a", "order:2:user_1", "payments:all"])
        assert tasks.purge_pattern(client, "order:1:*") == 2
        assert client.keys == {"order:2:user_1", "payments:all"}

    def test_deletes_in_batches(self):
        client = FakeRedis([f"orders:all:{i}:20:any" for i in range(1201)])
        assert tasks.purge_pattern(client, "orders:all:*") == 1201
        assert client.delete_calls == 3

    def test_no_matches(self):
        client = FakeRedis(["payments:all"])
        assert tasks.purge_pattern(client, "order:*") == 0
        assert client.delete_calls == 0


class TestPurgeCachePatternTask:
    def test_purges_and_closes_client(self, monkeypatch: pytest.MonkeyPatch):
        client = FakeRedis(["order:9:user_1", "orders:user_1:0:20:any"])
        monkeypatch.setattr(redis.Redis, "from_url", classmethod(lambda cls, url, **kw: client))

        result = tasks.purge_cache_pattern("order:9:*")

        assert result["pattern"] == "order:9:*"
        assert result["removed"] == 1
        assert client.closed is True

    def test_health_check(self):
        assert tasks.health_check()["status"] == "healthy"
