"""
Celery Tasks
Background tasks for cache maintenance.

Cache invalidation normally happens inline after a commit. When Redis is
briefly unreachable the pattern is queued here and purged by the worker,
retrying with backoff until Redis answers again.
"""

import logging
import time
from datetime import datetime, timezone

import redis

from order_engine.celery_worker import celery_app
from order_engine.core.config import get_settings

logger = logging.getLogger(__name__)


def purge_pattern(client: redis.Redis, pattern: str) -> int:
    """Delete every key matching `pattern` using SCAN, never KEYS."""
    removed = 0
    batch = []
    for key in client.scan_iter(match=pattern, count=500):
        batch.append(key)
        if len(batch) >= 500:
            removed += client.delete(*batch)
            batch = []
    if batch:
        removed += client.delete(*batch)
    return removed


@celery_app.task(
    bind=True,
    max_retries=5,
    default_retry_delay=5,
    autoretry_for=(redis.RedisError,),
    retry_backoff=True
)
def purge_cache_pattern(self, pattern: str) -> dict:
    """
    Purge cached read-views matching a glob pattern.

    Args:
        pattern: Cache key pattern, e.g. "order:<id>:*"

    Returns:
        dict: Pattern, number of removed keys and timing
    """
    task_id = self.request.id
    start_time = time.time()

    client = redis.Redis.from_url(get_settings().redis_url, socket_timeout=2)
    try:
        removed = purge_pattern(client, pattern)
    finally:
        client.close()

    elapsed = round(time.time() - start_time, 3)
    logger.info(f"Task {task_id}: purged {removed} keys for '{pattern}' in {elapsed}s")
    return {
        'task_id': task_id,
        'pattern': pattern,
        'removed': removed,
        'processing_time_seconds': elapsed,
    }


@celery_app.task
def health_check() -> dict:
    """Round-trip probe: returns once a worker has picked it up."""
    return {
        'status': 'healthy',
        'worker': celery_app.main,
        'timestamp': datetime.now(timezone.utc).isoformat()
    }
