"""
Celery Worker
Runs deferred cache purges for the API when Redis drops an inline invalidation.
Broker and result backend share the Redis instance the read cache uses.

    celery -A order_engine.celery_worker worker -Q cache,celery --loglevel=info
"""

from celery import Celery

from order_engine.core.config import get_settings

settings = get_settings()

celery_app = Celery(
    'order_engine_worker',
    broker=settings.redis_url,
    backend=settings.redis_url,
    include=['order_engine.tasks']
)

celery_app.conf.update(
    task_serializer='json',
    accept_content=['json'],
    result_serializer='json',
    timezone='UTC',
    enable_utc=True,

    # Purges are idempotent, so a redelivered task is harmless
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    task_routes={
        'order_engine.tasks.purge_cache_pattern': {'queue': 'cache'},
    },

    worker_prefetch_multiplier=1,
    worker_concurrency=2,

    # Purge results are only useful for debugging
    result_expires=600,

    broker_connection_retry_on_startup=True,
)


if __name__ == '__main__':
    celery_app.start()
