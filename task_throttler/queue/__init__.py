"""
Durable queue module.
Contains the queue interface, its Redis and in-memory implementations,
and the single-active-consumer lock.
"""

from task_throttler.config import Settings, get_settings
from task_throttler.queue.base import ConsumerLock, JobQueue
from task_throttler.queue.memory import InMemoryJobQueue, LocalConsumerLock
from task_throttler.queue.redis_queue import RedisConsumerLock, RedisJobQueue


def create_queue(settings: Settings | None = None) -> JobQueue:
    """Build the queue selected by ``QUEUE_BACKEND``."""
    settings = settings or get_settings()
    if settings.queue_backend == "memory":
        return InMemoryJobQueue()
    return RedisJobQueue(redis_url=settings.redis_url, queue_key=settings.queue_key)


def create_consumer_lock(queue: JobQueue, settings: Settings | None = None) -> ConsumerLock:
    """Build the consumer lock matching the queue backend."""
    settings = settings or get_settings()
    if isinstance(queue, RedisJobQueue):
        return RedisConsumerLock(
            queue.client,
            key=settings.consumer_lock_key,
            ttl_seconds=settings.consumer_lock_ttl_seconds,
        )
    return LocalConsumerLock(settings.consumer_lock_key)


__all__ = [
    "JobQueue",
    "ConsumerLock",
    "RedisJobQueue",
    "RedisConsumerLock",
    "InMemoryJobQueue",
    "LocalConsumerLock",
    "create_queue",
    "create_consumer_lock",
]
