"""
Redis-backed durable queue.

Producers LPUSH serialized jobs onto a list and the single dispatcher
BRPOPs from the other end, which gives FIFO order on arrival. The list
lives in Redis and survives restarts of every process that uses it.
"""

import logging
from typing import Any
from uuid import uuid4

import redis.asyncio as aioredis
from redis.exceptions import ConnectionError as RedisConnectionError
from redis.exceptions import TimeoutError as RedisTimeoutError

from task_throttler.config import get_settings
from task_throttler.errors import QueueUnavailable
from task_throttler.types.job import NO_JOB, Job, NoJobAvailable

logger = logging.getLogger(__name__)

_UNAVAILABLE_ERRORS = (RedisConnectionError, RedisTimeoutError, OSError)

# Only the holder of the token may extend or delete the lease.
_REFRESH_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("pexpire", KEYS[1], ARGV[2])
end
return 0
"""

_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""


class RedisJobQueue:
    """
    Durable job queue stored in a Redis list.

    Example::

        queue = RedisJobQueue("redis://localhost:6379/0")
        await queue.enqueue(Job.create("user-1"))
        job = await queue.dequeue(timeout=1.0)
    """

    def __init__(
        self,
        redis_url: str | None = None,
        queue_key: str | None = None,
        client: Any = None,
    ):
        """
        Initialize the queue.

        Args:
            redis_url: Redis connection URL. Defaults to settings.
            queue_key: Name of the Redis list. Defaults to settings.
            client: Optional pre-built ``redis.asyncio.Redis`` client.
        """
        settings = get_settings()
        self._redis_url = redis_url or settings.redis_url
        self.queue_key = queue_key or settings.queue_key
        self._redis = client

    @property
    def client(self) -> Any:
        """The underlying Redis client, created lazily."""
        if self._redis is None:
            self._redis = aioredis.from_url(self._redis_url)
        return self._redis

    async def enqueue(self, job: Job) -> None:
        """
        Append a job to the tail of the queue.

        Raises:
            QueueUnavailable: If Redis cannot be reached.
        """
        try:
            await self.client.lpush(self.queue_key, job.to_wire())
        except _UNAVAILABLE_ERRORS as e:
            raise QueueUnavailable("enqueue", e) from e

    async def dequeue(self, timeout: float) -> Job | NoJobAvailable:
        """
        Block up to ``timeout`` seconds for the head of the queue.

        Returns:
            The job, or ``NO_JOB`` if the timeout elapsed.

        Raises:
            QueueUnavailable: If Redis cannot be reached.
            MalformedJob: If the popped payload is not a valid job. The
                payload has already been removed from the queue.
        """
        try:
            item = await self.client.brpop([self.queue_key], timeout=timeout)
        except _UNAVAILABLE_ERRORS as e:
            raise QueueUnavailable("dequeue", e) from e

        if item is None:
            return NO_JOB

        _, raw = item
        return Job.from_wire(raw)

    async def depth(self) -> int:
        """Number of jobs waiting in the queue."""
        try:
            return int(await self.client.llen(self.queue_key))
        except _UNAVAILABLE_ERRORS as e:
            raise QueueUnavailable("depth", e) from e

    async def ping(self) -> bool:
        """Check that Redis is reachable."""
        try:
            return bool(await self.client.ping())
        except _UNAVAILABLE_ERRORS:
            return False

    async def close(self) -> None:
        """Close the Redis connection pool."""
        if self._redis is not None:
            await self._redis.aclose()
            self._redis = None


class RedisConsumerLock:
    """
    Lease lock held by the single active dispatch loop.

    The lease is a Redis key set with ``NX`` and a TTL. The holder must
    call ``refresh`` well within the TTL; if it stops doing so (crash,
    partition) the key expires and another dispatcher may take over.
    """

    def __init__(self, client: Any, key: str, ttl_seconds: float):
        self._redis = client
        self.key = key
        self.token = uuid4().hex
        self._ttl_ms = int(ttl_seconds * 1000)

    async def acquire(self) -> bool:
        """Try to take the lease. Returns True if this instance now holds it."""
        try:
            acquired = await self._redis.set(self.key, self.token, nx=True, px=self._ttl_ms)
        except _UNAVAILABLE_ERRORS as e:
            raise QueueUnavailable("lock acquire", e) from e
        return bool(acquired)

    async def refresh(self) -> bool:
        """Extend the lease. Returns False if it is no longer ours."""
        try:
            result = await self._redis.eval(_REFRESH_SCRIPT, 1, self.key, self.token, self._ttl_ms)
        except _UNAVAILABLE_ERRORS as e:
            raise QueueUnavailable("lock refresh", e) from e
        return result == 1

    async def release(self) -> None:
        """Give the lease up if we still hold it."""
        try:
            await self._redis.eval(_RELEASE_SCRIPT, 1, self.key, self.token)
        except _UNAVAILABLE_ERRORS:
            logger.warning("Could not release consumer lock", extra={"key": self.key})
