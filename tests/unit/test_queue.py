"""
Unit tests for the durable queue adapters and consumer locks.
"""

import asyncio
from unittest.mock import AsyncMock

import pytest
from redis.exceptions import ConnectionError as RedisConnectionError

from task_throttler.config import Settings
from task_throttler.errors import MalformedJob, QueueUnavailable
from task_throttler.queue import create_consumer_lock, create_queue
from task_throttler.queue.memory import InMemoryJobQueue, LocalConsumerLock
from task_throttler.queue.redis_queue import RedisConsumerLock, RedisJobQueue
from task_throttler.types.job import NO_JOB, Job


class TestInMemoryJobQueue:
    """Tests for InMemoryJobQueue."""

    @pytest.mark.asyncio
    async def test_fifo_order(self, queue: InMemoryJobQueue):
        """Test jobs come out in the order they went in."""
        jobs = [Job.create(f"user-{i % 2}") for i in range(4)]
        for job in jobs:
            await queue.enqueue(job)

        popped = [await queue.dequeue(timeout=0.01) for _ in jobs]

        assert popped == jobs
        assert await queue.depth() == 0

    @pytest.mark.asyncio
    async def test_dequeue_timeout_returns_sentinel(self, queue: InMemoryJobQueue):
        """Test an empty queue times out with NO_JOB rather than an error."""
        assert await queue.dequeue(timeout=0.01) is NO_JOB

    @pytest.mark.asyncio
    async def test_dequeue_wakes_on_enqueue(self, queue: InMemoryJobQueue):
        """Test a blocked dequeue returns as soon as a job arrives."""
        job = Job.create("user-1")
        waiter = asyncio.create_task(queue.dequeue(timeout=5.0))
        await asyncio.sleep(0)

        await queue.enqueue(job)

        assert await asyncio.wait_for(waiter, timeout=1.0) == job

    @pytest.mark.asyncio
    async def test_malformed_payload_is_removed(self, queue: InMemoryJobQueue):
        """Test a bad payload raises and does not block the queue."""
        await queue.push_raw("garbage")
        await queue.enqueue(Job.create("user-1"))

        with pytest.raises(MalformedJob):
            await queue.dequeue(timeout=0.01)

        assert (await queue.dequeue(timeout=0.01)).user_id == "user-1"

    @pytest.mark.asyncio
    async def test_unavailable(self, queue: InMemoryJobQueue):
        """Test an unavailable queue fails both directions."""
        queue.available = False

        with pytest.raises(QueueUnavailable):
            await queue.enqueue(Job.create("user-1"))
        with pytest.raises(QueueUnavailable):
            await queue.dequeue(timeout=0.01)
        assert await queue.ping() is False


class TestRedisJobQueue:
    """Tests for RedisJobQueue against a mocked client."""

    @pytest.fixture
    def client(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def redis_queue(self, client: AsyncMock) -> RedisJobQueue:
        return RedisJobQueue(redis_url="redis://test:6379/0", queue_key="taskQueue", client=client)

    @pytest.mark.asyncio
    async def test_enqueue_pushes_to_head(self, redis_queue: RedisJobQueue, client: AsyncMock):
        """Test enqueue LPUSHes the serialized job."""
        job = Job.create("user-1")

        await redis_queue.enqueue(job)

        client.lpush.assert_awaited_once_with("taskQueue", job.to_wire())

    @pytest.mark.asyncio
    async def test_dequeue_pops_from_tail(self, redis_queue: RedisJobQueue, client: AsyncMock):
        """Test dequeue BRPOPs and decodes the job."""
        job = Job.create("user-1")
        client.brpop.return_value = (b"taskQueue", job.to_wire().encode())

        result = await redis_queue.dequeue(timeout=1.0)

        assert result == job
        client.brpop.assert_awaited_once_with(["taskQueue"], timeout=1.0)

    @pytest.mark.asyncio
    async def test_dequeue_timeout(self, redis_queue: RedisJobQueue, client: AsyncMock):
        """Test a BRPOP timeout maps to NO_JOB."""
        client.brpop.return_value = None

        assert await redis_queue.dequeue(timeout=1.0) is NO_JOB

    @pytest.mark.asyncio
    async def test_connection_errors_map_to_queue_unavailable(
        self,
        redis_queue: RedisJobQueue,
        client: AsyncMock,
    ):
        """Test Redis connection failures raise QueueUnavailable."""
        client.lpush.side_effect = RedisConnectionError("connection refused")
        client.brpop.side_effect = RedisConnectionError("connection refused")

        with pytest.raises(QueueUnavailable, match="enqueue"):
            await redis_queue.enqueue(Job.create("user-1"))
        with pytest.raises(QueueUnavailable, match="dequeue"):
            await redis_queue.dequeue(timeout=1.0)

    @pytest.mark.asyncio
    async def test_depth_and_ping(self, redis_queue: RedisJobQueue, client: AsyncMock):
        client.llen.return_value = 3
        client.ping.return_value = True

        assert await redis_queue.depth() == 3
        assert await redis_queue.ping() is True

        client.ping.side_effect = RedisConnectionError("down")
        assert await redis_queue.ping() is False

    @pytest.mark.asyncio
    async def test_close(self, redis_queue: RedisJobQueue, client: AsyncMock):
        await redis_queue.close()

        client.aclose.assert_awaited_once()
        assert redis_queue._redis is None


class TestRedisConsumerLock:
    """Tests for RedisConsumerLock against a mocked client."""

    @pytest.fixture
    def client(self) -> AsyncMock:
        return AsyncMock()

    @pytest.fixture
    def lock(self, client: AsyncMock) -> RedisConsumerLock:
        return RedisConsumerLock(client, key="taskQueue:consumer", ttl_seconds=15)

    @pytest.mark.asyncio
    async def test_acquire_sets_key_only_if_absent(self, lock: RedisConsumerLock, client: AsyncMock):
        """Test acquire uses SET NX with a TTL."""
        client.set.return_value = True

        assert await lock.acquire() is True
        client.set.assert_awaited_once_with(
            "taskQueue:consumer", lock.token, nx=True, px=15000
        )

    @pytest.mark.asyncio
    async def test_acquire_fails_when_held(self, lock: RedisConsumerLock, client: AsyncMock):
        client.set.return_value = None

        assert await lock.acquire() is False

    @pytest.mark.asyncio
    async def test_refresh(self, lock: RedisConsumerLock, client: AsyncMock):
        """Test refresh reports whether the lease is still ours."""
        client.eval.return_value = 1
        assert await lock.refresh() is True

        client.eval.return_value = 0
        assert await lock.refresh() is False

        args = client.eval.await_args.args
        assert args[1:] == (1, "taskQueue:consumer", lock.token, 15000)

    @pytest.mark.asyncio
    async def test_refresh_unreachable(self, lock: RedisConsumerLock, client: AsyncMock):
        client.eval.side_effect = RedisConnectionError("down")

        with pytest.raises(QueueUnavailable):
            await lock.refresh()

    @pytest.mark.asyncio
    async def test_release_only_deletes_own_token(self, lock: RedisConsumerLock, client: AsyncMock):
        await lock.release()

        script, numkeys, key, token = client.eval.await_args.args
        assert "del" in script
        assert (numkeys, key, token) == (1, "taskQueue:consumer", lock.token)

    def test_tokens_are_unique(self, client: AsyncMock):
        first = RedisConsumerLock(client, key="k", ttl_seconds=1)
        second = RedisConsumerLock(client, key="k", ttl_seconds=1)

        assert first.token != second.token


class TestLocalConsumerLock:
    """Tests for LocalConsumerLock."""

    @pytest.mark.asyncio
    async def test_single_holder(self):
        """Test only one lock per key is held at a time."""
        first = LocalConsumerLock("taskQueue:consumer")
        second = LocalConsumerLock("taskQueue:consumer")

        assert await first.acquire() is True
        assert await second.acquire() is False
        assert await first.refresh() is True
        assert await second.refresh() is False

        await first.release()

        assert await second.acquire() is True


class TestFactories:
    """Tests for create_queue and create_consumer_lock."""

    def test_memory_backend(self):
        settings = Settings(queue_backend="memory")

        queue = create_queue(settings)

        assert isinstance(queue, InMemoryJobQueue)
        assert isinstance(create_consumer_lock(queue, settings), LocalConsumerLock)

    def test_redis_backend(self):
        settings = Settings(
            queue_backend="redis",
            redis_url="redis://redis:6379/1",
            queue_key="jobs",
            consumer_lock_key="jobs:consumer",
        )

        queue = create_queue(settings)
        lock = create_consumer_lock(queue, settings)

        assert isinstance(queue, RedisJobQueue)
        assert queue.queue_key == "jobs"
        assert isinstance(lock, RedisConsumerLock)
        assert lock.key == "jobs:consumer"
