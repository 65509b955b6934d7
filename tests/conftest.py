"""
Pytest configuration and shared fixtures.
"""

import asyncio
import heapq
import itertools
import os
from collections.abc import AsyncGenerator
from uuid import uuid4

# Use the in-process queue BEFORE any imports that might build settings
os.environ.setdefault("QUEUE_BACKEND", "memory")

import pytest
import pytest_asyncio
from fastapi import FastAPI
from httpx import ASGITransport, AsyncClient

from task_throttler.api.main import create_app
from task_throttler.api.rate_limit import SlidingWindowRateLimiter
from task_throttler.config import Settings
from task_throttler.queue.memory import InMemoryJobQueue, LocalConsumerLock


class FakeClock:
    """
    Virtual monotonic clock.

    ``sleep`` parks the caller until ``advance`` moves time past its
    deadline, so concurrent sleepers wake in deadline order without any
    real waiting.
    """

    def __init__(self, start: float = 0.0):
        self._now = start
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = itertools.count()
        self.sleeps: list[float] = []

    def now(self) -> float:
        return self._now

    @staticmethod
    async def settle(rounds: int = 50) -> None:
        """Let every ready task run until the event loop goes quiet."""
        for _ in range(rounds):
            await asyncio.sleep(0)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        if seconds <= 0:
            await asyncio.sleep(0)
            return
        future = asyncio.get_running_loop().create_future()
        heapq.heappush(self._sleepers, (self._now + seconds, next(self._seq), future))
        await future

    async def advance(self, seconds: float) -> None:
        """Move time forward, waking sleepers whose deadline has passed."""
        target = self._now + seconds
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target:
            deadline, _, future = heapq.heappop(self._sleepers)
            self._now = max(self._now, deadline)
            if not future.done():
                future.set_result(None)
            await self.settle()
        self._now = target
        await self.settle()


class RecordingAction:
    """Task action that records (user_id, time) and can be told to fail."""

    def __init__(self, clock: FakeClock):
        self.clock = clock
        self.calls: list[tuple[str, float]] = []
        self.fail_users: set[str] = set()

    async def __call__(self, user_id: str) -> None:
        self.calls.append((user_id, self.clock.now()))
        if user_id in self.fail_users:
            raise RuntimeError(f"task for {user_id} exploded")

    def times_for(self, user_id: str) -> list[float]:
        return [t for u, t in self.calls if u == user_id]


@pytest.fixture(autouse=True)
def release_local_locks():
    """Consumer locks are process-wide; never leak one between tests."""
    yield
    LocalConsumerLock._held.clear()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def action(clock: FakeClock) -> RecordingAction:
    return RecordingAction(clock)


@pytest.fixture
def queue() -> InMemoryJobQueue:
    return InMemoryJobQueue()


@pytest.fixture
def test_settings() -> Settings:
    """Create test settings."""
    return Settings(
        queue_backend="memory",
        log_level="DEBUG",
        log_format="console",
        min_spacing_seconds=1.0,
        dequeue_timeout_seconds=0.01,
        api_workers=2,
        supervisor_poll_interval_seconds=0.01,
        consumer_lock_ttl_seconds=0.3,
    )


@pytest.fixture
def rate_limiter() -> SlidingWindowRateLimiter:
    return SlidingWindowRateLimiter(max_requests=20, window_seconds=60)


@pytest.fixture
def app(queue: InMemoryJobQueue, rate_limiter: SlidingWindowRateLimiter) -> FastAPI:
    """Create a FastAPI app for testing backed by the in-memory queue."""
    return create_app(queue=queue, rate_limiter=rate_limiter)


@pytest_asyncio.fixture
async def client(app: FastAPI) -> AsyncGenerator[AsyncClient]:
    """Create an async HTTP client for testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def user_id() -> str:
    """Generate a test user ID."""
    return f"test-user-{uuid4().hex[:8]}"
