"""
In-process queue and lock for tests and single-process development.

Jobs are stored serialized, the same way the Redis queue stores them, so
the dispatcher exercises the real decoding path.
"""

import asyncio

from task_throttler.errors import QueueUnavailable
from task_throttler.types.job import NO_JOB, Job, NoJobAvailable


class InMemoryJobQueue:
    """FIFO job queue backed by an ``asyncio.Queue``."""

    def __init__(self) -> None:
        self._queue: asyncio.Queue[str] = asyncio.Queue()
        self.available = True

    async def enqueue(self, job: Job) -> None:
        await self.push_raw(job.to_wire())

    async def push_raw(self, raw: str) -> None:
        """Append an already-serialized payload, as a foreign producer would."""
        self._check_available("enqueue")
        self._queue.put_nowait(raw)

    async def dequeue(self, timeout: float) -> Job | NoJobAvailable:
        self._check_available("dequeue")
        try:
            raw = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        except asyncio.TimeoutError:
            return NO_JOB
        return Job.from_wire(raw)

    async def depth(self) -> int:
        return self._queue.qsize()

    async def ping(self) -> bool:
        return self.available

    async def close(self) -> None:
        pass

    def _check_available(self, operation: str) -> None:
        if not self.available:
            raise QueueUnavailable(operation)


class LocalConsumerLock:
    """Consumer lock scoped to the current process."""

    _held: set[str] = set()

    def __init__(self, key: str):
        self.key = key
        self._owned = False

    async def acquire(self) -> bool:
        if self.key in self._held:
            return self._owned
        self._held.add(self.key)
        self._owned = True
        return True

    async def refresh(self) -> bool:
        return self._owned

    async def release(self) -> None:
        if self._owned:
            self._held.discard(self.key)
            self._owned = False
