"""
Durable queue interface consumed by the admission layer and the dispatcher.
"""

from typing import Protocol

from task_throttler.types.job import Job, NoJobAvailable


class JobQueue(Protocol):
    """
    FIFO queue of pending jobs.

    ``enqueue`` appends to the tail. ``dequeue`` blocks up to ``timeout``
    seconds for the head element and removes it atomically with the
    return; there is no peek and no requeue.
    """

    async def enqueue(self, job: Job) -> None:
        ...

    async def dequeue(self, timeout: float) -> Job | NoJobAvailable:
        ...

    async def depth(self) -> int:
        ...

    async def ping(self) -> bool:
        ...

    async def close(self) -> None:
        ...


class ConsumerLock(Protocol):
    """Lease guaranteeing a single active dispatch loop per queue."""

    key: str

    async def acquire(self) -> bool:
        ...

    async def refresh(self) -> bool:
        ...

    async def release(self) -> None:
        ...
