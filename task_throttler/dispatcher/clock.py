"""
Clock abstraction for the dispatcher.

The dispatch loop reads time and sleeps only through a ``Clock`` so tests
can drive it with a fake clock instead of waiting in real time.
"""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Monotonic time source with an awaitable sleep."""

    def now(self) -> float:
        ...

    async def sleep(self, seconds: float) -> None:
        ...


class MonotonicClock:
    """Real clock backed by ``time.monotonic`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)
