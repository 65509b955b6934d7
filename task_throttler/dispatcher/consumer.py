"""
Single-active-consumer guard around the dispatch loop.

Throttling state lives in the memory of one dispatch loop, so two loops
consuming the same queue would each enforce spacing against their own
history and could dispatch one user's jobs back to back. The guard only
runs a dispatch loop while it holds the consumer lease.
"""

import asyncio
import logging
from collections.abc import Callable
from contextlib import suppress

from task_throttler.config import get_settings
from task_throttler.dispatcher.loop import DispatchLoop
from task_throttler.errors import ConsumerLockLost, QueueUnavailable
from task_throttler.queue.base import ConsumerLock, JobQueue

logger = logging.getLogger(__name__)

# Type alias for building a fresh dispatch loop
DispatchLoopFactory = Callable[[JobQueue], DispatchLoop]


class ExclusiveConsumer:
    """
    Runs a dispatch loop only while holding the consumer lease.

    Lifecycle:
    1. Acquire the lease, retrying every ``refresh_interval`` seconds
    2. Start a new dispatch loop with empty throttling state
    3. Refresh the lease every ``refresh_interval`` seconds
    4. If the lease is lost, stop the loop, drop its waiting jobs and
       go back to step 1
    """

    def __init__(
        self,
        queue: JobQueue,
        lock: ConsumerLock,
        loop_factory: DispatchLoopFactory | None = None,
        lease_ttl: float | None = None,
        refresh_interval: float | None = None,
    ):
        """
        Initialize the consumer.

        Args:
            queue: Queue the dispatch loop consumes.
            lock: Lease that makes this the only active consumer.
            loop_factory: Builds a dispatch loop for a queue.
            lease_ttl: Lease lifetime in seconds.
            refresh_interval: Seconds between lease refreshes. Defaults to
                a third of the TTL.
        """
        settings = get_settings()

        self.queue = queue
        self.lock = lock
        self._loop_factory = loop_factory or DispatchLoop
        self.lease_ttl = settings.consumer_lock_ttl_seconds if lease_ttl is None else lease_ttl
        self.refresh_interval = (
            self.lease_ttl / 3 if refresh_interval is None else refresh_interval
        )

        self.dispatch_loop: DispatchLoop | None = None
        self._running = False

    async def run(self) -> None:
        """Hold the lease and dispatch until ``stop`` is called."""
        self._running = True

        while self._running:
            if not await self._acquire():
                await asyncio.sleep(self.refresh_interval)
                continue

            if not self._running:
                await self.lock.release()
                break

            logger.info("Consumer lock acquired", extra={"key": self.lock.key})

            dispatch_loop = self._loop_factory(self.queue)
            self.dispatch_loop = dispatch_loop
            keeper = asyncio.create_task(self._keep_lease(dispatch_loop))

            try:
                await dispatch_loop.start()
            finally:
                keeper.cancel()
                with suppress(asyncio.CancelledError):
                    await keeper
                await self.lock.release()
                self.dispatch_loop = None
                logger.info("Consumer lock released", extra={"key": self.lock.key})

    async def stop(self) -> None:
        """Stop dispatching after the current dequeue and release the lease."""
        self._running = False
        if self.dispatch_loop is not None:
            await self.dispatch_loop.stop()

    async def _acquire(self) -> bool:
        try:
            return await self.lock.acquire()
        except QueueUnavailable as e:
            logger.error(f"Could not acquire consumer lock: {e}")
            return False

    async def _keep_lease(self, dispatch_loop: DispatchLoop) -> None:
        """
        Refresh the lease until it is lost.

        A refresh that fails because Redis is unreachable is tolerated
        until the lease would have expired anyway.
        """
        loop = asyncio.get_running_loop()
        last_refreshed = loop.time()

        while True:
            await asyncio.sleep(self.refresh_interval)

            try:
                held = await self.lock.refresh()
            except QueueUnavailable as e:
                logger.warning(f"Consumer lock refresh failed: {e}")
                held = loop.time() - last_refreshed < self.lease_ttl
            else:
                if held:
                    last_refreshed = loop.time()

            if not held:
                logger.error(str(ConsumerLockLost(self.lock.key)))
                await dispatch_loop.stop(drain=False)
                return
