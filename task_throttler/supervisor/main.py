"""
Consumer supervisor.

The supervisor is the primary process of the deployment. It keeps a fixed
pool of admission worker processes alive and runs the dispatch loop
itself, so the queue has exactly one consumer for as long as the
supervisor lives.
"""

import asyncio
import logging
import os
import signal
import time
from collections.abc import Callable
from contextlib import suppress
from dataclasses import dataclass

from task_throttler.config import Settings, get_settings
from task_throttler.dispatcher.consumer import ExclusiveConsumer
from task_throttler.errors import WorkerCrash
from task_throttler.observability.logging import setup_logging
from task_throttler.observability.metrics import get_metrics, setup_metrics
from task_throttler.observability.tracing import setup_tracing
from task_throttler.queue import create_consumer_lock, create_queue
from task_throttler.supervisor.policy import RestartPolicy
from task_throttler.supervisor.workers import AdmissionWorkerFactory, WorkerProcess

logger = logging.getLogger(__name__)

# Type alias for starting a worker process for a pool slot
WorkerFactory = Callable[[int], WorkerProcess]


@dataclass
class WorkerSlot:
    """One position in the admission worker pool."""

    index: int
    process: WorkerProcess | None = None
    started_at: float = 0.0
    consecutive_failures: int = 0
    restart_at: float = 0.0


class ConsumerSupervisor:
    """
    Owns the admission worker pool and the single dispatch loop.

    Features:
    - Fixed-size pool of admission workers
    - Any worker exit (any code, any signal) is replaced with an
      identically configured worker, subject to the restart policy
    - The dispatch loop runs in the supervisor process, never in a worker
    - Graceful shutdown on SIGTERM/SIGINT
    """

    def __init__(
        self,
        consumer: ExclusiveConsumer,
        worker_factory: WorkerFactory | None = None,
        worker_count: int | None = None,
        poll_interval: float | None = None,
        restart_policy: RestartPolicy | None = None,
        settings: Settings | None = None,
    ):
        """
        Initialize the supervisor.

        Args:
            consumer: Lock-guarded dispatch loop run in this process.
            worker_factory: Starts a worker process for a slot index.
            worker_count: Number of admission workers.
            poll_interval: Seconds between worker liveness checks.
            restart_policy: Delay policy for replacing dead workers.
            settings: Settings to read defaults from.
        """
        settings = settings or get_settings()

        self.consumer = consumer
        self.worker_factory = worker_factory or AdmissionWorkerFactory(settings)
        self.worker_count = settings.api_workers if worker_count is None else worker_count
        self.poll_interval = poll_interval or settings.supervisor_poll_interval_seconds
        self.restart_policy = restart_policy or RestartPolicy.from_settings(settings)

        self.slots = [WorkerSlot(index=i) for i in range(self.worker_count)]
        self._running = False
        self._metrics = get_metrics()

    async def run(self) -> None:
        """Start the worker pool and dispatch until ``stop`` is called."""
        logger.info(
            f"Primary {os.getpid()} is running",
            extra={"workers": self.worker_count},
        )

        self._running = True
        self.start_workers()
        monitor = asyncio.create_task(self._monitor_workers())

        try:
            await self.consumer.run()
        finally:
            self._running = False
            monitor.cancel()
            with suppress(asyncio.CancelledError):
                await monitor
            self.stop_workers()

    async def stop(self) -> None:
        """Stop the dispatch loop, then the workers."""
        logger.info("Supervisor stopping")
        self._running = False
        await self.consumer.stop()

    def start_workers(self, now: float | None = None) -> None:
        """Start a worker in every slot."""
        now = time.monotonic() if now is None else now
        for slot in self.slots:
            self._spawn(slot, now)

    def check_workers(self, now: float | None = None) -> list[WorkerCrash]:
        """
        Replace dead workers.

        Returns:
            The crashes detected during this check.
        """
        now = time.monotonic() if now is None else now
        crashes: list[WorkerCrash] = []

        for slot in self.slots:
            process = slot.process

            if process is not None:
                if process.is_alive():
                    continue

                process.join(timeout=0)
                crash = WorkerCrash(slot.index, process.pid, process.exitcode)
                crashes.append(crash)
                logger.warning(
                    f"Worker {process.pid} died",
                    extra={"worker_index": slot.index, "exitcode": process.exitcode},
                )
                self._metrics.record_worker_restart(slot.index)

                if self.restart_policy.is_stable(now - slot.started_at):
                    slot.consecutive_failures = 0
                slot.consecutive_failures += 1
                delay = self.restart_policy.next_delay(slot.consecutive_failures)
                slot.restart_at = now + delay
                slot.process = None

                if delay > 0:
                    logger.info(
                        f"Restarting worker {slot.index} in {delay:.1f}s",
                        extra={"consecutive_failures": slot.consecutive_failures},
                    )

            if slot.process is None and now >= slot.restart_at:
                self._spawn(slot, now)

        return crashes

    def stop_workers(self, timeout: float = 5.0) -> None:
        """Terminate every worker and wait for it to exit."""
        processes = [slot.process for slot in self.slots if slot.process is not None]

        for process in processes:
            if process.is_alive():
                process.terminate()
        for process in processes:
            process.join(timeout=timeout)

        for slot in self.slots:
            slot.process = None

        close = getattr(self.worker_factory, "close", None)
        if close is not None:
            close()

        logger.info("Workers stopped", extra={"count": len(processes)})

    def _spawn(self, slot: WorkerSlot, now: float) -> None:
        slot.process = self.worker_factory(slot.index)
        slot.started_at = now
        logger.info(
            f"Worker {slot.process.pid} started",
            extra={"worker_index": slot.index},
        )

    async def _monitor_workers(self) -> None:
        """Periodically replace dead workers while running."""
        while self._running:
            await asyncio.sleep(self.poll_interval)

            if not self._running:
                break

            try:
                self.check_workers()
            except Exception as e:
                logger.exception(f"Error in worker monitor: {e}")


async def run_async() -> None:
    """Run the supervisor asynchronously."""
    settings = get_settings()
    setup_logging(role="supervisor")
    setup_metrics()
    if settings.tracing_enabled:
        setup_tracing()

    if settings.queue_backend == "memory":
        logger.warning(
            "The memory queue is private to each process; "
            "admission workers cannot reach the dispatcher"
        )

    queue = create_queue(settings)
    consumer = ExclusiveConsumer(queue, create_consumer_lock(queue, settings))
    supervisor = ConsumerSupervisor(consumer, settings=settings)

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(supervisor.stop())
        )

    try:
        await supervisor.run()
    finally:
        await queue.close()


def run() -> None:
    """Run the supervisor."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
