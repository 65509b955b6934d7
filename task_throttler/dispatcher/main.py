"""
Standalone dispatcher process.

Runs the lock-guarded dispatch loop without admission workers, for
deployments where the API is served separately.
"""

import asyncio
import signal

from task_throttler.config import get_settings
from task_throttler.dispatcher.consumer import ExclusiveConsumer
from task_throttler.observability.logging import setup_logging
from task_throttler.observability.metrics import setup_metrics
from task_throttler.observability.tracing import setup_tracing
from task_throttler.queue import create_consumer_lock, create_queue


async def run_async() -> None:
    """Run the dispatcher asynchronously."""
    settings = get_settings()
    setup_logging(role="dispatcher")
    setup_metrics()
    if settings.tracing_enabled:
        setup_tracing()

    queue = create_queue(settings)
    consumer = ExclusiveConsumer(queue, create_consumer_lock(queue, settings))

    # Handle shutdown signals
    loop = asyncio.get_running_loop()

    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(
            sig,
            lambda: asyncio.create_task(consumer.stop())
        )

    try:
        await consumer.run()
    finally:
        await queue.close()


def run() -> None:
    """Run the dispatcher."""
    asyncio.run(run_async())


if __name__ == "__main__":
    run()
