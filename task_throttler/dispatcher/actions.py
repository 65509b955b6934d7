"""
Task actions run by the dispatcher once a job is released.

An action receives the job's user_id and returns nothing the dispatcher
depends on. It may raise; the dispatch loop logs the failure and moves on.
"""

import asyncio
import logging
from collections.abc import Awaitable, Callable
from pathlib import Path

from task_throttler.config import get_settings
from task_throttler.errors import ActionFailure
from task_throttler.types.job import now_ms

logger = logging.getLogger(__name__)

# Type alias for task actions
TaskAction = Callable[[str], Awaitable[None]]


class TaskLogAction:
    """
    Default task: append a completion line for the user to the task log.

    Lines look like ``user-1-task completed at-1700000000000``.
    """

    def __init__(self, path: str | Path | None = None):
        self.path = Path(path or get_settings().task_log_path)

    async def __call__(self, user_id: str) -> None:
        line = f"{user_id}-task completed at-{now_ms()}"

        try:
            await asyncio.to_thread(self._append, f"{line}\n")
        except OSError as e:
            raise ActionFailure(user_id, e) from e

        logger.info(line, extra={"user_id": user_id})

    def _append(self, text: str) -> None:
        with self.path.open("a", encoding="utf-8") as f:
            f.write(text)
