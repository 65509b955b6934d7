"""
Restart policy for admission worker processes.
"""

from dataclasses import dataclass

from task_throttler.config import Settings, get_settings


@dataclass
class RestartPolicy:
    """
    How long to wait before replacing a dead worker.

    With ``initial_backoff`` at 0 (the default) a dead worker is replaced
    immediately, every time, with no ceiling on the number of restarts.
    A positive ``initial_backoff`` doubles the delay on each consecutive
    crash up to ``max_backoff``. A worker that stayed up for at least
    ``reset_after`` seconds before dying starts again from no delay.
    """

    initial_backoff: float = 0.0
    max_backoff: float = 30.0
    reset_after: float = 60.0

    @classmethod
    def from_settings(cls, settings: Settings | None = None) -> "RestartPolicy":
        settings = settings or get_settings()
        return cls(
            initial_backoff=settings.restart_backoff_initial_seconds,
            max_backoff=settings.restart_backoff_max_seconds,
            reset_after=settings.restart_backoff_reset_seconds,
        )

    def next_delay(self, consecutive_failures: int) -> float:
        """
        Delay before the next restart.

        Args:
            consecutive_failures: Crashes in a row, including the one
                being handled.
        """
        if self.initial_backoff <= 0 or consecutive_failures <= 0:
            return 0.0
        return min(self.max_backoff, self.initial_backoff * 2 ** (consecutive_failures - 1))

    def is_stable(self, uptime: float) -> bool:
        """Whether a worker that ran for ``uptime`` seconds resets the backoff."""
        return uptime >= self.reset_after
