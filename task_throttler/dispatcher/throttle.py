"""
Per-user throttling state.

Tracks when the last job for each user was dispatched and computes how
long the next job for that user has to wait so that two dispatches for
the same user are never closer than ``min_spacing`` seconds.
"""


class ThrottlingState:
    """
    Mapping of user_id to the time of its most recent dispatch.

    The state belongs to exactly one dispatch loop and is not safe for
    concurrent mutation. It is never persisted: a new dispatch loop starts
    from an empty map, so a restart forgets every user's history.

    Two dispatch loops running at once would each hold their own map and
    could dispatch the same user back to back. The consumer lock held by
    ``ExclusiveConsumer`` is what rules this out.
    """

    def __init__(self, min_spacing: float):
        """
        Initialize the throttling state.

        Args:
            min_spacing: Minimum seconds between two dispatches for one user.
        """
        if min_spacing < 0:
            raise ValueError("min_spacing must not be negative")
        self.min_spacing = min_spacing
        self._last_dispatch_at: dict[str, float] = {}

    def time_to_wait(self, user_id: str, now: float) -> float:
        """
        Seconds to wait before a job for ``user_id`` may be dispatched.

        A user with no recorded dispatch never waits.
        """
        last = self._last_dispatch_at.get(user_id)
        if last is None:
            return 0.0
        return max(0.0, self.min_spacing - (now - last))

    def record_dispatch(self, user_id: str, now: float) -> None:
        """Record that a job for ``user_id`` was dispatched at ``now``."""
        self._last_dispatch_at[user_id] = now

    def last_dispatch_at(self, user_id: str) -> float | None:
        return self._last_dispatch_at.get(user_id)

    def reset(self) -> None:
        """Forget every user's dispatch history."""
        self._last_dispatch_at.clear()

    def __len__(self) -> int:
        return len(self._last_dispatch_at)

    def __contains__(self, user_id: object) -> bool:
        return user_id in self._last_dispatch_at
