"""
Per-user request rate limiting for task submission.

This is a ceiling on how often a user may *submit*; it knows nothing
about the dispatcher's per-user spacing, which governs how often a
user's tasks *run*.
"""

import math
import time
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass

from task_throttler.config import get_settings
from task_throttler.constants import (
    RATELIMIT_LIMIT_HEADER,
    RATELIMIT_REMAINING_HEADER,
    RATELIMIT_RESET_HEADER,
)


@dataclass
class RateLimitDecision:
    """Outcome of one rate limit check."""

    allowed: bool
    limit: int
    remaining: int
    reset_after: float  # seconds until the oldest counted request leaves the window

    @property
    def retry_after(self) -> int:
        """Whole seconds a rejected client should wait before retrying."""
        return max(1, math.ceil(self.reset_after))

    def headers(self) -> dict[str, str]:
        """Rate limit headers to attach to the response."""
        return {
            RATELIMIT_LIMIT_HEADER: str(self.limit),
            RATELIMIT_REMAINING_HEADER: str(self.remaining),
            RATELIMIT_RESET_HEADER: str(max(0, round(self.reset_after))),
        }


class SlidingWindowRateLimiter:
    """
    In-memory sliding window rate limiter.

    Allows at most ``max_requests`` requests per key within any window of
    ``window_seconds``. State is per process: with several admission
    workers each worker enforces the ceiling on the requests it sees.
    """

    def __init__(
        self,
        max_requests: int | None = None,
        window_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Initialize the rate limiter.

        Args:
            max_requests: Maximum requests per window per key.
            window_seconds: Window length in seconds.
            clock: Monotonic time source.
        """
        settings = get_settings()
        self.max_requests = max_requests or settings.rate_limit_max_requests
        self.window_seconds = window_seconds or settings.rate_limit_window_seconds
        self._clock = clock
        self._hits: dict[str, deque[float]] = {}
        self._last_prune = clock()

    def hit(self, key: str) -> RateLimitDecision:
        """
        Count a request for ``key`` if it fits in the window.

        Rejected requests are not counted.
        """
        now = self._clock()
        if now - self._last_prune >= self.window_seconds:
            self.prune()

        hits = self._hits.setdefault(key, deque())

        cutoff = now - self.window_seconds
        while hits and hits[0] <= cutoff:
            hits.popleft()

        if len(hits) >= self.max_requests:
            return RateLimitDecision(
                allowed=False,
                limit=self.max_requests,
                remaining=0,
                reset_after=hits[0] + self.window_seconds - now,
            )

        hits.append(now)
        return RateLimitDecision(
            allowed=True,
            limit=self.max_requests,
            remaining=self.max_requests - len(hits),
            reset_after=hits[0] + self.window_seconds - now,
        )

    def reset(self, key: str) -> None:
        """Reset rate limit for a key."""
        self._hits.pop(key, None)

    def prune(self) -> int:
        """
        Drop keys with no requests in the current window.

        Returns:
            Number of keys removed.
        """
        now = self._clock()
        self._last_prune = now
        cutoff = now - self.window_seconds
        stale = [key for key, hits in self._hits.items() if not hits or hits[-1] <= cutoff]
        for key in stale:
            del self._hits[key]
        return len(stale)
