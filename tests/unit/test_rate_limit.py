"""
Unit tests for rate limiting.
"""

from task_throttler.api.rate_limit import RateLimitDecision, SlidingWindowRateLimiter


class FakeTime:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


class TestRateLimitDecision:
    """Tests for RateLimitDecision."""

    def test_headers(self):
        """Test standard rate limit headers."""
        decision = RateLimitDecision(allowed=True, limit=20, remaining=19, reset_after=59.6)

        assert decision.headers() == {
            "RateLimit-Limit": "20",
            "RateLimit-Remaining": "19",
            "RateLimit-Reset": "60",
        }

    def test_retry_after_rounds_up(self):
        """Test Retry-After is a whole number of seconds, at least 1."""
        assert RateLimitDecision(False, 20, 0, reset_after=2.1).retry_after == 3
        assert RateLimitDecision(False, 20, 0, reset_after=2.0).retry_after == 2
        assert RateLimitDecision(False, 20, 0, reset_after=0.0).retry_after == 1


class TestSlidingWindowRateLimiter:
    """Tests for SlidingWindowRateLimiter."""

    def test_allows_up_to_limit(self):
        """Test requests are allowed until the window is full."""
        limiter = SlidingWindowRateLimiter(max_requests=3, window_seconds=60, clock=FakeTime())

        remaining = [limiter.hit("user-1").remaining for _ in range(3)]

        assert remaining == [2, 1, 0]

    def test_blocks_over_limit(self):
        """Test the request after the limit is rejected."""
        time = FakeTime()
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=time)

        limiter.hit("user-1")
        time.now += 10
        limiter.hit("user-1")
        time.now += 10
        decision = limiter.hit("user-1")

        assert decision.allowed is False
        assert decision.remaining == 0
        # Oldest request leaves the window 60s after it was made
        assert decision.reset_after == 40

    def test_window_slides(self):
        """Test capacity returns as old requests leave the window."""
        time = FakeTime()
        limiter = SlidingWindowRateLimiter(max_requests=2, window_seconds=60, clock=time)

        limiter.hit("user-1")
        time.now += 30
        limiter.hit("user-1")
        time.now += 30  # first request is now exactly one window old

        assert limiter.hit("user-1").allowed is True
        assert limiter.hit("user-1").allowed is False

    def test_rejected_requests_are_not_counted(self):
        """Test hammering while limited does not extend the block."""
        time = FakeTime()
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=time)

        limiter.hit("user-1")
        for _ in range(10):
            time.now += 5
            limiter.hit("user-1")
        time.now += 10

        assert limiter.hit("user-1").allowed is True

    def test_per_user_limits(self):
        """Test that rate limits are per user."""
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeTime())

        limiter.hit("user-1")

        assert limiter.hit("user-1").allowed is False
        assert limiter.hit("user-2").allowed is True

    def test_reset(self):
        """Test resetting rate limit for a key."""
        limiter = SlidingWindowRateLimiter(max_requests=1, window_seconds=60, clock=FakeTime())

        limiter.hit("user-1")
        assert limiter.hit("user-1").allowed is False

        limiter.reset("user-1")

        assert limiter.hit("user-1").allowed is True

    def test_prune_drops_idle_users(self):
        """Test keys with nothing in the window are forgotten."""
        time = FakeTime()
        limiter = SlidingWindowRateLimiter(max_requests=5, window_seconds=60, clock=time)

        limiter.hit("user-1")
        time.now += 45
        limiter.hit("user-2")
        time.now += 20

        assert limiter.prune() == 1
        assert limiter.hit("user-2").remaining == 3
