"""Shared FastAPI dependencies (job queue, rate limiter)."""

from fastapi import Request

from task_throttler.api.rate_limit import SlidingWindowRateLimiter
from task_throttler.queue.base import JobQueue


def get_queue(request: Request) -> JobQueue:
    """The durable queue the app was created with."""
    return request.app.state.queue


def get_rate_limiter(request: Request) -> SlidingWindowRateLimiter:
    """The submission rate limiter of this worker process."""
    return request.app.state.rate_limiter
