"""
HTTP middleware.
"""

import time
from collections.abc import Callable

from fastapi import Request

from task_throttler.observability.metrics import get_metrics


def create_request_metrics_middleware() -> Callable:
    """
    Create middleware that records request counts and latency.

    Returns:
        The middleware function.
    """

    async def request_metrics_middleware(request: Request, call_next: Callable):
        """Middleware to time every request."""
        start = time.perf_counter()
        response = await call_next(request)

        get_metrics().record_api_request(
            method=request.method,
            endpoint=request.url.path,
            status=response.status_code,
            duration_seconds=time.perf_counter() - start,
        )
        return response

    return request_metrics_middleware
