"""
Health check routes.
"""

from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from task_throttler import __version__
from task_throttler.api.deps import get_queue
from task_throttler.errors import QueueUnavailable
from task_throttler.observability.metrics import get_metrics
from task_throttler.queue.base import JobQueue
from task_throttler.types.api import HealthResponse

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Health check",
    description="Check the health of the API and the durable queue.",
)
async def health_check(queue: JobQueue = Depends(get_queue)) -> HealthResponse:
    """
    Perform a health check.

    Checks queue connectivity and reports how many jobs are waiting.
    """
    queue_status = "healthy" if await queue.ping() else "unhealthy"

    depth = None
    if queue_status == "healthy":
        try:
            depth = await queue.depth()
        except QueueUnavailable:
            queue_status = "unhealthy"

    return HealthResponse(
        status="healthy" if queue_status == "healthy" else "degraded",
        version=__version__,
        queue=queue_status,
        queue_depth=depth,
        timestamp=datetime.now(timezone.utc),
    )


@router.get(
    "/ready",
    summary="Readiness check",
    description="Check if the service is ready to receive traffic.",
)
async def readiness_check(queue: JobQueue = Depends(get_queue)) -> dict:
    """Readiness probe: the queue must be reachable to accept tasks."""
    return {"ready": await queue.ping()}


@router.get(
    "/live",
    summary="Liveness check",
    description="Check if the service is alive.",
)
async def liveness_check() -> dict:
    """Liveness probe endpoint."""
    return {"alive": True}


@router.get(
    "/metrics",
    summary="Prometheus metrics",
    description="Expose Prometheus metrics.",
)
async def metrics(queue: JobQueue = Depends(get_queue)) -> Response:
    """Expose Prometheus metrics, refreshing the queue depth gauge first."""
    metrics_collector = get_metrics()

    try:
        metrics_collector.update_queue_depth(await queue.depth())
    except QueueUnavailable:
        pass

    return Response(
        content=metrics_collector.get_metrics(),
        media_type=metrics_collector.get_content_type(),
    )
