"""
Task submission routes.
"""

import logging

from fastapi import APIRouter, Depends, Response, status
from fastapi.responses import JSONResponse

from task_throttler.api.deps import get_queue, get_rate_limiter
from task_throttler.api.rate_limit import SlidingWindowRateLimiter
from task_throttler.constants import API_V1_PREFIX, SPAN_ENQUEUE_JOB
from task_throttler.observability.metrics import get_metrics
from task_throttler.observability.tracing import get_tracer
from task_throttler.queue.base import JobQueue
from task_throttler.types.api import ErrorResponse, SubmitTaskRequest, SubmitTaskResponse
from task_throttler.types.job import Job

logger = logging.getLogger(__name__)

router = APIRouter(prefix=API_V1_PREFIX, tags=["Tasks"])


@router.post(
    "/task",
    response_model=SubmitTaskResponse,
    summary="Submit a task",
    description="Queue a task for a user. Tasks for one user run at least the configured spacing apart.",
    responses={
        status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
        status.HTTP_429_TOO_MANY_REQUESTS: {"model": ErrorResponse},
        status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ErrorResponse},
    },
)
async def submit_task(
    request: SubmitTaskRequest,
    response: Response,
    queue: JobQueue = Depends(get_queue),
    limiter: SlidingWindowRateLimiter = Depends(get_rate_limiter),
) -> SubmitTaskResponse | JSONResponse:
    """
    Queue a task for the given user.

    Args:
        request: Submission body carrying the user_id.
        response: Outgoing response, used to attach rate limit headers.
        queue: Durable queue to push onto.
        limiter: Per-user submission rate limiter.

    Returns:
        SubmitTaskResponse with the new job's id.

    Raises:
        QueueUnavailable: If the queue cannot accept the job (mapped to 503).
    """
    metrics = get_metrics()
    decision = limiter.hit(request.user_id)

    if not decision.allowed:
        metrics.record_rate_limited()
        logger.info("Submission rate limited", extra={"user_id": request.user_id})
        return JSONResponse(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            content={
                "error": f"Too many requests. Retry after {decision.retry_after} seconds",
            },
            headers={**decision.headers(), "Retry-After": str(decision.retry_after)},
        )

    response.headers.update(decision.headers())

    job = Job.create(request.user_id)

    with get_tracer().start_as_current_span(SPAN_ENQUEUE_JOB) as span:
        span.set_attribute("job_id", job.job_id)
        span.set_attribute("user_id", job.user_id)
        await queue.enqueue(job)

    metrics.record_job_enqueued()
    logger.info(
        "Task queued",
        extra={"job_id": job.job_id, "user_id": job.user_id},
    )

    return SubmitTaskResponse(job_id=job.job_id)
