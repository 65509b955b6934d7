"""
Application constants.
Centralized location for all constant values used across the application.
"""

from enum import StrEnum


class DispatchState(StrEnum):
    """
    Dispatch loop states.

    State transitions:
    - IDLE -> DISPATCHING (job returned by dequeue and handed to a lane)
    - DISPATCHING -> IDLE (last waiting job triggered, or failed)
    - IDLE -> IDLE (dequeue timed out)
    - any -> STOPPED (loop returned from start)
    """

    IDLE = "idle"
    DISPATCHING = "dispatching"
    STOPPED = "stopped"


class DispatchOutcome(StrEnum):
    """Result of a single dispatch loop iteration."""

    IDLE = "idle"
    ACCEPTED = "accepted"  # handed to the user's lane
    FAILED = "failed"
    QUEUE_UNAVAILABLE = "queue_unavailable"


# API constants
API_V1_PREFIX = "/api/v1"
TASK_QUEUED_MESSAGE = "Task queued"
USER_ID_REQUIRED_MESSAGE = "user_id is required"
QUEUE_UNAVAILABLE_MESSAGE = "Task queue unavailable"

# Rate limit headers (IETF draft "standard" headers)
RATELIMIT_LIMIT_HEADER = "RateLimit-Limit"
RATELIMIT_REMAINING_HEADER = "RateLimit-Remaining"
RATELIMIT_RESET_HEADER = "RateLimit-Reset"

# Metrics names
METRIC_QUEUE_DEPTH = "task_queue_depth"
METRIC_JOBS_ENQUEUED = "jobs_enqueued_total"
METRIC_JOBS_DISPATCHED = "jobs_dispatched_total"
METRIC_THROTTLE_WAIT = "throttle_wait_seconds"
METRIC_DEQUEUE_TIMEOUTS = "dequeue_timeouts_total"
METRIC_WORKER_RESTARTS = "worker_restarts_total"
METRIC_RATE_LIMITED = "rate_limited_total"
METRIC_API_REQUESTS = "api_requests_total"
METRIC_API_LATENCY = "api_request_latency_seconds"

# Trace span names
SPAN_ENQUEUE_JOB = "enqueue_job"
SPAN_EXECUTE_TASK = "execute_task"
