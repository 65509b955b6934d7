"""
Type definitions for the task throttler.
Contains input/output type definitions, grouped by module.
"""

from task_throttler.types.api import (
    ErrorResponse,
    HealthResponse,
    SubmitTaskRequest,
    SubmitTaskResponse,
)
from task_throttler.types.job import NO_JOB, Job, NoJobAvailable, now_ms

__all__ = [
    # API types
    "SubmitTaskRequest",
    "SubmitTaskResponse",
    "HealthResponse",
    "ErrorResponse",
    # Job types
    "Job",
    "NoJobAvailable",
    "NO_JOB",
    "now_ms",
]
