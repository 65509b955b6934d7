"""
API request and response type definitions.
"""

from datetime import datetime

from pydantic import BaseModel, Field

from task_throttler.constants import TASK_QUEUED_MESSAGE


class SubmitTaskRequest(BaseModel):
    """Request body for submitting a task."""

    user_id: str = Field(..., min_length=1, description="User the task is throttled under")


class SubmitTaskResponse(BaseModel):
    """Response body after a task is queued."""

    message: str = TASK_QUEUED_MESSAGE
    job_id: str = Field(..., serialization_alias="jobId")


class HealthResponse(BaseModel):
    """Health check response."""

    status: str
    version: str
    queue: str
    queue_depth: int | None = None
    timestamp: datetime


class ErrorResponse(BaseModel):
    """Standard error response."""

    error: str
