"""
Job type definitions shared by the admission layer and the dispatcher.
"""

import time
from enum import Enum
from uuid import uuid4

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, ValidationError

from task_throttler.errors import MalformedJob


class NoJobAvailable(Enum):
    """Sentinel returned by a dequeue that timed out with an empty queue."""

    TOKEN = "no_job"

    def __bool__(self) -> bool:
        return False


NO_JOB = NoJobAvailable.TOKEN


def now_ms() -> int:
    """Current wall-clock time in epoch milliseconds."""
    return int(time.time() * 1000)


class Job(BaseModel):
    """
    A queued unit of work tagged with the user it is throttled under.

    The queue wire format uses the field names ``user_id``, ``timestamp``
    and ``jobId``; ``enqueued_at`` and ``job_id`` are also accepted when
    decoding. Unknown fields are ignored so producers can add data
    without breaking the dispatcher.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    user_id: str = Field(..., min_length=1)
    job_id: str = Field(
        ...,
        validation_alias=AliasChoices("jobId", "job_id"),
        serialization_alias="jobId",
    )
    enqueued_at: int = Field(
        ...,
        validation_alias=AliasChoices("timestamp", "enqueued_at"),
        serialization_alias="timestamp",
    )

    @classmethod
    def create(cls, user_id: str) -> "Job":
        """Create a new job with a fresh identifier and enqueue timestamp."""
        return cls(user_id=user_id, job_id=str(uuid4()), enqueued_at=now_ms())

    def to_wire(self) -> str:
        """Serialize the job for the durable queue."""
        return self.model_dump_json(by_alias=True)

    @classmethod
    def from_wire(cls, raw: bytes | str) -> "Job":
        """
        Deserialize a job read from the durable queue.

        Raises:
            MalformedJob: If the payload is not a valid job record.
        """
        try:
            return cls.model_validate_json(raw)
        except ValidationError as e:
            raise MalformedJob(raw, str(e)) from e
