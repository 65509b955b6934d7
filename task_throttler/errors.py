"""Error types for the task throttler.

Admission-side errors are mapped to HTTP responses in the API layer.
Dispatch-side errors are caught at the dispatch loop boundary and logged.
"""

from __future__ import annotations


class TaskThrottlerError(Exception):
    """Base class for task throttler errors."""


class QueueUnavailable(TaskThrottlerError):
    """The backing store of the durable queue is unreachable."""

    def __init__(self, operation: str, cause: Exception | None = None):
        self.operation = operation
        self.cause = cause
        detail = f": {cause}" if cause is not None else ""
        super().__init__(f"Queue unavailable during {operation}{detail}")


class MalformedJob(TaskThrottlerError):
    def __init__(self, raw: bytes | str, reason: str):
        self.raw = raw
        self.reason = reason
        super().__init__(f"Malformed job payload: {reason}")


class ActionFailure(TaskThrottlerError):
    """The execution side-effect raised an error."""

    def __init__(self, user_id: str, cause: Exception):
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"Task action failed for user {user_id}: {cause}")


class InvalidSubmission(TaskThrottlerError):
    """A submission was rejected before reaching the queue."""

    def __init__(self, message: str, field: str | None = None):
        self.field = field
        super().__init__(message)


class WorkerCrash(TaskThrottlerError):
    """An admission worker process terminated."""

    def __init__(self, worker_index: int, pid: int | None, exitcode: int | None):
        self.worker_index = worker_index
        self.pid = pid
        self.exitcode = exitcode
        super().__init__(
            f"Worker {worker_index} (pid {pid}) died with exit code {exitcode}"
        )


class ConsumerLockLost(TaskThrottlerError):
    """The single-active-consumer lease could not be held."""

    def __init__(self, key: str):
        self.key = key
        super().__init__(f"Lost consumer lock {key}")
