"""
Supervisor module.
Contains the primary process that owns the admission worker pool and the
single dispatch loop.
"""

from task_throttler.supervisor.main import ConsumerSupervisor, WorkerSlot, run
from task_throttler.supervisor.policy import RestartPolicy
from task_throttler.supervisor.workers import AdmissionWorkerFactory

__all__ = [
    "ConsumerSupervisor",
    "WorkerSlot",
    "RestartPolicy",
    "AdmissionWorkerFactory",
    "run",
]
