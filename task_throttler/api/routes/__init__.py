"""
API routes module.
"""

from task_throttler.api.routes.health import router as health_router
from task_throttler.api.routes.tasks import router as tasks_router

__all__ = ["tasks_router", "health_router"]
