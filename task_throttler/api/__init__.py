"""
API module.
Contains the FastAPI admission application, routes, and middleware.
"""

from task_throttler.api.main import create_app, run

__all__ = ["create_app", "run"]
