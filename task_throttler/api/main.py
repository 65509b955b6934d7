"""
FastAPI application entry point.
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from task_throttler import __version__
from task_throttler.api.middleware import create_request_metrics_middleware
from task_throttler.api.rate_limit import SlidingWindowRateLimiter
from task_throttler.api.routes import health_router, tasks_router
from task_throttler.config import get_settings
from task_throttler.constants import QUEUE_UNAVAILABLE_MESSAGE, USER_ID_REQUIRED_MESSAGE
from task_throttler.errors import InvalidSubmission, QueueUnavailable
from task_throttler.observability.logging import setup_logging
from task_throttler.observability.metrics import setup_metrics
from task_throttler.observability.tracing import instrument_fastapi, setup_tracing
from task_throttler.queue import create_queue
from task_throttler.queue.base import JobQueue

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Handles startup and shutdown events.
    """
    # Startup
    settings = get_settings()
    setup_logging(role="api")
    setup_metrics()
    if settings.tracing_enabled:
        setup_tracing()

    logger.info("Application started")

    yield

    # Shutdown
    await app.state.queue.close()
    logger.info("Application shutdown")


async def invalid_submission_handler(request: Request, exc: InvalidSubmission) -> JSONResponse:
    """Reject a submission before it reaches the queue."""
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"error": str(exc)},
    )


async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    """Report body validation failures the same way as other bad submissions."""
    logger.info("Invalid submission", extra={"errors": exc.errors()})
    return await invalid_submission_handler(
        request, InvalidSubmission(USER_ID_REQUIRED_MESSAGE, field="user_id")
    )


async def queue_unavailable_handler(request: Request, exc: QueueUnavailable) -> JSONResponse:
    """Surface an unreachable queue to the submitter."""
    logger.error(f"Enqueue failed: {exc}")
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"error": QUEUE_UNAVAILABLE_MESSAGE},
    )


def create_app(
    queue: JobQueue | None = None,
    rate_limiter: SlidingWindowRateLimiter | None = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        queue: Durable queue to push submissions onto. Defaults to the
            backend selected in settings.
        rate_limiter: Per-user submission limiter. Defaults to settings.

    Returns:
        FastAPI: The configured application instance.
    """
    settings = get_settings()

    app = FastAPI(
        title="Task Throttler API",
        description="Durable task queue with per-user dispatch spacing",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
    )

    app.state.queue = queue or create_queue(settings)
    app.state.rate_limiter = rate_limiter or SlidingWindowRateLimiter()

    # Add CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_middleware(
        BaseHTTPMiddleware,
        dispatch=create_request_metrics_middleware(),
    )

    app.add_exception_handler(RequestValidationError, validation_error_handler)
    app.add_exception_handler(InvalidSubmission, invalid_submission_handler)
    app.add_exception_handler(QueueUnavailable, queue_unavailable_handler)

    # Include routers
    app.include_router(health_router)
    app.include_router(tasks_router)

    # Instrument with OpenTelemetry
    instrument_fastapi(app)

    return app


def run() -> None:
    """Run a single API server without a dispatcher."""
    settings = get_settings()

    uvicorn.run(
        "task_throttler.api.main:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
    )


# Create app instance for uvicorn
app = create_app()


if __name__ == "__main__":
    run()
