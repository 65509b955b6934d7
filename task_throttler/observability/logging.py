"""
Structured logging setup using structlog.

Every process in the topology (supervisor, admission workers, standalone
dispatcher) calls ``setup_logging`` once at startup, passing its role so
interleaved output from several processes can be told apart.
"""

import logging
import os
import sys
from typing import Any

import structlog
from opentelemetry import trace

from task_throttler.config import get_settings


def add_trace_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Add OpenTelemetry trace context to log records."""
    span = trace.get_current_span()
    if span and span.is_recording():
        ctx = span.get_span_context()
        event_dict["trace_id"] = format(ctx.trace_id, "032x")
        event_dict["span_id"] = format(ctx.span_id, "016x")
    return event_dict


def add_process_context(logger: Any, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Add the emitting process id to log records."""
    event_dict.setdefault("pid", os.getpid())
    return event_dict


def setup_logging(role: str | None = None) -> None:
    """
    Configure structured logging for the current process.

    Sets up structlog with JSON or console output based on configuration
    and routes standard library logging through the same renderer.

    Args:
        role: Process role (``supervisor``, ``api``, ``dispatcher``) bound
            to every log line emitted by this process.
    """
    settings = get_settings()

    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    shared_processors: list[Any] = [
        structlog.contextvars.merge_contextvars,
        add_trace_context,
        add_process_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.stdlib.ExtraAdder(),
    ]

    if settings.log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers = [handler]
    root_logger.setLevel(log_level)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)

    if role is not None:
        bind_context(role=role)


def bind_context(**kwargs: Any) -> None:
    """Bind context variables to all subsequent log messages."""
    structlog.contextvars.bind_contextvars(**kwargs)
