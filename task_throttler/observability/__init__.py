"""
Observability module.
Structured logging, Prometheus metrics and OpenTelemetry tracing shared by
the supervisor, the admission workers and the dispatcher.
"""

from task_throttler.observability.logging import (
    bind_context,
    setup_logging,
)
from task_throttler.observability.metrics import (
    MetricsCollector,
    get_metrics,
    setup_metrics,
)
from task_throttler.observability.tracing import get_tracer, instrument_fastapi, setup_tracing

__all__ = [
    "setup_logging",
    "bind_context",
    "setup_metrics",
    "get_metrics",
    "MetricsCollector",
    "setup_tracing",
    "instrument_fastapi",
    "get_tracer",
]
