"""
Prometheus metrics collection.
"""

from prometheus_client import (
    CONTENT_TYPE_LATEST,
    REGISTRY,
    CollectorRegistry,
    Counter,
    Gauge,
    Histogram,
    generate_latest,
)

from task_throttler.constants import (
    METRIC_API_LATENCY,
    METRIC_API_REQUESTS,
    METRIC_DEQUEUE_TIMEOUTS,
    METRIC_JOBS_DISPATCHED,
    METRIC_JOBS_ENQUEUED,
    METRIC_QUEUE_DEPTH,
    METRIC_RATE_LIMITED,
    METRIC_THROTTLE_WAIT,
    METRIC_WORKER_RESTARTS,
)

# Global metrics instance
_metrics: "MetricsCollector | None" = None


class MetricsCollector:
    """
    Prometheus metrics collector for the task throttler.

    Collects metrics for:
    - Queue depth
    - Job admissions and dispatches
    - Time jobs spend waiting on the per-user throttle
    - Idle dequeue timeouts
    - Admission worker restarts
    - API requests and rate limiting
    """

    def __init__(self, registry: CollectorRegistry | None = None):
        """
        Initialize the metrics collector.

        Args:
            registry: Optional custom registry. Uses default if not provided.
        """
        self._registry = registry or REGISTRY

        self.queue_depth = Gauge(
            METRIC_QUEUE_DEPTH,
            "Number of jobs waiting in the durable queue",
            registry=self._registry,
        )

        self.jobs_enqueued = Counter(
            METRIC_JOBS_ENQUEUED,
            "Total number of jobs accepted into the queue",
            registry=self._registry,
        )

        self.jobs_dispatched = Counter(
            METRIC_JOBS_DISPATCHED,
            "Total number of jobs taken off the queue by the dispatcher",
            ["status"],
            registry=self._registry,
        )

        self.throttle_wait = Histogram(
            METRIC_THROTTLE_WAIT,
            "Seconds a job waited for its user's minimum spacing",
            buckets=(0.0, 0.05, 0.1, 0.25, 0.5, 0.75, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

        self.dequeue_timeouts = Counter(
            METRIC_DEQUEUE_TIMEOUTS,
            "Total number of dequeue calls that timed out on an empty queue",
            registry=self._registry,
        )

        self.worker_restarts = Counter(
            METRIC_WORKER_RESTARTS,
            "Total number of admission worker processes restarted",
            ["worker_index"],
            registry=self._registry,
        )

        self.rate_limited = Counter(
            METRIC_RATE_LIMITED,
            "Total number of submissions rejected by the rate limiter",
            registry=self._registry,
        )

        self.api_requests = Counter(
            METRIC_API_REQUESTS,
            "Total number of API requests",
            ["method", "endpoint", "status"],
            registry=self._registry,
        )

        self.api_latency = Histogram(
            METRIC_API_LATENCY,
            "API request latency in seconds",
            ["method", "endpoint"],
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
            registry=self._registry,
        )

    def record_job_enqueued(self) -> None:
        self.jobs_enqueued.inc()

    def record_job_dispatched(self, status: str) -> None:
        """Record a job leaving the dispatcher (succeeded or failed)."""
        self.jobs_dispatched.labels(status=status).inc()

    def observe_throttle_wait(self, seconds: float) -> None:
        self.throttle_wait.observe(seconds)

    def record_dequeue_timeout(self) -> None:
        self.dequeue_timeouts.inc()

    def record_worker_restart(self, worker_index: int) -> None:
        self.worker_restarts.labels(worker_index=str(worker_index)).inc()

    def record_rate_limited(self) -> None:
        self.rate_limited.inc()

    def update_queue_depth(self, depth: int) -> None:
        self.queue_depth.set(depth)

    def record_api_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration_seconds: float,
    ) -> None:
        """Record an API request."""
        self.api_requests.labels(
            method=method,
            endpoint=endpoint,
            status=str(status),
        ).inc()
        self.api_latency.labels(method=method, endpoint=endpoint).observe(
            duration_seconds
        )

    def get_metrics(self) -> bytes:
        """Get all metrics in Prometheus format."""
        return generate_latest(self._registry)

    def get_content_type(self) -> str:
        """Get the content type for metrics response."""
        return CONTENT_TYPE_LATEST


def setup_metrics() -> MetricsCollector:
    """
    Set up and return the metrics collector.

    Returns:
        MetricsCollector: The metrics collector instance.
    """
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics


def get_metrics() -> MetricsCollector:
    """Get the metrics collector instance, creating it on first use."""
    if _metrics is None:
        return setup_metrics()
    return _metrics
