"""
Application configuration using Pydantic Settings.
Loads configuration from environment variables with sensible defaults.
"""

from functools import lru_cache
from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Durable queue
    redis_url: str = "redis://localhost:6379/0"
    queue_backend: Literal["redis", "memory"] = "redis"
    queue_key: str = "taskQueue"
    dequeue_timeout_seconds: float = 1.0

    # Dispatch
    min_spacing_seconds: float = 1.0
    max_in_flight_jobs: int = 100
    max_user_backlog: int = 3
    shutdown_drain_timeout_seconds: float = 5.0
    task_log_path: str = "task_log.txt"

    # API Configuration
    api_host: str = "0.0.0.0"
    api_port: int = 3000
    api_workers: int = 2

    # Rate Limiting (sliding window per user_id)
    rate_limit_max_requests: int = 20
    rate_limit_window_seconds: float = 60.0

    # Supervisor
    supervisor_poll_interval_seconds: float = 0.5
    restart_backoff_initial_seconds: float = 0.0
    restart_backoff_max_seconds: float = 30.0
    restart_backoff_reset_seconds: float = 60.0

    # Single-active-consumer lease
    consumer_lock_key: str = "taskQueue:consumer"
    consumer_lock_ttl_seconds: float = 15.0

    # Observability
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"
    otel_service_name: str = "task-throttler"
    tracing_enabled: bool = False
    log_level: str = "INFO"
    log_format: str = "json"  # json or console


@lru_cache
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
