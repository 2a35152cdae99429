"""
Application settings.

Values come from ``TASK_ENGINE_*`` environment variables or a local ``.env``
file, e.g. ``TASK_ENGINE_MAX_QUEUE_SIZE=5000``.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "Task Engine"
    version: str = "1.0.0"
    log_level: str = "INFO"
    enable_structured_logs: bool = True
    cors_origins: List[str] = Field(default_factory=lambda: ["*"])

    # Queue
    max_queue_size: int = Field(default=1000, ge=1)
    default_max_retries: int = Field(default=3, ge=0, le=10)
    retry_backoff_seconds: float = Field(default=0.0, ge=0)

    # Worker
    worker_autostart: bool = True
    worker_busy_delay: float = Field(default=0.1, ge=0)
    worker_idle_delay: float = Field(default=1.0, ge=0)
    worker_error_delay: float = Field(default=5.0, ge=0)
    worker_restart_pause: float = Field(default=1.0, ge=0)
    task_timeout_seconds: Optional[float] = Field(default=300.0, gt=0)

    # Periodic cleanup
    cleanup_interval_seconds: float = Field(default=3600.0, gt=0)
    cleanup_older_than_hours: float = Field(default=24.0, ge=0)

    # Default handlers
    backend_url: Optional[str] = None
    backend_api_key: str = ""
    handler_delay_scale: float = Field(default=1.0, ge=0)

    model_config = SettingsConfigDict(
        env_prefix="TASK_ENGINE_",
        env_file=".env",
        extra="ignore",
    )


@lru_cache
def get_settings() -> Settings:
    return Settings()
