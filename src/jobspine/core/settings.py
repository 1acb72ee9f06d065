"""Configuration management using Pydantic Settings.

All worker knobs are environment-driven (prefix ``JOBSPINE_``) and may also
come from a ``.env`` file. Values are validated at startup so a bad cron
expression fails the process before the first tick instead of during it.
"""

from __future__ import annotations

from typing import Literal

from croniter import croniter
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class JobSpineSettings(BaseSettings):
    """Worker settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="JOBSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Datastore
    database_url: str = "sqlite:///jobspine.db"
    database_echo: bool = False

    # Lock service
    lock_backend: Literal["redis", "memory"] = "redis"
    redis_url: str = "redis://localhost:6379/0"
    lock_ttl_seconds: int = Field(default=30, gt=0)

    # Metrics (port serves /metrics from `worker start` when set)
    metrics_backend: Literal["memory", "prometheus"] = "memory"
    metrics_port: int | None = Field(default=None, gt=0, lt=65536)

    # Polling (poll_interval_seconds wins over poll_cron when set)
    poll_cron: str = "* * * * *"
    poll_interval_seconds: float | None = Field(default=None, gt=0)

    # Execution
    max_workers: int = Field(default=4, gt=0)
    default_max_retries: int = Field(default=3, ge=0)
    retry_backoff_seconds: float = Field(default=0.0, ge=0)
    retry_backoff_max_seconds: float = Field(default=3600.0, gt=0)

    # Shutdown
    drain_poll_interval: float = Field(default=0.1, gt=0)

    # Identity
    instance_id: str | None = None

    # Logging
    service_name: str = "jobspine"
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"
    log_format: Literal["json", "console"] = "console"

    @field_validator("poll_cron")
    @classmethod
    def _validate_cron(cls, value: str) -> str:
        if not croniter.is_valid(value):
            raise ValueError(f"Invalid cron expression: {value!r}")
        return value


_settings: JobSpineSettings | None = None


def get_settings() -> JobSpineSettings:
    """Get or create settings instance."""
    global _settings
    if _settings is None:
        _settings = JobSpineSettings()
    return _settings


def reset_settings() -> None:
    """Reset settings (for testing)."""
    global _settings
    _settings = None
