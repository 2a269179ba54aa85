"""Runtime settings loaded from the environment.

Example:
    >>> # TABLEGATE_MAX_WORKERS=4
    >>> # TABLEGATE_LOG_FORMAT=json
    >>> settings = get_settings()
    >>> settings.max_workers
    4
"""

from __future__ import annotations

from typing import Optional

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from tablegate.lib.resilience import RetryConfig

__all__ = ["AgentSettings", "get_settings"]


class AgentSettings(BaseSettings):
    """Defaults for agents, interrogation and logging.

    Automatically loads from environment variables with TABLEGATE_ prefix
    and from a ``.env`` file in the working directory.
    """

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(default="console", description="Log format: 'json' or 'console'")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")
    max_workers: Optional[int] = Field(
        default=None, ge=1, le=64, description="Threads for step evaluation (unset: sequential)"
    )
    step_timeout_seconds: Optional[float] = Field(
        default=None, gt=0, description="Per-step timeout when evaluating in parallel"
    )
    retry_attempts: int = Field(default=3, ge=1, le=10, description="Attempts for remote table scans")
    retry_backoff_seconds: float = Field(default=1.0, ge=0.0, le=60.0, description="Initial retry delay")
    expect_threshold: float = Field(
        default=1, gt=0, description="Default failure threshold of expect_* and test_* functions"
    )

    model_config = SettingsConfigDict(
        env_prefix="TABLEGATE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        valid = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if v.upper() not in valid:
            raise ValueError(f"log_level must be one of {sorted(valid)}, got '{v}'")
        return v.upper()

    @field_validator("log_format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        if v.lower() not in ("json", "console"):
            raise ValueError(f"log_format must be 'json' or 'console', got '{v}'")
        return v.lower()

    def retry_config(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.retry_attempts,
            backoff_seconds=self.retry_backoff_seconds,
        )


# Loaded on first access
_settings: Optional[AgentSettings] = None


def get_settings(reload: bool = False) -> AgentSettings:
    """Get the process-wide settings.

    Args:
        reload: Re-read the environment
    """
    global _settings
    if _settings is None or reload:
        _settings = AgentSettings()
    return _settings
