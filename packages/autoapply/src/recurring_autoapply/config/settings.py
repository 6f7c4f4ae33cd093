"""Configuration settings for recurring auto-apply."""

from functools import lru_cache
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlatSettings(BaseSettings):
    """Flat settings read from environment variables or a ``.env`` file.

    These only provide defaults. Each engine and supervisor owns its own
    settings value built from them.
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Engine
    auto_apply_enabled: bool = Field(
        default=True,
        validation_alias="AUTO_APPLY_ENABLED",
        description="Global switch; when off a due-check touches no store",
    )
    auto_apply_max_batch_size: int = Field(
        default=50,
        ge=1,
        validation_alias="AUTO_APPLY_MAX_BATCH_SIZE",
        description="Max recurring items applied concurrently per chunk",
    )
    auto_apply_timeout_ms: int = Field(
        default=30000,
        ge=1,
        validation_alias="AUTO_APPLY_TIMEOUT_MS",
        description="Per-item apply timeout in milliseconds",
    )
    auto_apply_retry_attempts: int = Field(
        default=3,
        ge=0,
        validation_alias="AUTO_APPLY_RETRY_ATTEMPTS",
        description="Retry attempts advertised to hosts",
    )

    # Startup supervisor
    startup_enabled: bool = Field(
        default=True, validation_alias="STARTUP_ENABLED", description="Run the due-check on startup"
    )
    startup_delay_ms: int = Field(
        default=2000,
        ge=0,
        validation_alias="STARTUP_DELAY_MS",
        description="Delay before the startup check in milliseconds",
    )
    startup_max_retries: int = Field(
        default=3,
        ge=0,
        validation_alias="STARTUP_MAX_RETRIES",
        description="Retries after the first failed startup attempt",
    )
    startup_retry_delay_ms: int = Field(
        default=5000,
        ge=0,
        validation_alias="STARTUP_RETRY_DELAY_MS",
        description="Fixed back-off between startup attempts in milliseconds",
    )
    startup_timeout_ms: int = Field(
        default=30000,
        ge=1,
        validation_alias="STARTUP_TIMEOUT_MS",
        description="Timeout for one startup attempt in milliseconds",
    )
    startup_logging: bool = Field(
        default=True,
        validation_alias="STARTUP_LOGGING",
        description="Emit startup supervisor log events",
    )
    startup_notifications: bool = Field(
        default=True,
        validation_alias="STARTUP_NOTIFICATIONS",
        description="Show user notifications for startup results",
    )
    startup_skip_on_error: bool = Field(
        default=True,
        validation_alias="STARTUP_SKIP_ON_ERROR",
        description="Resolve to no result instead of raising when every attempt fails",
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field(
        default="INFO", validation_alias="LOG_LEVEL", description="Logging level"
    )
    log_format: Literal["json", "console"] = Field(
        default="console", validation_alias="LOG_FORMAT", description="Log output format"
    )


@lru_cache
def get_settings() -> FlatSettings:
    """Get cached settings instance."""
    return FlatSettings()
