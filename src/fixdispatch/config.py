"""FixDispatch configuration using pydantic-settings."""

import os
from functools import lru_cache
from uuid import uuid4

from pydantic import Field, SecretStr, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from fixdispatch import __version__


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    model_config = SettingsConfigDict(
        env_prefix="FIXDISPATCH_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # API Server
    api_host: str = "0.0.0.0"
    api_port: int = 8000
    admin_api_key: SecretStr | None = Field(
        default=None,
        description="Static key required in X-API-Key for operator endpoints. "
        "None leaves the operator endpoints open (local use only).",
    )

    # Database
    database_url: str = Field(
        default="sqlite+aiosqlite:///./fixdispatch.db",
        description="Database connection URL (postgresql+asyncpg://... in production)",
    )
    database_pool_size: int = 5
    database_pool_max_overflow: int = 10
    database_echo: bool = False

    # Outbound delivery
    dispatch_endpoint_url: str | None = Field(
        default=None,
        description="Automation endpoint receiving fix actions. Deliveries fail until set.",
    )
    dispatch_signing_secret: SecretStr | None = Field(
        default=None,
        description="Shared secret for the x-aura-signature HMAC. Signing is skipped when unset.",
    )
    dispatch_api_key: SecretStr | None = Field(
        default=None,
        description="Static API key attached to every outbound request when set.",
    )
    dispatch_api_key_header: str = "x-api-key"
    dispatch_timeout: float = Field(
        default=15.0,
        gt=0,
        description="Outbound request timeout in seconds",
    )
    dispatch_user_agent: str = f"FixDispatch/{__version__}"

    # Retry policy
    max_attempts: int = Field(
        default=6,
        ge=1,
        description="Delivery attempts before an item is dead-lettered",
    )
    backoff_schedule: list[int] = Field(
        default_factory=lambda: [30, 60, 120, 240, 480, 900],
        description="Retry delays in seconds by attempt number. The last entry repeats.",
    )

    # Scheduler
    scheduler_enabled: bool = True
    scheduler_interval: float = Field(
        default=30.0,
        gt=0,
        description="Seconds between scheduler ticks",
    )
    scheduler_batch_size: int = Field(
        default=10,
        ge=1,
        description="Maximum items processed per tick",
    )

    # K8s/Operations
    instance_id: str = Field(default_factory=lambda: os.getenv("HOSTNAME", uuid4().hex[:8]))

    @field_validator("backoff_schedule")
    @classmethod
    def validate_backoff_schedule(cls, value: list[int]) -> list[int]:
        if not value:
            raise ValueError("backoff_schedule must contain at least one delay")
        if any(delay <= 0 for delay in value):
            raise ValueError("backoff_schedule delays must be positive")
        return value

    @field_validator("dispatch_endpoint_url")
    @classmethod
    def validate_endpoint_url(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        value = value.strip()
        if not value.startswith(("http://", "https://")):
            raise ValueError("dispatch_endpoint_url must be an http(s) URL")
        return value


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get cached settings instance.

    Settings are cached after first load. Use clear_settings_cache()
    to reload settings (e.g., in tests or after environment changes).
    """
    return Settings()


def clear_settings_cache() -> None:
    """Clear the settings cache.

    Call this to force settings to be reloaded on the next get_settings() call.
    """
    get_settings.cache_clear()
