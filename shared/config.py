"""
Shared configuration management for the Resilient Bot services.
"""

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="BOT_",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")

    # Telegram Bot API
    telegram_bot_token: str = Field(default="")
    telegram_api_url: str = Field(default="https://api.telegram.org")
    webhook_secret: str = Field(default="your-secret-token")
    request_timeout_seconds: float = Field(default=10.0)
    max_attempts: int = Field(default=3)

    # Circuit breaker
    breaker_failure_threshold: int = Field(default=5)
    breaker_recovery_timeout: float = Field(default=30.0)

    # Per-chat throttling
    throttle_limit: int = Field(default=10)
    throttle_window_seconds: int = Field(default=60)

    # Ephemeral store
    cache_cleanup_interval: float = Field(default=300.0)

    # Health reporting
    health_warmup_seconds: float = Field(default=10.0)
    max_memory_mb: int = Field(default=512)


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int, **overrides) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port, **overrides)
