"""Environment-based configuration using pydantic-settings.

Provides type-safe, validated configuration from environment variables
with the same defaults and bounds the ClientBuilder enforces. Supports
.env files and nested configuration.

Example:
    >>> from httpkit.foundation.config import get_settings
    >>> settings = get_settings()
    >>> settings.retry.max_retries
    3
    >>> settings.http.timeout
    5.0

    # Or with environment variables:
    # HTTPKIT_RETRY_MAX_RETRIES=5
    # HTTPKIT_HTTP_TIMEOUT=10
"""

from __future__ import annotations

from functools import lru_cache
from typing import Annotated, Literal

from pydantic import Field, computed_field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# ─────────────────────────────────────────────────────────────────────────────
# Defaults & Bounds (seconds for durations)
# ─────────────────────────────────────────────────────────────────────────────

DEFAULT_MAX_RETRIES = 3
DEFAULT_BASE_DELAY = 0.5
DEFAULT_MAX_DELAY = 10.0
DEFAULT_MAX_IDLE_CONNS = 100
DEFAULT_MAX_IDLE_CONNS_PER_HOST = 100
DEFAULT_IDLE_CONN_TIMEOUT = 90.0
DEFAULT_TLS_HANDSHAKE_TIMEOUT = 10.0
DEFAULT_EXPECT_CONTINUE_TIMEOUT = 1.0
DEFAULT_TIMEOUT = 5.0
DEFAULT_DISABLE_KEEP_ALIVE = False

MIN_MAX_RETRIES, MAX_MAX_RETRIES = 1, 10
MIN_BASE_DELAY, MAX_BASE_DELAY = 0.3, 5.0
MIN_MAX_DELAY, MAX_MAX_DELAY = 0.3, 120.0
MIN_IDLE_CONNS, MAX_IDLE_CONNS = 1, 200
MIN_IDLE_CONNS_PER_HOST, MAX_IDLE_CONNS_PER_HOST = 1, 200
MIN_IDLE_CONN_TIMEOUT, MAX_IDLE_CONN_TIMEOUT = 1.0, 120.0
MIN_TLS_HANDSHAKE_TIMEOUT, MAX_TLS_HANDSHAKE_TIMEOUT = 1.0, 15.0
MIN_EXPECT_CONTINUE_TIMEOUT, MAX_EXPECT_CONTINUE_TIMEOUT = 1.0, 5.0
MIN_TIMEOUT, MAX_TIMEOUT = 1.0, 30.0

StrategyName = Literal["fixed", "jitter", "exponential"]


class RetrySettings(BaseSettings):
    """Default retry configuration."""

    model_config = SettingsConfigDict(
        env_prefix="HTTPKIT_RETRY_",
        extra="ignore",
    )

    max_retries: Annotated[int, Field(ge=MIN_MAX_RETRIES, le=MAX_MAX_RETRIES)] = DEFAULT_MAX_RETRIES
    base_delay: Annotated[float, Field(ge=MIN_BASE_DELAY, le=MAX_BASE_DELAY)] = DEFAULT_BASE_DELAY
    max_delay: Annotated[float, Field(ge=MIN_MAX_DELAY, le=MAX_MAX_DELAY)] = DEFAULT_MAX_DELAY
    strategy: StrategyName = "exponential"

    @field_validator("strategy", mode="before")
    @classmethod
    def _normalize_strategy(cls, v: str) -> str:
        return v.strip().lower() if isinstance(v, str) else v


class HttpSettings(BaseSettings):
    """HTTP client and connection pool configuration."""

    model_config = SettingsConfigDict(
        env_prefix="HTTPKIT_HTTP_",
        extra="ignore",
    )

    timeout: Annotated[float, Field(
        ge=MIN_TIMEOUT, le=MAX_TIMEOUT,
        description="Overall per-request timeout covering every retry",
    )] = DEFAULT_TIMEOUT
    max_idle_conns: Annotated[int, Field(ge=MIN_IDLE_CONNS, le=MAX_IDLE_CONNS)] = DEFAULT_MAX_IDLE_CONNS
    max_idle_conns_per_host: Annotated[int, Field(
        ge=MIN_IDLE_CONNS_PER_HOST, le=MAX_IDLE_CONNS_PER_HOST,
    )] = DEFAULT_MAX_IDLE_CONNS_PER_HOST
    idle_conn_timeout: Annotated[float, Field(
        ge=MIN_IDLE_CONN_TIMEOUT, le=MAX_IDLE_CONN_TIMEOUT,
    )] = DEFAULT_IDLE_CONN_TIMEOUT
    tls_handshake_timeout: Annotated[float, Field(
        ge=MIN_TLS_HANDSHAKE_TIMEOUT, le=MAX_TLS_HANDSHAKE_TIMEOUT,
    )] = DEFAULT_TLS_HANDSHAKE_TIMEOUT
    expect_continue_timeout: Annotated[float, Field(
        ge=MIN_EXPECT_CONTINUE_TIMEOUT, le=MAX_EXPECT_CONTINUE_TIMEOUT,
    )] = DEFAULT_EXPECT_CONTINUE_TIMEOUT
    disable_keep_alive: bool = DEFAULT_DISABLE_KEEP_ALIVE
    proxy_url: str | None = Field(default=None, description="e.g. http://proxy.example.com:8080")

    @computed_field
    @property
    def uses_proxy(self) -> bool:
        return bool(self.proxy_url)


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    model_config = SettingsConfigDict(
        env_prefix="HTTPKIT_LOG_",
        extra="ignore",
    )

    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"
    format: Literal["console", "json", "stdlib", "none"] = "console"

    @field_validator("level", mode="before")
    @classmethod
    def _upper_level(cls, v: str) -> str:
        return v.upper() if isinstance(v, str) else v


class HttpKitSettings(BaseSettings):
    """Root settings for httpkit.

    Loads configuration from environment variables with HTTPKIT_ prefix.

    Example environment variables:
        HTTPKIT_RETRY_MAX_RETRIES=5
        HTTPKIT_RETRY_STRATEGY=jitter
        HTTPKIT_HTTP_TIMEOUT=10
        HTTPKIT_HTTP_PROXY_URL=http://proxy.internal:3128
        HTTPKIT_LOG_LEVEL=DEBUG
    """

    model_config = SettingsConfigDict(
        env_prefix="HTTPKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    retry: RetrySettings = Field(default_factory=RetrySettings)
    http: HttpSettings = Field(default_factory=HttpSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> HttpKitSettings:
    """Get the global settings instance (cached)."""
    return HttpKitSettings()


def clear_settings_cache() -> None:
    """Clear the settings cache (useful for testing).

    After calling this, the next get_settings() call will
    reload configuration from environment.
    """
    get_settings.cache_clear()
