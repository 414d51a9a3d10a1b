"""Unified settings composition for convenient access.

Usage:
    from event_relay.core.settings import get_settings

    settings = get_settings()
    print(settings.outbox.poll_interval)
    print(settings.breaker.failure_threshold)

Each nested settings class still loads from its own environment prefix
(APP_, DB_, RABBIT_, OUTBOX_, CIRCUIT_BREAKER_, LOG_).
"""

from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from .app import AppSettings
from .database import DatabaseSettings
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .rabbit import RabbitSettings
from .resilience import CircuitBreakerSettings


class Settings(BaseSettings):
    """Unified settings composing all domain settings.

    Example:
        settings = Settings()
        assert settings.outbox.max_retries == 5
    """

    model_config = SettingsConfigDict(
        frozen=True,
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=AppSettings)
    db: DatabaseSettings = Field(default_factory=DatabaseSettings)
    rabbit: RabbitSettings = Field(default_factory=RabbitSettings)
    outbox: OutboxSettings = Field(default_factory=OutboxSettings)
    breaker: CircuitBreakerSettings = Field(default_factory=CircuitBreakerSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Get unified settings instance (cached)."""
    return Settings()
