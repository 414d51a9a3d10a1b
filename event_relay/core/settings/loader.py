"""LRU-cached settings loaders.

Settings are loaded and validated once, then cached for the lifetime of the process.

Usage:
    from event_relay.core.settings.loader import get_outbox_settings

    settings = get_outbox_settings()  # First call: loads and validates
    settings = get_outbox_settings()  # Subsequent calls: returns cached instance

Testing:
    In tests, clear the cache to force reload:
    get_outbox_settings.cache_clear()
"""

from __future__ import annotations

from functools import lru_cache

from .app import AppSettings
from .database import DatabaseSettings
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .rabbit import RabbitSettings
from .resilience import CircuitBreakerSettings


@lru_cache(maxsize=1)
def get_app_settings() -> AppSettings:
    """Get cached application settings."""
    return AppSettings()


@lru_cache(maxsize=1)
def get_db_settings() -> DatabaseSettings:
    """Get cached database settings."""
    return DatabaseSettings()


@lru_cache(maxsize=1)
def get_rabbit_settings() -> RabbitSettings:
    """Get cached RabbitMQ settings."""
    return RabbitSettings()


@lru_cache(maxsize=1)
def get_outbox_settings() -> OutboxSettings:
    """Get cached outbox dispatcher settings."""
    return OutboxSettings()


@lru_cache(maxsize=1)
def get_circuit_breaker_settings() -> CircuitBreakerSettings:
    """Get cached circuit breaker settings."""
    return CircuitBreakerSettings()


@lru_cache(maxsize=1)
def get_logging_settings() -> LoggingSettings:
    """Get cached logging settings."""
    return LoggingSettings()


def clear_all_caches() -> None:
    """Drop every cached settings instance (tests and config reloads)."""
    for loader in (
        get_app_settings,
        get_db_settings,
        get_rabbit_settings,
        get_outbox_settings,
        get_circuit_breaker_settings,
        get_logging_settings,
    ):
        loader.cache_clear()
