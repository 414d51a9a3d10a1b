"""Modular Pydantic Settings v2 configuration.

Import settings via cached loaders:
    from event_relay.core.settings import get_outbox_settings

Or use unified settings for convenient access to all domains:
    from event_relay.core.settings import get_settings

Configuration precedence (highest to lowest):
    1. init kwargs (testing/overrides)
    2. Environment variables
    3. .env file
"""

from __future__ import annotations

from .app import AppSettings
from .database import DatabaseSettings
from .loader import (
    clear_all_caches,
    get_app_settings,
    get_circuit_breaker_settings,
    get_db_settings,
    get_logging_settings,
    get_outbox_settings,
    get_rabbit_settings,
)
from .logs import LoggingSettings
from .outbox import OutboxSettings
from .rabbit import RabbitSettings
from .resilience import CircuitBreakerSettings
from .unified import Settings, get_settings

__all__ = [
    "AppSettings",
    "CircuitBreakerSettings",
    "DatabaseSettings",
    "LoggingSettings",
    "OutboxSettings",
    "RabbitSettings",
    "Settings",
    "clear_all_caches",
    "get_app_settings",
    "get_circuit_breaker_settings",
    "get_db_settings",
    "get_logging_settings",
    "get_outbox_settings",
    "get_rabbit_settings",
    "get_settings",
]
