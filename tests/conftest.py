"""Pytest configuration and shared fixtures.

Organization:
    - Environment: keep tests away from real infrastructure
    - Settings: clear cached settings between tests
    - Database: SQLite (aiosqlite) engine, session factory and outbox store
    - Event bus: in-process fake recording every publish
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from typing import TYPE_CHECKING, Any

import pytest

from event_relay.core.settings import DatabaseSettings, clear_all_caches, get_settings
from event_relay.infra.database import create_all, create_engine, create_session_factory
from event_relay.infra.events.outbox import SQLAlchemyOutboxStore, models  # noqa: F401
from event_relay.infra.resilience import circuit_breakers

if TYPE_CHECKING:
    from pathlib import Path

    from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

# Ensure tests run without external infrastructure
os.environ.setdefault("APP_ENVIRONMENT", "test")
os.environ.setdefault("DB_DATABASE_URL", "")
os.environ.setdefault("RABBIT_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")


# ============================================================================
# Settings Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def _reset_process_state():
    """Drop cached settings and registered breakers around every test."""
    clear_all_caches()
    get_settings.cache_clear()
    for name in list(circuit_breakers.get_all()):
        circuit_breakers.remove(name)
    yield
    clear_all_caches()
    get_settings.cache_clear()
    for name in list(circuit_breakers.get_all()):
        circuit_breakers.remove(name)


# ============================================================================
# Database Fixtures
# ============================================================================


@pytest.fixture
def database_url(tmp_path: Path) -> str:
    """File-backed SQLite URL so every connection sees the same data."""
    return f"sqlite+aiosqlite:///{tmp_path / 'outbox.db'}"


@pytest.fixture
async def engine(database_url: str) -> AsyncGenerator[AsyncEngine]:
    """Async engine with the outbox schema created."""
    engine = create_engine(DatabaseSettings(database_url=database_url))
    await create_all(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return create_session_factory(engine)


@pytest.fixture
def sql_store(session_factory: async_sessionmaker[AsyncSession]) -> SQLAlchemyOutboxStore:
    return SQLAlchemyOutboxStore(session_factory)


# ============================================================================
# Event Bus Fixtures
# ============================================================================


class RecordingBus:
    """Event bus fake: records publishes and fails topics on demand."""

    def __init__(self) -> None:
        self.published: list[tuple[str, Any, str | None]] = []
        self.failing_topics: set[str] = set()
        self.error: Exception = ConnectionError("broker unavailable")

    async def publish(self, topic: str, payload: Any, *, message_id: str | None = None) -> None:
        if topic in self.failing_topics:
            raise self.error
        self.published.append((topic, payload, message_id))


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()
