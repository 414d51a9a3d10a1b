"""Database engine and session helpers."""

from __future__ import annotations

from event_relay.infra.database.session import (
    close_database,
    create_all,
    create_engine,
    create_session_factory,
    init_database,
    instrument_engine,
    session_scope,
)

__all__ = [
    "close_database",
    "create_all",
    "create_engine",
    "create_session_factory",
    "init_database",
    "instrument_engine",
    "session_scope",
]
