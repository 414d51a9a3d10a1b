"""Async engine and session management.

Nothing connects at import time; the worker (or a test) builds the engine
explicitly and passes the session factory to the outbox store:

    engine = create_engine()
    await init_database(engine)
    session_factory = create_session_factory(engine)
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any

from opentelemetry import trace
from sqlalchemy import event, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from event_relay.core.database.base import Base
from event_relay.core.settings import get_db_settings
from event_relay.infra.metrics.prometheus import database_query_duration_seconds
from event_relay.utils.retry import retry

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from event_relay.core.settings import DatabaseSettings

logger = logging.getLogger(__name__)

_OPERATIONS = ("SELECT", "INSERT", "UPDATE", "DELETE", "BEGIN", "COMMIT", "ROLLBACK")


def create_engine(settings: DatabaseSettings | None = None) -> AsyncEngine:
    """Create an async engine from database settings.

    Raises:
        ValueError: If the database is disabled or has no URL.
    """
    settings = settings or get_db_settings()
    if not settings.is_configured:
        msg = "Database is not configured (set DB_DATABASE_URL)"
        raise ValueError(msg)

    engine = create_async_engine(settings.database_url, **settings.engine_kwargs())
    instrument_engine(engine)
    return engine


def create_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Session factory with the defaults the outbox store relies on."""
    return async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


def instrument_engine(engine: AsyncEngine) -> None:
    """Record query durations, linked to the current trace when there is one."""

    @event.listens_for(engine.sync_engine, "before_cursor_execute")
    def _before_cursor_execute(
        conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
    ) -> None:
        _ = conn, cursor, statement, parameters, executemany
        context._query_start_time = time.perf_counter()

    @event.listens_for(engine.sync_engine, "after_cursor_execute")
    def _after_cursor_execute(
        conn: Any, cursor: Any, statement: str, parameters: Any, context: Any, executemany: Any
    ) -> None:
        _ = conn, cursor, parameters, executemany
        started = getattr(context, "_query_start_time", None)
        if started is None:
            return
        duration = time.perf_counter() - started

        # e.g., "SELECT * FROM..." -> "SELECT"
        words = statement.split(None, 1) if statement else []
        operation = words[0].upper() if words and words[0].upper() in _OPERATIONS else "UNKNOWN"

        span_context = trace.get_current_span().get_span_context()
        histogram = database_query_duration_seconds.labels(operation=operation)
        if span_context.is_valid:
            histogram.observe(duration, exemplar={"trace_id": format(span_context.trace_id, "032x")})
        else:
            histogram.observe(duration)


@asynccontextmanager
async def session_scope(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncIterator[AsyncSession]:
    """Transactional scope: commit on success, roll back on error.

    Example:
        async with session_scope(session_factory) as session:
            await enqueue_message(session, "orders.created", payload)
    """
    async with session_factory() as session:
        try:
            yield session
            await session.commit()
        except BaseException:
            await session.rollback()
            raise


async def init_database(engine: AsyncEngine, settings: DatabaseSettings | None = None) -> None:
    """Verify database connectivity with retry.

    Schema is owned by Alembic (`alembic upgrade head`); this never creates
    tables.

    Useful at worker startup when the database may not be reachable yet
    (e.g., containers starting together).

    Raises:
        RetryError: If the database stays unreachable after all attempts.
    """
    settings = settings or get_db_settings()

    @retry(
        max_attempts=settings.startup_retry_attempts,
        initial_delay=settings.startup_retry_delay,
        max_delay=30.0,
        exponential_base=2.0,
        jitter=True,
        exceptions=(SQLAlchemyError, OSError),
    )
    async def check_database_connection() -> None:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

    logger.info(
        "Initializing database connection with retry",
        extra={
            "max_attempts": settings.startup_retry_attempts,
            "initial_delay": settings.startup_retry_delay,
        },
    )
    await check_database_connection()
    logger.info(
        "Database connection established successfully",
        extra={"dialect": engine.dialect.name},
    )


async def create_all(engine: AsyncEngine) -> None:
    """Create every mapped table (tests and local SQLite runs)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_database(engine: AsyncEngine) -> None:
    """Dispose of the engine's connection pool."""
    logger.info("Closing database connection")
    await engine.dispose()
    logger.info("Database connection closed successfully")


__all__ = [
    "close_database",
    "create_all",
    "create_engine",
    "create_session_factory",
    "init_database",
    "instrument_engine",
    "session_scope",
]
