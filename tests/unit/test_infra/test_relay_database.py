"""Tests for engine creation, startup checks and session helpers."""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path

import pytest
from alembic import command
from alembic.config import Config
from sqlalchemy import inspect, text

from event_relay.core.settings import DatabaseSettings
from event_relay.infra.database import (
    close_database,
    create_engine,
    init_database,
    session_scope,
)
from event_relay.infra.events.outbox import OutboxMessage, OutboxStatus, enqueue_message
from event_relay.infra.metrics import REGISTRY
from event_relay.utils.retry import RetryError


@pytest.mark.unit
class TestCreateEngine:
    def test_requires_configured_database(self) -> None:
        with pytest.raises(ValueError, match="not configured"):
            create_engine(DatabaseSettings(database_url=None))

    def test_disabled_database_is_not_configured(self) -> None:
        with pytest.raises(ValueError):
            create_engine(DatabaseSettings(enabled=False, database_url="sqlite+aiosqlite://"))

    async def test_records_query_durations(self, engine) -> None:
        before = REGISTRY.get_sample_value(
            "database_query_duration_seconds_count", {"operation": "SELECT"}
        ) or 0.0

        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))

        after = REGISTRY.get_sample_value(
            "database_query_duration_seconds_count", {"operation": "SELECT"}
        )
        assert after >= before + 1


@pytest.mark.unit
class TestInitDatabase:
    async def test_checks_connectivity_without_creating_schema(self, database_url) -> None:
        settings = DatabaseSettings(database_url=database_url)
        engine = create_engine(settings)
        try:
            await init_database(engine, settings)

            async with engine.connect() as conn:
                tables = await conn.run_sync(lambda c: inspect(c).get_table_names())
            assert "outbox_messages" not in tables
        finally:
            await close_database(engine)

    async def test_unreachable_database_raises_after_retries(self, tmp_path) -> None:
        settings = DatabaseSettings(
            database_url=f"sqlite+aiosqlite:///{tmp_path / 'missing' / 'dir' / 'relay.db'}",
            startup_retry_attempts=2,
            startup_retry_delay=0.01,
        )
        engine = create_engine(settings)
        try:
            with pytest.raises(RetryError) as exc_info:
                await init_database(engine, settings)
        finally:
            await close_database(engine)

        assert exc_info.value.attempts == 2


@pytest.mark.unit
class TestSessionScope:
    async def test_commits_on_success(self, session_factory, sql_store) -> None:
        async with session_scope(session_factory) as session:
            await enqueue_message(session, "orders.created", {"n": 1})

        assert (await sql_store.count_by_status())[OutboxStatus.PENDING] == 1

    async def test_rolls_back_on_error(self, session_factory, sql_store) -> None:
        with pytest.raises(RuntimeError):
            async with session_scope(session_factory) as session:
                await enqueue_message(session, "orders.created", {"n": 1})
                raise RuntimeError("business rule violated")

        assert (await sql_store.count_by_status())[OutboxStatus.PENDING] == 0


PROJECT_ROOT = Path(__file__).resolve().parents[3]


def alembic_config(database_url: str) -> Config:
    config = Config()
    config.set_main_option("script_location", str(PROJECT_ROOT / "alembic"))
    config.set_main_option("sqlalchemy.url", database_url)
    return config


@pytest.mark.unit
class TestMigrations:
    """Migrations run outside the test event loop (env.py calls asyncio.run)."""

    def test_upgrade_head_after_worker_startup(self, database_url) -> None:
        async def startup() -> list[str]:
            settings = DatabaseSettings(database_url=database_url)
            engine = create_engine(settings)
            try:
                await init_database(engine, settings)
                async with engine.connect() as conn:
                    return await conn.run_sync(lambda c: inspect(c).get_table_names())
            finally:
                await close_database(engine)

        assert "outbox_messages" not in asyncio.run(startup())

        command.upgrade(alembic_config(database_url), "head")

        async def tables() -> list[str]:
            engine = create_engine(DatabaseSettings(database_url=database_url))
            try:
                async with engine.connect() as conn:
                    return await conn.run_sync(lambda c: inspect(c).get_table_names())
            finally:
                await engine.dispose()

        assert {"outbox_messages", "alembic_version"} <= set(asyncio.run(tables()))

    def test_migrated_schema_applies_server_defaults(self, database_url) -> None:
        command.upgrade(alembic_config(database_url), "head")

        async def insert_bare_row() -> tuple[str, int]:
            engine = create_engine(DatabaseSettings(database_url=database_url))
            try:
                async with engine.begin() as conn:
                    await conn.execute(
                        text(
                            "INSERT INTO outbox_messages (id, topic, payload) "
                            "VALUES (:id, 'orders.created', '{}')"
                        ),
                        {"id": uuid.uuid4().hex},
                    )
                    row = (
                        await conn.execute(text("SELECT status, attempt_count FROM outbox_messages"))
                    ).one()
                return row.status, row.attempt_count
            finally:
                await engine.dispose()

        assert asyncio.run(insert_bare_row()) == (OutboxStatus.PENDING.value, 0)

    def test_model_declares_migration_server_defaults(self) -> None:
        columns = OutboxMessage.__table__.c

        assert columns.status.server_default.arg == OutboxStatus.PENDING.value
        assert columns.attempt_count.server_default.arg == "0"
