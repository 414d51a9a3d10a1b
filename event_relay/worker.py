"""Relay worker: wires settings, database, broker, breaker and dispatcher.

Run with ``event-relay outbox run`` (or ``python -m event_relay``). The
worker runs until SIGINT/SIGTERM, then lets the in-flight tick finish before
closing the broker and disposing of the engine.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import signal
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from event_relay.core.settings import get_settings
from event_relay.infra.database import (
    close_database,
    create_engine,
    create_session_factory,
    init_database,
)
from event_relay.infra.events.outbox import OutboxDispatcher, SQLAlchemyOutboxStore
from event_relay.infra.logging import setup_logging
from event_relay.infra.messaging import (
    RabbitEventBusClient,
    close_broker,
    connect_broker,
    create_rabbit_broker,
)
from event_relay.infra.resilience import CircuitBreaker, circuit_breakers

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

    from event_relay.core.settings import CircuitBreakerSettings, OutboxSettings, Settings
    from event_relay.infra.messaging import EventBusClient

logger = logging.getLogger(__name__)


def build_store(
    session_factory: async_sessionmaker[AsyncSession],
    settings: OutboxSettings,
) -> SQLAlchemyOutboxStore:
    return SQLAlchemyOutboxStore(
        session_factory,
        max_delay=settings.max_delay,
        jitter=settings.jitter,
        jitter_ratio=settings.jitter_ratio,
    )


def build_breaker(settings: CircuitBreakerSettings, bus: EventBusClient) -> CircuitBreaker | None:
    """Publish breaker from settings, registered in the process-wide registry."""
    if not settings.enabled:
        return None
    return circuit_breakers.get_or_create(
        settings.name,
        bus.publish,
        **settings.to_breaker_kwargs(),
    )


@asynccontextmanager
async def store_context(settings: Settings | None = None) -> AsyncIterator[SQLAlchemyOutboxStore]:
    """Open the database, verify connectivity and yield an outbox store."""
    settings = settings or get_settings()

    engine = create_engine(settings.db)
    try:
        await init_database(engine, settings.db)
        yield build_store(create_session_factory(engine), settings.outbox)
    finally:
        await close_database(engine)


@asynccontextmanager
async def relay_context(settings: Settings | None = None) -> AsyncIterator[OutboxDispatcher]:
    """Connect every collaborator and yield a ready (not started) dispatcher.

    Resources are released in reverse order on exit.
    """
    settings = settings or get_settings()

    async with store_context(settings) as store:
        broker = create_rabbit_broker(settings.rabbit)
        await connect_broker(broker, settings.rabbit)
        try:
            bus = RabbitEventBusClient.from_settings(broker, settings.rabbit)
            yield OutboxDispatcher(
                store,
                bus,
                breaker=build_breaker(settings.breaker, bus),
                poll_interval=settings.outbox.poll_interval,
                max_retries=settings.outbox.max_retries,
                base_delay=settings.outbox.base_delay,
                batch_size=settings.outbox.batch_size,
                name=settings.app.service_name,
                report_status_counts=True,
            )
        finally:
            await close_broker(broker)


async def run_worker(
    settings: Settings | None = None,
    *,
    stop_event: asyncio.Event | None = None,
) -> None:
    """Run the dispatcher until a signal arrives or ``stop_event`` is set."""
    settings = settings or get_settings()
    setup_logging(settings.logging)

    if not settings.outbox.enabled:
        logger.warning("Outbox dispatcher disabled (OUTBOX_ENABLED=false), exiting")
        return

    stop_event = stop_event or asyncio.Event()
    loop = asyncio.get_running_loop()
    installed: list[signal.Signals] = []
    for sig in (signal.SIGINT, signal.SIGTERM):
        # Not available on Windows event loops
        with contextlib.suppress(NotImplementedError, RuntimeError):
            loop.add_signal_handler(sig, stop_event.set)
            installed.append(sig)

    try:
        async with relay_context(settings) as dispatcher:
            handle = dispatcher.start()
            logger.info(
                "Relay worker running",
                extra={
                    "service": settings.app.service_name,
                    "environment": settings.app.environment,
                },
            )
            await stop_event.wait()
            logger.info("Relay worker shutting down")
            await handle.shutdown(settings.outbox.shutdown_timeout)
    finally:
        for sig in installed:
            loop.remove_signal_handler(sig)

    logger.info("Relay worker stopped")


__all__ = ["build_breaker", "build_store", "relay_context", "run_worker", "store_context"]
