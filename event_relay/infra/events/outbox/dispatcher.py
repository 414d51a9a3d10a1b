"""Polling dispatcher that relays outbox messages to the event bus.

Each tick:
1. Fetches due messages from the store
2. Publishes every message concurrently (optionally through a circuit breaker)
3. Marks each message processed, or records the failure with backoff

One message's failure never affects the others or later ticks. Delivery is
at-least-once: a crash between publish and mark leaves the message pending
and it is published again.

Example:
    handle = start_dispatcher(store, bus, poll_interval=5.0, breaker=breaker)
    ...
    handle.stop()
    await handle.wait(timeout=30.0)
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from dataclasses import asdict, dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from event_relay.infra.metrics.tracking import (
    observe_dispatch_duration,
    track_outbox_parked,
    track_outbox_publish_failure,
    track_outbox_published,
    track_outbox_store_error,
    update_outbox_status_counts,
)
from event_relay.infra.resilience.circuit_breaker import CircuitOpenError

if TYPE_CHECKING:
    from event_relay.infra.events.outbox.store import OutboxMessageData, OutboxStore
    from event_relay.infra.messaging.broker import EventBusClient
    from event_relay.infra.resilience.circuit_breaker import CircuitBreaker

logger = logging.getLogger(__name__)


class _Outcome(StrEnum):
    PUBLISHED = "published"
    RETRIED = "retried"
    PARKED = "parked"
    SKIPPED = "skipped"
    ERROR = "error"


@dataclass(slots=True)
class DispatchResult:
    """Counts for a single dispatcher tick.

    Attributes:
        fetched: Due messages returned by the store
        published: Messages published and marked processed
        retried: Failed publishes scheduled for a later attempt
        parked: Failed publishes that reached max_retries
        skipped: Status writes that were no-ops (another dispatcher won)
        errors: Store operations that raised
        duration: Tick duration in seconds
    """

    fetched: int = 0
    published: int = 0
    retried: int = 0
    parked: int = 0
    skipped: int = 0
    errors: int = 0
    duration: float = 0.0

    def as_dict(self) -> dict[str, Any]:
        return asdict(self)


class DispatcherHandle:
    """Control handle for a running dispatcher loop.

    ``stop()`` prevents new ticks; a tick already in flight runs to
    completion and writes back its results.
    """

    def __init__(self, task: asyncio.Task[None], stop_event: asyncio.Event, name: str) -> None:
        self._task = task
        self._stop_event = stop_event
        self.name = name

    @property
    def running(self) -> bool:
        """Whether the loop task is still alive."""
        return not self._task.done()

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set() and not self._task.done()

    def stop(self) -> None:
        """Request the loop to exit after the current tick."""
        if not self._stop_event.is_set():
            logger.info("Outbox dispatcher stop requested", extra={"dispatcher": self.name})
        self._stop_event.set()

    async def wait(self, timeout: float | None = None) -> bool:
        """Wait for the loop to exit.

        Returns:
            True if the loop has exited, False if the timeout elapsed first
        """
        await asyncio.wait({self._task}, timeout=timeout)
        return self._task.done()

    async def shutdown(self, timeout: float = 30.0) -> None:
        """Stop, wait up to ``timeout`` seconds, then cancel as a last resort."""
        self.stop()
        if await self.wait(timeout):
            return

        logger.warning(
            "Outbox dispatcher shutdown timed out, cancelling",
            extra={"dispatcher": self.name, "timeout": timeout},
        )
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task


class OutboxDispatcher:
    """Relays due outbox messages from a store to an event bus.

    Attributes:
        poll_interval: Seconds between the start of consecutive ticks
        max_retries: Failed attempts after which a message is parked
        base_delay: Backoff base in seconds (delay = base_delay * 2 ** (n - 1))
        batch_size: Maximum messages per tick, None for all due messages
        name: Dispatcher name used in logs and metric labels
    """

    def __init__(
        self,
        store: OutboxStore,
        bus: EventBusClient,
        *,
        breaker: CircuitBreaker | None = None,
        poll_interval: float = 5.0,
        max_retries: int = 5,
        base_delay: float = 5.0,
        batch_size: int | None = None,
        name: str = "outbox",
        report_status_counts: bool = False,
    ) -> None:
        if poll_interval <= 0:
            msg = "poll_interval must be greater than 0"
            raise ValueError(msg)
        if max_retries < 1:
            msg = "max_retries must be at least 1"
            raise ValueError(msg)
        if base_delay < 0:
            msg = "base_delay must not be negative"
            raise ValueError(msg)
        if batch_size is not None and batch_size < 1:
            msg = "batch_size must be at least 1 or None"
            raise ValueError(msg)

        self._store = store
        self._bus = bus
        self._breaker = breaker
        self.poll_interval = poll_interval
        self.max_retries = max_retries
        self.base_delay = base_delay
        self.batch_size = batch_size
        self.name = name
        self.report_status_counts = report_status_counts
        self._handle: DispatcherHandle | None = None

    @property
    def breaker(self) -> CircuitBreaker | None:
        return self._breaker

    @property
    def handle(self) -> DispatcherHandle | None:
        return self._handle

    def start(self) -> DispatcherHandle:
        """Spawn the ticker task on the running event loop.

        Raises:
            RuntimeError: If this dispatcher is already running.
        """
        if self._handle is not None and self._handle.running:
            msg = f"Outbox dispatcher '{self.name}' is already running"
            raise RuntimeError(msg)

        stop_event = asyncio.Event()
        task = asyncio.create_task(self._run(stop_event), name=f"outbox-dispatcher:{self.name}")
        self._handle = DispatcherHandle(task, stop_event, self.name)
        return self._handle

    async def _run(self, stop_event: asyncio.Event) -> None:
        """Ticker loop: one tick, then wait out the rest of the interval."""
        loop = asyncio.get_running_loop()
        logger.info(
            "Outbox dispatcher started",
            extra={
                "dispatcher": self.name,
                "poll_interval": self.poll_interval,
                "max_retries": self.max_retries,
                "base_delay": self.base_delay,
                "batch_size": self.batch_size,
                "circuit_breaker": self._breaker.name if self._breaker else None,
            },
        )

        while not stop_event.is_set():
            started = loop.time()
            try:
                await self.dispatch_once()
                if self.report_status_counts:
                    await self._report_status_counts()
            except Exception:
                logger.exception(
                    "Unexpected error in outbox dispatcher tick",
                    extra={"dispatcher": self.name},
                )

            delay = max(0.0, self.poll_interval - (loop.time() - started))
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(stop_event.wait(), timeout=delay)

        logger.info("Outbox dispatcher stopped", extra={"dispatcher": self.name})

    async def dispatch_once(self) -> DispatchResult:
        """Run a single tick and return its counts.

        Store errors while fetching end the tick without touching any message.
        """
        started = time.monotonic()
        result = DispatchResult()

        try:
            messages = await self._store.get_due_messages(self.batch_size)
        except Exception as e:
            result.errors += 1
            track_outbox_store_error(self.name, "fetch")
            logger.warning(
                "Failed to fetch due outbox messages",
                extra={"dispatcher": self.name, "error": str(e)},
                exc_info=True,
            )
            result.duration = time.monotonic() - started
            return result

        result.fetched = len(messages)
        if messages:
            outcomes = await asyncio.gather(*(self._handle_message(m) for m in messages))
            for outcome in outcomes:
                match outcome:
                    case _Outcome.PUBLISHED:
                        result.published += 1
                    case _Outcome.RETRIED:
                        result.retried += 1
                    case _Outcome.PARKED:
                        result.parked += 1
                    case _Outcome.SKIPPED:
                        result.skipped += 1
                    case _Outcome.ERROR:
                        result.errors += 1

        result.duration = time.monotonic() - started
        observe_dispatch_duration(self.name, result.duration)

        if result.fetched:
            logger.info(
                "Outbox batch dispatched",
                extra={"dispatcher": self.name, **result.as_dict()},
            )
        return result

    async def _handle_message(self, message: OutboxMessageData) -> _Outcome:
        """Publish one message and write back the outcome. Never raises."""
        try:
            await self._publish(message)
        except Exception as e:
            if isinstance(e, CircuitOpenError):
                reason = "circuit_open"
            elif isinstance(e, TimeoutError):
                reason = "timeout"
            else:
                reason = "error"
            track_outbox_publish_failure(self.name, message.topic, reason)
            logger.warning(
                "Failed to publish outbox message",
                extra={
                    "dispatcher": self.name,
                    "message_id": str(message.id),
                    "topic": message.topic,
                    "attempt_count": message.attempt_count + 1,
                    "max_retries": self.max_retries,
                    "reason": reason,
                    "error": str(e),
                },
            )
            return await self._record_failure(message)

        return await self._record_success(message)

    async def _publish(self, message: OutboxMessageData) -> None:
        message_id = str(message.id)
        if self._breaker is None:
            await self._bus.publish(message.topic, message.payload, message_id=message_id)
        else:
            await self._breaker.call(
                self._bus.publish, message.topic, message.payload, message_id=message_id
            )

    async def _record_success(self, message: OutboxMessageData) -> _Outcome:
        try:
            updated = await self._store.mark_success(
                message.id, attempt_count=message.attempt_count
            )
        except Exception as e:
            track_outbox_store_error(self.name, "mark_success")
            logger.warning(
                "Failed to mark outbox message processed, will retry next tick",
                extra={
                    "dispatcher": self.name,
                    "message_id": str(message.id),
                    "error": str(e),
                },
                exc_info=True,
            )
            return _Outcome.ERROR

        if not updated:
            logger.debug(
                "Outbox message already handled elsewhere",
                extra={"dispatcher": self.name, "message_id": str(message.id)},
            )
            return _Outcome.SKIPPED

        track_outbox_published(self.name, message.topic)
        logger.debug(
            "Outbox message published",
            extra={
                "dispatcher": self.name,
                "message_id": str(message.id),
                "topic": message.topic,
            },
        )
        return _Outcome.PUBLISHED

    async def _record_failure(self, message: OutboxMessageData) -> _Outcome:
        try:
            updated = await self._store.mark_failure(
                message.id,
                message.attempt_count,
                self.max_retries,
                self.base_delay,
            )
        except Exception as e:
            track_outbox_store_error(self.name, "mark_failure")
            logger.warning(
                "Failed to record outbox publish failure, will retry next tick",
                extra={
                    "dispatcher": self.name,
                    "message_id": str(message.id),
                    "error": str(e),
                },
                exc_info=True,
            )
            return _Outcome.ERROR

        if not updated:
            return _Outcome.SKIPPED

        if message.attempt_count + 1 >= self.max_retries:
            track_outbox_parked(self.name, message.topic)
            logger.error(
                "Outbox message parked after max retries",
                extra={
                    "dispatcher": self.name,
                    "message_id": str(message.id),
                    "topic": message.topic,
                    "attempt_count": message.attempt_count + 1,
                },
            )
            return _Outcome.PARKED
        return _Outcome.RETRIED

    async def _report_status_counts(self) -> None:
        try:
            counts = await self._store.count_by_status()
        except Exception as e:
            track_outbox_store_error(self.name, "count")
            logger.warning(
                "Failed to count outbox messages",
                extra={"dispatcher": self.name, "error": str(e)},
            )
            return
        update_outbox_status_counts({str(status): count for status, count in counts.items()})


def start_dispatcher(
    store: OutboxStore,
    bus: EventBusClient,
    *,
    poll_interval: float,
    max_retries: int = 5,
    base_delay: float = 5.0,
    breaker: CircuitBreaker | None = None,
    batch_size: int | None = None,
    name: str = "outbox",
) -> DispatcherHandle:
    """Create a dispatcher and start its ticker.

    Args:
        store: Outbox store to read from and write back to
        bus: Event bus client used to publish
        poll_interval: Seconds between ticks
        max_retries: Failed attempts after which a message is parked
        base_delay: Backoff base in seconds
        breaker: Optional circuit breaker wrapped around each publish
        batch_size: Maximum messages per tick, None for all
        name: Dispatcher name for logs and metrics

    Returns:
        Handle whose ``stop()`` halts future ticks
    """
    dispatcher = OutboxDispatcher(
        store,
        bus,
        breaker=breaker,
        poll_interval=poll_interval,
        max_retries=max_retries,
        base_delay=base_delay,
        batch_size=batch_size,
        name=name,
    )
    return dispatcher.start()


__all__ = ["DispatchResult", "DispatcherHandle", "OutboxDispatcher", "start_dispatcher"]
