"""Tests for the outbox dispatcher.

Tests cover:
- Publishing due messages and marking them processed
- Retry with backoff and parking after max_retries
- Isolation of per-message failures
- Store errors during fetch and write-back
- Circuit breaker integration
- Ticker lifecycle: stop, wait, shutdown
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from event_relay.infra.events.outbox import (
    InMemoryOutboxStore,
    OutboxDispatcher,
    OutboxStatus,
    OutboxStoreError,
    start_dispatcher,
)
from event_relay.infra.metrics import REGISTRY
from event_relay.infra.resilience import CircuitBreaker


async def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while not predicate():
        if asyncio.get_running_loop().time() > deadline:
            pytest.fail("condition not met before timeout")
        await asyncio.sleep(0.005)


def metric(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.fixture
def store() -> InMemoryOutboxStore:
    return InMemoryOutboxStore()


@pytest.mark.unit
class TestDispatcherConfiguration:
    @pytest.mark.parametrize(
        ("kwargs", "message"),
        [
            ({"poll_interval": 0}, "poll_interval"),
            ({"max_retries": 0}, "max_retries"),
            ({"base_delay": -1.0}, "base_delay"),
            ({"batch_size": 0}, "batch_size"),
        ],
    )
    def test_rejects_invalid_options(self, store, bus, kwargs, message) -> None:
        with pytest.raises(ValueError, match=message):
            OutboxDispatcher(store, bus, **kwargs)


@pytest.mark.unit
class TestDispatchOnce:
    async def test_publishes_and_marks_processed(self, store, bus) -> None:
        first = await store.enqueue("orders.created", {"order_id": 1})
        second = await store.enqueue("orders.paid", {"order_id": 1})
        dispatcher = OutboxDispatcher(store, bus, name="happy")
        published_before = metric(
            "outbox_messages_published_total", dispatcher="happy", topic="orders.created"
        )

        result = await dispatcher.dispatch_once()

        assert result.fetched == 2
        assert result.published == 2
        assert result.errors == 0
        assert sorted(bus.published) == sorted(
            [
                ("orders.created", {"order_id": 1}, str(first.id)),
                ("orders.paid", {"order_id": 1}, str(second.id)),
            ]
        )
        assert store.get(first.id).status is OutboxStatus.PROCESSED
        assert store.get(second.id).status is OutboxStatus.PROCESSED
        assert (
            metric("outbox_messages_published_total", dispatcher="happy", topic="orders.created")
            == published_before + 1
        )

    async def test_empty_tick(self, store, bus) -> None:
        result = await OutboxDispatcher(store, bus).dispatch_once()

        assert result.fetched == 0
        assert bus.published == []

    async def test_batch_size_limits_tick(self, store, bus) -> None:
        for n in range(5):
            await store.enqueue("t", {"n": n})

        result = await OutboxDispatcher(store, bus, batch_size=2).dispatch_once()

        assert result.fetched == 2
        assert (await store.count_by_status())[OutboxStatus.PENDING] == 3

    async def test_failure_schedules_retry(self, store, bus) -> None:
        message = await store.enqueue("orders.created", {})
        bus.failing_topics.add("orders.created")
        dispatcher = OutboxDispatcher(store, bus, max_retries=3, base_delay=60.0)

        before = datetime.now(UTC)
        result = await dispatcher.dispatch_once()

        assert result.retried == 1
        retried = store.get(message.id)
        assert retried.status is OutboxStatus.PENDING
        assert retried.attempt_count == 1
        assert retried.next_attempt_at >= before + timedelta(seconds=60)
        # Not due again until the backoff elapses
        assert (await dispatcher.dispatch_once()).fetched == 0

    async def test_parks_after_max_retries(self, store, bus) -> None:
        message = await store.enqueue("orders.created", {})
        bus.failing_topics.add("orders.created")
        dispatcher = OutboxDispatcher(store, bus, max_retries=3, base_delay=0.0, name="park")
        parked_before = metric(
            "outbox_messages_parked_total", dispatcher="park", topic="orders.created"
        )

        results = [await dispatcher.dispatch_once() for _ in range(4)]

        assert [r.retried for r in results] == [1, 1, 0, 0]
        assert [r.parked for r in results] == [0, 0, 1, 0]
        assert results[3].fetched == 0
        parked = store.get(message.id)
        assert parked.status is OutboxStatus.FAILED
        assert parked.attempt_count == 3
        assert (
            metric("outbox_messages_parked_total", dispatcher="park", topic="orders.created")
            == parked_before + 1
        )

    async def test_recovers_after_transient_failures(self, store, bus) -> None:
        message = await store.enqueue("orders.created", {"order_id": 1})
        bus.failing_topics.add("orders.created")
        dispatcher = OutboxDispatcher(store, bus, max_retries=5, base_delay=0.0)

        await dispatcher.dispatch_once()
        await dispatcher.dispatch_once()
        bus.failing_topics.clear()
        result = await dispatcher.dispatch_once()

        assert result.published == 1
        delivered = store.get(message.id)
        assert delivered.status is OutboxStatus.PROCESSED
        assert delivered.attempt_count == 2
        assert len(bus.published) == 1

    async def test_one_failure_does_not_affect_others(self, store, bus) -> None:
        bad = await store.enqueue("bad", {})
        good = await store.enqueue("good", {})
        bus.failing_topics.add("bad")

        result = await OutboxDispatcher(store, bus).dispatch_once()

        assert (result.published, result.retried) == (1, 1)
        assert store.get(good.id).status is OutboxStatus.PROCESSED
        assert store.get(bad.id).attempt_count == 1

    async def test_fetch_error_ends_tick(self, bus) -> None:
        store = AsyncMock()
        store.get_due_messages.side_effect = OutboxStoreError("OUTBOX_FETCH_FAILED", "db down")
        dispatcher = OutboxDispatcher(store, bus, name="fetch-error")
        errors_before = metric(
            "outbox_store_errors_total", dispatcher="fetch-error", operation="fetch"
        )

        result = await dispatcher.dispatch_once()

        assert result.errors == 1
        assert result.fetched == 0
        store.mark_success.assert_not_called()
        assert (
            metric("outbox_store_errors_total", dispatcher="fetch-error", operation="fetch")
            == errors_before + 1
        )

    async def test_mark_success_error_leaves_message_pending(self, store, bus) -> None:
        message = await store.enqueue("orders.created", {})
        other = await store.enqueue("orders.paid", {})
        original = store.mark_success

        async def flaky_mark_success(message_id, *, attempt_count=None):
            if message_id == message.id:
                raise OutboxStoreError("OUTBOX_UPDATE_FAILED", "db down")
            return await original(message_id, attempt_count=attempt_count)

        store.mark_success = flaky_mark_success
        result = await OutboxDispatcher(store, bus).dispatch_once()

        assert (result.published, result.errors) == (1, 1)
        assert store.get(message.id).status is OutboxStatus.PENDING
        assert store.get(message.id).attempt_count == 0
        assert store.get(other.id).status is OutboxStatus.PROCESSED

    async def test_mark_failure_error_keeps_attempt_count(self, store, bus) -> None:
        message = await store.enqueue("orders.created", {"order_id": 7})
        bus.failing_topics.add("orders.created")
        original = store.mark_failure
        calls = 0

        async def flaky_mark_failure(message_id, current_attempt_count, max_retries, base_delay):
            nonlocal calls
            calls += 1
            if calls == 1:
                raise OutboxStoreError("OUTBOX_UPDATE_FAILED", "db down")
            return await original(message_id, current_attempt_count, max_retries, base_delay)

        store.mark_failure = flaky_mark_failure
        dispatcher = OutboxDispatcher(store, bus, base_delay=0.0)

        first = await dispatcher.dispatch_once()

        assert (first.fetched, first.errors, first.retried) == (1, 1, 0)
        stored = store.get(message.id)
        assert stored.status is OutboxStatus.PENDING
        assert stored.attempt_count == 0
        assert await store.get_due_messages() == [stored]

        second = await dispatcher.dispatch_once()

        assert (second.fetched, second.retried, second.errors) == (1, 1, 0)
        assert store.get(message.id).attempt_count == 1

    async def test_skipped_when_another_dispatcher_won(self, store, bus) -> None:
        message = await store.enqueue("orders.created", {})
        original_publish = bus.publish

        async def publish_then_race(topic, payload, *, message_id=None):
            await original_publish(topic, payload, message_id=message_id)
            await store.mark_success(message.id)

        bus.publish = publish_then_race
        result = await OutboxDispatcher(store, bus).dispatch_once()

        assert result.skipped == 1
        assert result.published == 0


@pytest.mark.unit
class TestDispatcherWithBreaker:
    async def test_open_circuit_counts_as_publish_failure(self, store, bus) -> None:
        breaker = CircuitBreaker("bus-test", failure_threshold=1, reset_timeout=60.0)
        first = await store.enqueue("orders.created", {})
        bus.failing_topics.add("orders.created")
        dispatcher = OutboxDispatcher(
            store, bus, breaker=breaker, base_delay=0.0, name="breaker-test"
        )

        await dispatcher.dispatch_once()
        assert breaker.is_open

        bus.failing_topics.clear()
        second = await store.enqueue("orders.paid", {})
        open_before = metric(
            "outbox_publish_failures_total",
            dispatcher="breaker-test",
            topic="orders.paid",
            reason="circuit_open",
        )
        result = await dispatcher.dispatch_once()

        assert result.retried == 2
        assert bus.published == []
        assert store.get(first.id).attempt_count == 2
        assert store.get(second.id).attempt_count == 1
        assert breaker.total_rejections == 2
        assert (
            metric(
                "outbox_publish_failures_total",
                dispatcher="breaker-test",
                topic="orders.paid",
                reason="circuit_open",
            )
            == open_before + 1
        )

    async def test_breaker_passes_message_id(self, store, bus) -> None:
        breaker = CircuitBreaker("bus-id", failure_threshold=1)
        message = await store.enqueue("orders.created", {"n": 1})

        await OutboxDispatcher(store, bus, breaker=breaker).dispatch_once()

        assert bus.published == [("orders.created", {"n": 1}, str(message.id))]
        assert breaker.total_successes == 1


@pytest.mark.unit
class TestDispatcherLifecycle:
    async def test_ticker_relays_new_messages(self, store, bus) -> None:
        handle = start_dispatcher(store, bus, poll_interval=0.01)
        try:
            message = await store.enqueue("orders.created", {})
            await wait_until(lambda: store.get(message.id).status is OutboxStatus.PROCESSED)
        finally:
            await handle.shutdown(timeout=1.0)

        assert not handle.running

    async def test_start_twice_raises(self, store, bus) -> None:
        dispatcher = OutboxDispatcher(store, bus, poll_interval=0.01)
        handle = dispatcher.start()
        try:
            with pytest.raises(RuntimeError, match="already running"):
                dispatcher.start()
        finally:
            await handle.shutdown(timeout=1.0)

    async def test_loop_survives_unexpected_tick_error(self, store, bus) -> None:
        dispatcher = OutboxDispatcher(store, bus, poll_interval=0.01)
        calls = 0
        original = dispatcher.dispatch_once

        async def sometimes_broken():
            nonlocal calls
            calls += 1
            if calls == 1:
                raise RuntimeError("boom")
            return await original()

        dispatcher.dispatch_once = sometimes_broken
        handle = dispatcher.start()
        try:
            await wait_until(lambda: calls >= 3)
        finally:
            await handle.shutdown(timeout=1.0)

    async def test_stop_lets_in_flight_tick_finish(self, store, bus) -> None:
        message = await store.enqueue("orders.created", {})
        release = asyncio.Event()
        entered = asyncio.Event()
        original_publish = bus.publish

        async def slow_publish(topic, payload, *, message_id=None):
            entered.set()
            await release.wait()
            await original_publish(topic, payload, message_id=message_id)

        bus.publish = slow_publish
        handle = start_dispatcher(store, bus, poll_interval=0.01)
        await entered.wait()

        handle.stop()
        assert handle.stopping
        assert await handle.wait(timeout=0.05) is False

        release.set()
        assert await handle.wait(timeout=1.0) is True
        assert store.get(message.id).status is OutboxStatus.PROCESSED
        assert len(bus.published) == 1

    async def test_no_ticks_after_stop(self, store, bus) -> None:
        handle = start_dispatcher(store, bus, poll_interval=0.01)
        handle.stop()
        await handle.wait(timeout=1.0)

        await store.enqueue("orders.created", {})
        await asyncio.sleep(0.05)

        assert bus.published == []

    async def test_shutdown_cancels_after_timeout(self, store, bus) -> None:
        await store.enqueue("orders.created", {})
        entered = asyncio.Event()

        async def hang(topic, payload, *, message_id=None):
            entered.set()
            await asyncio.Event().wait()

        bus.publish = hang
        handle = start_dispatcher(store, bus, poll_interval=0.01)
        await entered.wait()

        await handle.shutdown(timeout=0.05)

        assert not handle.running

    async def test_reports_status_counts(self, store, bus) -> None:
        store.add("a", {}, status=OutboxStatus.FAILED, attempt_count=5)
        dispatcher = OutboxDispatcher(store, bus, poll_interval=0.01, report_status_counts=True)
        handle = dispatcher.start()
        try:
            await wait_until(lambda: metric("outbox_messages", status="failed") == 1.0)
        finally:
            await handle.shutdown(timeout=1.0)
