"""Tests for metric tracking helpers."""

from __future__ import annotations

import pytest

from event_relay.infra.metrics import REGISTRY, generate_latest, tracking
from event_relay.infra.resilience import CircuitBreaker


async def boom() -> None:
    raise RuntimeError


def sample(name: str, **labels: str) -> float:
    return REGISTRY.get_sample_value(name, labels) or 0.0


@pytest.mark.unit
class TestTracking:
    def test_status_gauge(self) -> None:
        tracking.update_outbox_status_counts({"pending": 4, "processed": 9, "failed": 1})

        assert sample("outbox_messages", status="pending") == 4
        assert sample("outbox_messages", status="failed") == 1

    def test_publish_failure_counter(self) -> None:
        before = sample(
            "outbox_publish_failures_total", dispatcher="m", topic="t", reason="timeout"
        )

        tracking.track_outbox_publish_failure("m", "t", "timeout")

        assert (
            sample("outbox_publish_failures_total", dispatcher="m", topic="t", reason="timeout")
            == before + 1
        )

    def test_exposition_uses_dedicated_registry(self) -> None:
        tracking.observe_dispatch_duration("expo", 0.2)

        output = generate_latest(REGISTRY).decode()

        assert 'outbox_dispatch_duration_seconds_count{dispatcher="expo"}' in output


@pytest.mark.unit
class TestBreakerMetrics:
    async def test_state_gauge_follows_transitions(self) -> None:
        breaker = CircuitBreaker("metrics-breaker", failure_threshold=1)
        assert sample("circuit_breaker_state", circuit_name="metrics-breaker") == 0

        with pytest.raises(RuntimeError):
            await breaker.call(boom)

        assert sample("circuit_breaker_state", circuit_name="metrics-breaker") == 2
        assert (
            sample(
                "circuit_breaker_state_changes_total",
                circuit_name="metrics-breaker",
                from_state="closed",
                to_state="open",
            )
            == 1
        )
