"""Tests for the circuit breaker registry."""

from __future__ import annotations

import pytest

from event_relay.infra.resilience import CircuitBreaker, CircuitBreakerRegistry


async def boom() -> None:
    raise RuntimeError


@pytest.fixture
def registry() -> CircuitBreakerRegistry:
    return CircuitBreakerRegistry()


@pytest.mark.unit
class TestCircuitBreakerRegistry:
    def test_create_registers_breaker(self, registry: CircuitBreakerRegistry) -> None:
        breaker = registry.create("bus", failure_threshold=2)

        assert isinstance(breaker, CircuitBreaker)
        assert breaker.failure_threshold == 2
        assert "bus" in registry
        assert len(registry) == 1
        assert registry.get("bus") is breaker

    def test_create_duplicate_name_raises(self, registry: CircuitBreakerRegistry) -> None:
        registry.create("bus")

        with pytest.raises(ValueError, match="already exists"):
            registry.create("bus")

    def test_get_or_create_returns_existing(self, registry: CircuitBreakerRegistry) -> None:
        first = registry.get_or_create("bus", failure_threshold=2)
        second = registry.get_or_create("bus", failure_threshold=9)

        assert first is second
        assert second.failure_threshold == 2

    def test_get_unknown_returns_none(self, registry: CircuitBreakerRegistry) -> None:
        assert registry.get("missing") is None

    def test_get_all_returns_copy(self, registry: CircuitBreakerRegistry) -> None:
        registry.create("a")
        snapshot = registry.get_all()
        snapshot.clear()

        assert len(registry) == 1

    def test_remove(self, registry: CircuitBreakerRegistry) -> None:
        registry.create("a")

        assert registry.remove("a") is True
        assert registry.remove("a") is False
        assert "a" not in registry

    async def test_reset_one(self, registry: CircuitBreakerRegistry) -> None:
        breaker = registry.create("a", failure_threshold=1)
        other = registry.create("b", failure_threshold=1)
        for b in (breaker, other):
            with pytest.raises(RuntimeError):
                await b.call(boom)

        await registry.reset("a")

        assert breaker.is_closed
        assert other.is_open

    async def test_reset_all(self, registry: CircuitBreakerRegistry) -> None:
        breakers = [registry.create(name, failure_threshold=1) for name in ("a", "b")]
        for b in breakers:
            with pytest.raises(RuntimeError):
                await b.call(boom)

        await registry.reset()

        assert all(b.is_closed for b in breakers)

    async def test_reset_unknown_raises(self, registry: CircuitBreakerRegistry) -> None:
        with pytest.raises(KeyError):
            await registry.reset("missing")
