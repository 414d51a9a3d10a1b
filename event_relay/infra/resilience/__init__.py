"""Resilience patterns for outbound calls.

Example:
    >>> from event_relay.infra.resilience import CircuitBreaker, CircuitOpenError
    >>>
    >>> breaker = CircuitBreaker("event-bus.publish", failure_threshold=5, reset_timeout=30.0)
    >>>
    >>> @breaker.protected
    ... async def publish(topic: str, payload: dict) -> None:
    ...     await bus.publish(topic, payload)
    >>>
    >>> try:
    ...     await publish("orders.created", {"order_id": 1})
    ... except CircuitOpenError:
    ...     logger.warning("Event bus unavailable")
"""

from __future__ import annotations

from event_relay.infra.resilience.circuit_breaker import (
    CircuitBreaker,
    CircuitOpenError,
    CircuitState,
    CircuitTimeoutError,
)
from event_relay.infra.resilience.registry import CircuitBreakerRegistry, circuit_breakers

__all__ = [
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    "CircuitTimeoutError",
    "circuit_breakers",
]
