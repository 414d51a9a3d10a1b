"""Helper functions for recording relay and resilience metrics.

Call sites use these helpers instead of touching metric objects directly, so
label names stay consistent across the codebase.
"""

from __future__ import annotations

from collections.abc import Mapping

from event_relay.infra.metrics import prometheus

# ============================================================================
# Outbox Tracking
# ============================================================================


def track_outbox_published(dispatcher: str, topic: str) -> None:
    """Track a message published and marked processed.

    Example:
            track_outbox_published("outbox", "orders.created")
    """
    prometheus.outbox_messages_published_total.labels(dispatcher=dispatcher, topic=topic).inc()


def track_outbox_publish_failure(dispatcher: str, topic: str, reason: str) -> None:
    """Track a failed publish attempt.

    Args:
        dispatcher: Dispatcher name
        topic: Message topic
        reason: Short failure category ('error', 'circuit_open', 'timeout')
    """
    prometheus.outbox_publish_failures_total.labels(
        dispatcher=dispatcher,
        topic=topic,
        reason=reason,
    ).inc()


def track_outbox_parked(dispatcher: str, topic: str) -> None:
    """Track a message moved to the terminal failed status."""
    prometheus.outbox_messages_parked_total.labels(dispatcher=dispatcher, topic=topic).inc()


def track_outbox_store_error(dispatcher: str, operation: str) -> None:
    """Track a store failure (fetch, mark_success, mark_failure)."""
    prometheus.outbox_store_errors_total.labels(dispatcher=dispatcher, operation=operation).inc()


def observe_dispatch_duration(dispatcher: str, duration: float) -> None:
    """Record how long one dispatcher tick took, in seconds."""
    prometheus.outbox_dispatch_duration_seconds.labels(dispatcher=dispatcher).observe(duration)


def update_outbox_status_counts(counts: Mapping[str, int]) -> None:
    """Set the outbox_messages gauge from a status -> count mapping.

    Example:
            update_outbox_status_counts({"pending": 3, "processed": 10, "failed": 1})
    """
    for status, count in counts.items():
        prometheus.outbox_messages.labels(status=str(status)).set(count)


# ============================================================================
# Circuit Breaker Tracking
# ============================================================================


def update_circuit_breaker_state(circuit_name: str, state: str) -> None:
    """Update circuit breaker state gauge.

    Args:
        circuit_name: Name of the circuit breaker
        state: Current state ('closed', 'half_open', 'open')
    """
    state_map = {"closed": 0, "half_open": 1, "open": 2}
    prometheus.circuit_breaker_state.labels(circuit_name=circuit_name).set(
        state_map.get(state, 0)
    )


def track_circuit_breaker_failure(circuit_name: str) -> None:
    """Track a counted circuit breaker failure."""
    prometheus.circuit_breaker_failures_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_success(circuit_name: str) -> None:
    """Track a circuit breaker success."""
    prometheus.circuit_breaker_successes_total.labels(circuit_name=circuit_name).inc()


def track_circuit_breaker_state_change(circuit_name: str, from_state: str, to_state: str) -> None:
    """Track a circuit breaker state change.

    Example:
            track_circuit_breaker_state_change("event-bus.publish", "closed", "open")
    """
    prometheus.circuit_breaker_state_changes_total.labels(
        circuit_name=circuit_name,
        from_state=from_state,
        to_state=to_state,
    ).inc()


def track_circuit_breaker_rejected(circuit_name: str) -> None:
    """Track a request rejected by an open circuit."""
    prometheus.circuit_breaker_rejected_total.labels(circuit_name=circuit_name).inc()


# ============================================================================
# Retry Tracking
# ============================================================================


def track_retry_attempt(operation: str, attempt_number: int) -> None:
    """Track a retry attempt.

    Args:
        operation: Name of the retried operation
        attempt_number: Which attempt this is (2 for the first retry)
    """
    prometheus.retry_attempts_total.labels(
        operation=operation,
        attempt_number=str(attempt_number),
    ).inc()


def track_retry_exhausted(operation: str) -> None:
    """Track when all retry attempts are exhausted."""
    prometheus.retry_exhausted_total.labels(operation=operation).inc()


def track_retry_success(operation: str, attempts_needed: int) -> None:
    """Track an operation that succeeded after at least one retry."""
    prometheus.retry_success_after_failure_total.labels(
        operation=operation,
        attempts_needed=str(attempts_needed),
    ).inc()
