"""Prometheus metric definitions on a dedicated registry."""

from __future__ import annotations

from prometheus_client import CollectorRegistry, Counter, Gauge, Histogram

# Custom registry so tests and embedding applications control exposition
REGISTRY = CollectorRegistry()

# Covers dispatch ticks from 5ms to 30s
DISPATCH_DURATION_BUCKETS = (
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
    10.0,
    30.0,
)

# ============================================================================
# Outbox Metrics
# ============================================================================

outbox_messages_published_total = Counter(
    "outbox_messages_published_total",
    "Total outbox messages published and marked processed",
    ["dispatcher", "topic"],
    registry=REGISTRY,
)

outbox_publish_failures_total = Counter(
    "outbox_publish_failures_total",
    "Total failed publish attempts",
    ["dispatcher", "topic", "reason"],
    registry=REGISTRY,
)

outbox_messages_parked_total = Counter(
    "outbox_messages_parked_total",
    "Total outbox messages moved to the terminal failed status",
    ["dispatcher", "topic"],
    registry=REGISTRY,
)

outbox_store_errors_total = Counter(
    "outbox_store_errors_total",
    "Total outbox store operation errors",
    ["dispatcher", "operation"],
    registry=REGISTRY,
)

outbox_dispatch_duration_seconds = Histogram(
    "outbox_dispatch_duration_seconds",
    "Duration of one dispatcher tick in seconds",
    ["dispatcher"],
    buckets=DISPATCH_DURATION_BUCKETS,
    registry=REGISTRY,
)

outbox_messages = Gauge(
    "outbox_messages",
    "Outbox messages by status at last observation",
    ["status"],
    registry=REGISTRY,
)

# ============================================================================
# Circuit Breaker Metrics
# ============================================================================

circuit_breaker_state = Gauge(
    "circuit_breaker_state",
    "Circuit breaker state (0=closed, 1=half_open, 2=open)",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_failures_total = Counter(
    "circuit_breaker_failures_total",
    "Total number of circuit breaker failures",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_successes_total = Counter(
    "circuit_breaker_successes_total",
    "Total number of circuit breaker successes",
    ["circuit_name"],
    registry=REGISTRY,
)

circuit_breaker_state_changes_total = Counter(
    "circuit_breaker_state_changes_total",
    "Total number of circuit breaker state changes",
    ["circuit_name", "from_state", "to_state"],
    registry=REGISTRY,
)

circuit_breaker_rejected_total = Counter(
    "circuit_breaker_rejected_total",
    "Total number of requests rejected by circuit breaker",
    ["circuit_name"],
    registry=REGISTRY,
)

# ============================================================================
# Retry Metrics
# ============================================================================

retry_attempts_total = Counter(
    "retry_attempts_total",
    "Total number of retry attempts",
    ["operation", "attempt_number"],
    registry=REGISTRY,
)

retry_exhausted_total = Counter(
    "retry_exhausted_total",
    "Total number of operations that exhausted all retries",
    ["operation"],
    registry=REGISTRY,
)

retry_success_after_failure_total = Counter(
    "retry_success_after_failure_total",
    "Total number of operations that succeeded after retry",
    ["operation", "attempts_needed"],
    registry=REGISTRY,
)

# ============================================================================
# Database Metrics
# ============================================================================

DATABASE_LATENCY_BUCKETS = (
    0.001,
    0.005,
    0.01,
    0.025,
    0.05,
    0.1,
    0.25,
    0.5,
    1.0,
    2.5,
    5.0,
)

database_query_duration_seconds = Histogram(
    "database_query_duration_seconds",
    "Database query duration in seconds",
    ["operation"],
    buckets=DATABASE_LATENCY_BUCKETS,
    registry=REGISTRY,
)
