"""Reliable event delivery: transactional outbox, dispatcher and circuit breaker."""

__version__ = "0.1.0"
