"""Infrastructure adapters: outbox, messaging, resilience, metrics and logging."""
