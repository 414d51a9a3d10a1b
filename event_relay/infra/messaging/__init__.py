"""Messaging infrastructure (RabbitMQ via FastStream)."""

from __future__ import annotations

from event_relay.infra.messaging.broker import (
    EventBusClient,
    EventBusError,
    RabbitEventBusClient,
    build_exchange,
    close_broker,
    connect_broker,
    create_rabbit_broker,
)

__all__ = [
    "EventBusClient",
    "EventBusError",
    "RabbitEventBusClient",
    "build_exchange",
    "close_broker",
    "connect_broker",
    "create_rabbit_broker",
]
