"""Event bus client backed by a FastStream RabbitBroker.

The broker is created explicitly at process start and injected into the
client, so nothing connects at import time:

    broker = create_rabbit_broker(settings)
    await connect_broker(broker, settings)
    bus = RabbitEventBusClient(broker, exchange=build_exchange(settings))
    await bus.publish("orders.created", {"order_id": 1})
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

from faststream.rabbit import ExchangeType, RabbitBroker, RabbitExchange

from event_relay.core.settings import get_rabbit_settings

if TYPE_CHECKING:
    from event_relay.core.settings import RabbitSettings

logger = logging.getLogger(__name__)


class EventBusError(Exception):
    """Raised when a message cannot be handed to the event bus."""


@runtime_checkable
class EventBusClient(Protocol):
    """Publish primitive used by the outbox dispatcher.

    Implementations raise on any transport failure, including timeouts.
    """

    async def publish(
        self,
        topic: str,
        payload: Any,
        *,
        message_id: str | None = None,
    ) -> None: ...


def build_exchange(settings: RabbitSettings | None = None) -> RabbitExchange:
    """Durable exchange that outbox topics are routed through."""
    settings = settings or get_rabbit_settings()
    return RabbitExchange(
        name=settings.exchange_name,
        type=ExchangeType(settings.exchange_type),
        durable=True,
        auto_delete=False,
    )


def create_rabbit_broker(settings: RabbitSettings | None = None) -> RabbitBroker:
    """Create (but do not connect) a RabbitBroker from settings.

    Raises:
        ValueError: If RabbitMQ is disabled.
    """
    settings = settings or get_rabbit_settings()
    return RabbitBroker(
        settings.get_url(),
        graceful_timeout=settings.graceful_timeout,
        logger=logger,
    )


async def connect_broker(broker: RabbitBroker, settings: RabbitSettings | None = None) -> None:
    """Connect the broker, bounded by the configured connection timeout.

    Raises:
        ConnectionError: If the connection does not complete in time.
    """
    settings = settings or get_rabbit_settings()

    if getattr(broker, "running", False):
        logger.debug("RabbitMQ broker already running")
        return

    logger.info(
        "Starting RabbitMQ broker",
        extra={
            "host": settings.host,
            "port": settings.port,
            "connection_timeout": settings.connection_timeout,
        },
    )
    try:
        await asyncio.wait_for(broker.start(), timeout=settings.connection_timeout)
    except TimeoutError:
        error_msg = f"RabbitMQ connection timeout after {settings.connection_timeout}s"
        logger.error(
            error_msg,
            extra={"host": settings.host, "connection_timeout": settings.connection_timeout},
        )
        raise ConnectionError(error_msg) from None
    logger.info("RabbitMQ broker started successfully")


async def close_broker(broker: RabbitBroker) -> None:
    """Close the broker connection, logging rather than raising on failure."""
    logger.info("Stopping RabbitMQ broker")
    try:
        await broker.close()
    except Exception as e:
        logger.warning("Error stopping RabbitMQ broker", extra={"error": str(e)})
        return
    logger.info("RabbitMQ broker stopped successfully")


class RabbitEventBusClient:
    """EventBusClient publishing to a RabbitMQ exchange.

    The outbox topic becomes the routing key and the outbox message id, when
    given, becomes the AMQP message id so consumers can deduplicate.
    """

    def __init__(
        self,
        broker: RabbitBroker,
        *,
        exchange: RabbitExchange | None = None,
        persistent: bool = True,
        timeout: float | None = None,
    ) -> None:
        self._broker = broker
        self._exchange = exchange or build_exchange()
        self._persistent = persistent
        self._timeout = timeout

    @classmethod
    def from_settings(
        cls,
        broker: RabbitBroker,
        settings: RabbitSettings | None = None,
    ) -> RabbitEventBusClient:
        settings = settings or get_rabbit_settings()
        return cls(
            broker,
            exchange=build_exchange(settings),
            persistent=settings.persistent,
            timeout=settings.publish_timeout,
        )

    @property
    def exchange(self) -> RabbitExchange:
        return self._exchange

    async def publish(
        self,
        topic: str,
        payload: Any,
        *,
        message_id: str | None = None,
    ) -> None:
        """Publish payload to the exchange with topic as routing key.

        Raises:
            EventBusError: If the broker is not connected or the publish fails.
        """
        if not getattr(self._broker, "running", False):
            msg = "RabbitMQ broker is not connected"
            raise EventBusError(msg)

        try:
            await self._broker.publish(
                payload,
                exchange=self._exchange,
                routing_key=topic,
                message_id=message_id,
                persist=self._persistent,
                timeout=self._timeout,
            )
        except Exception as e:
            raise EventBusError(f"Failed to publish to {topic!r}: {e}") from e

        logger.debug(
            "Event published",
            extra={
                "topic": topic,
                "message_id": message_id,
                "exchange": self._exchange.name,
            },
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
