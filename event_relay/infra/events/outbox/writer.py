"""Enqueue path used by business transactions.

Usage:
    async with session_factory() as session, session.begin():
        order = Order(...)
        session.add(order)
        await enqueue_message(session, "orders.created", {"order_id": str(order.id)})
    # The order and its event commit (or roll back) together
"""

from __future__ import annotations

import json
import logging
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError

from event_relay.infra.events.outbox.exceptions import OutboxErrorCodes, OutboxStoreError
from event_relay.infra.events.outbox.repository import OutboxRepository

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession

    from event_relay.infra.events.outbox.models import OutboxMessage

logger = logging.getLogger(__name__)

_repository = OutboxRepository()


def serialize_payload(payload: Any) -> Any:
    """Normalize a payload to the JSON value that will be stored.

    Pydantic models are dumped in JSON mode. Anything else must already be
    JSON-serializable (NaN and infinity are rejected).

    Raises:
        OutboxStoreError: SAVE_FAILED if the payload cannot be serialized
    """
    if isinstance(payload, BaseModel):
        payload = payload.model_dump(mode="json")
    try:
        return json.loads(json.dumps(payload, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise OutboxStoreError(
            OutboxErrorCodes.SAVE_FAILED,
            f"Payload of type {type(payload).__name__} is not JSON-serializable",
            e,
        ) from e


async def enqueue_message(session: AsyncSession, topic: str, payload: Any) -> OutboxMessage:
    """Stage a pending outbox message in the caller's transaction.

    The row is flushed but not committed; it becomes visible to the
    dispatcher only when the caller commits.

    Args:
        session: Session of the business transaction
        topic: Destination topic, must be non-empty
        payload: JSON value or pydantic model

    Returns:
        The new OutboxMessage (status pending, attempt_count 0)

    Raises:
        ValueError: If topic is empty
        OutboxStoreError: SAVE_FAILED if serialization or the insert fails
    """
    if not topic or not topic.strip():
        msg = "Outbox topic must be a non-empty string"
        raise ValueError(msg)

    value = serialize_payload(payload)
    try:
        message = await _repository.enqueue(session, topic, value)
    except SQLAlchemyError as e:
        raise OutboxStoreError(
            OutboxErrorCodes.SAVE_FAILED, f"Failed to stage message on {topic!r}", e
        ) from e

    logger.debug(
        "Event staged in outbox",
        extra={"message_id": str(message.id), "topic": topic},
    )
    return message


__all__ = ["enqueue_message", "serialize_payload"]
