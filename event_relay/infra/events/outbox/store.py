"""Outbox store contract and its SQLAlchemy implementation.

The dispatcher depends only on :class:`OutboxStore`. Implementations must
make ``mark_success`` and ``mark_failure`` conditional on the message still
being pending, so concurrent dispatchers cannot apply two terminal
transitions to the same row.
"""

from __future__ import annotations

import abc
import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy.exc import SQLAlchemyError

from event_relay.infra.events.outbox.backoff import DEFAULT_MAX_DELAY, compute_backoff
from event_relay.infra.events.outbox.exceptions import OutboxErrorCodes, OutboxStoreError
from event_relay.infra.events.outbox.models import OutboxMessage, OutboxStatus
from event_relay.infra.events.outbox.repository import OutboxRepository
from event_relay.infra.events.outbox.writer import enqueue_message

if TYPE_CHECKING:
    from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

logger = logging.getLogger(__name__)

MessageId = uuid.UUID | str


def _as_utc(value: datetime | None) -> datetime | None:
    # SQLite returns naive datetimes; every stored timestamp is UTC
    if value is None or value.tzinfo is not None:
        return value
    return value.replace(tzinfo=UTC)


def coerce_message_id(message_id: MessageId) -> uuid.UUID:
    if isinstance(message_id, uuid.UUID):
        return message_id
    return uuid.UUID(str(message_id))


@dataclass(frozen=True, slots=True)
class OutboxMessageData:
    """Immutable snapshot of an outbox row.

    The dispatcher works with snapshots so no ORM instance outlives the
    session that loaded it.
    """

    id: uuid.UUID
    topic: str
    payload: Any
    status: OutboxStatus
    attempt_count: int
    next_attempt_at: datetime | None
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_model(cls, message: OutboxMessage) -> OutboxMessageData:
        return cls(
            id=message.id,
            topic=message.topic,
            payload=message.payload,
            status=OutboxStatus(message.status),
            attempt_count=message.attempt_count,
            next_attempt_at=_as_utc(message.next_attempt_at),
            created_at=_as_utc(message.created_at),  # type: ignore[arg-type]
            updated_at=_as_utc(message.updated_at),  # type: ignore[arg-type]
        )

    def is_due(self, now: datetime) -> bool:
        """Pending and not scheduled for a later attempt."""
        if self.status != OutboxStatus.PENDING:
            return False
        return self.next_attempt_at is None or self.next_attempt_at <= now

    def to_dict(self) -> dict[str, Any]:
        """JSON-friendly representation for CLI output."""
        return {
            "id": str(self.id),
            "topic": self.topic,
            "payload": self.payload,
            "status": self.status.value,
            "attempt_count": self.attempt_count,
            "next_attempt_at": self.next_attempt_at.isoformat() if self.next_attempt_at else None,
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


class OutboxStore(abc.ABC):
    """Storage contract consumed by the outbox dispatcher."""

    @abc.abstractmethod
    async def get_due_messages(self, limit: int | None = None) -> list[OutboxMessageData]:
        """Return pending messages whose retry time has passed, oldest first."""

    @abc.abstractmethod
    async def mark_success(
        self,
        message_id: MessageId,
        *,
        attempt_count: int | None = None,
    ) -> bool:
        """Mark a pending message processed.

        Idempotent: returns False without raising when the message is
        already processed or failed.
        """

    @abc.abstractmethod
    async def mark_failure(
        self,
        message_id: MessageId,
        current_attempt_count: int,
        max_retries: int,
        base_delay: float,
    ) -> bool:
        """Record a failed publish attempt, parking the message at the ceiling."""

    @abc.abstractmethod
    async def enqueue(self, topic: str, payload: Any) -> OutboxMessageData:
        """Insert a pending message in the store's own transaction."""

    @abc.abstractmethod
    async def count_by_status(self) -> dict[OutboxStatus, int]:
        """Number of messages per status."""

    @abc.abstractmethod
    async def list_failed(self, limit: int = 50) -> list[OutboxMessageData]:
        """Parked messages, most recently failed first."""


class SQLAlchemyOutboxStore(OutboxStore):
    """Outbox store backed by an async SQLAlchemy session factory.

    Every operation runs in its own short transaction. Database errors are
    wrapped in :class:`OutboxStoreError`.

    Example:
        store = SQLAlchemyOutboxStore(session_factory, max_delay=600.0)
        due = await store.get_due_messages(limit=100)
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        *,
        max_delay: float | None = DEFAULT_MAX_DELAY,
        jitter: bool = False,
        jitter_ratio: float = 0.1,
    ) -> None:
        self._session_factory = session_factory
        self._repository = OutboxRepository()
        self.max_delay = max_delay
        self.jitter = jitter
        self.jitter_ratio = jitter_ratio

    async def get_due_messages(self, limit: int | None = None) -> list[OutboxMessageData]:
        try:
            async with self._session_factory() as session, session.begin():
                rows = await self._repository.fetch_due(session, limit=limit)
                return [OutboxMessageData.from_model(row) for row in rows]
        except SQLAlchemyError as e:
            raise OutboxStoreError(
                OutboxErrorCodes.FETCH_FAILED, "Failed to fetch due messages", e
            ) from e

    async def mark_success(
        self,
        message_id: MessageId,
        *,
        attempt_count: int | None = None,
    ) -> bool:
        message_id = coerce_message_id(message_id)
        try:
            async with self._session_factory() as session, session.begin():
                updated = await self._repository.mark_processed(
                    session, message_id, attempt_count=attempt_count
                )
        except SQLAlchemyError as e:
            raise OutboxStoreError(
                OutboxErrorCodes.UPDATE_FAILED,
                f"Failed to mark message {message_id} processed",
                e,
            ) from e

        if not updated:
            logger.debug(
                "Outbox message not pending, success write skipped",
                extra={"message_id": str(message_id)},
            )
        return updated

    async def mark_failure(
        self,
        message_id: MessageId,
        current_attempt_count: int,
        max_retries: int,
        base_delay: float,
    ) -> bool:
        message_id = coerce_message_id(message_id)
        delay = compute_backoff(
            current_attempt_count + 1,
            base_delay,
            max_delay=self.max_delay,
            jitter=self.jitter,
            jitter_ratio=self.jitter_ratio,
        )
        try:
            async with self._session_factory() as session, session.begin():
                updated = await self._repository.mark_failed(
                    session,
                    message_id,
                    current_attempt_count=current_attempt_count,
                    max_retries=max_retries,
                    retry_delay=delay,
                )
        except SQLAlchemyError as e:
            raise OutboxStoreError(
                OutboxErrorCodes.UPDATE_FAILED,
                f"Failed to record failure for message {message_id}",
                e,
            ) from e

        if not updated:
            logger.debug(
                "Outbox message changed concurrently, failure write skipped",
                extra={"message_id": str(message_id), "attempt_count": current_attempt_count},
            )
        return updated

    async def enqueue(self, topic: str, payload: Any) -> OutboxMessageData:
        try:
            async with self._session_factory() as session, session.begin():
                message = await enqueue_message(session, topic, payload)
                return OutboxMessageData.from_model(message)
        except SQLAlchemyError as e:
            raise OutboxStoreError(
                OutboxErrorCodes.SAVE_FAILED, f"Failed to enqueue message on {topic!r}", e
            ) from e

    async def count_by_status(self) -> dict[OutboxStatus, int]:
        try:
            async with self._session_factory() as session:
                return await self._repository.count_by_status(session)
        except SQLAlchemyError as e:
            raise OutboxStoreError(
                OutboxErrorCodes.FETCH_FAILED, "Failed to count outbox messages", e
            ) from e

    async def list_failed(self, limit: int = 50) -> list[OutboxMessageData]:
        try:
            async with self._session_factory() as session:
                rows = await self._repository.list_failed(session, limit=limit)
                return [OutboxMessageData.from_model(row) for row in rows]
        except SQLAlchemyError as e:
            raise OutboxStoreError(
                OutboxErrorCodes.FETCH_FAILED, "Failed to list failed messages", e
            ) from e


__all__ = [
    "MessageId",
    "OutboxMessageData",
    "OutboxStore",
    "SQLAlchemyOutboxStore",
    "coerce_message_id",
]
