"""Repository for OutboxMessage SQL operations.

Status writes are conditional updates keyed on the current status (and
attempt count), so two dispatchers racing on the same row produce at most one
effective transition. The affected row count tells the caller whether its
write won.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, or_, select, update

from event_relay.core.database.base import generate_uuid7
from event_relay.core.database.repository import BaseRepository
from event_relay.infra.events.outbox.models import OutboxMessage, OutboxStatus

if TYPE_CHECKING:
    import uuid
    from collections.abc import Sequence

    from sqlalchemy.ext.asyncio import AsyncSession


class OutboxRepository(BaseRepository[OutboxMessage]):
    """Specialized queries for the outbox dispatcher and operators."""

    def __init__(self) -> None:
        super().__init__(OutboxMessage)

    async def enqueue(
        self,
        session: AsyncSession,
        topic: str,
        payload: Any,
    ) -> OutboxMessage:
        """Insert a pending message in the caller's transaction."""
        message = OutboxMessage(
            id=generate_uuid7(),
            topic=topic,
            payload=payload,
            status=OutboxStatus.PENDING.value,
            attempt_count=0,
            next_attempt_at=None,
        )
        return await self.create(session, message)

    async def fetch_due(
        self,
        session: AsyncSession,
        *,
        now: datetime | None = None,
        limit: int | None = None,
    ) -> Sequence[OutboxMessage]:
        """Fetch messages that are due for a publish attempt.

        A message is due when it is pending and its ``next_attempt_at`` is
        NULL or not in the future. Results are ordered oldest first.

        Args:
            session: Database session
            now: Reference time (defaults to the current UTC time)
            limit: Maximum rows to return, None for all

        Returns:
            Sequence of due OutboxMessage rows
        """
        now = now or datetime.now(UTC)
        stmt = (
            select(OutboxMessage)
            .where(
                OutboxMessage.status == OutboxStatus.PENDING.value,
                or_(
                    OutboxMessage.next_attempt_at.is_(None),
                    OutboxMessage.next_attempt_at <= now,
                ),
            )
            .order_by(OutboxMessage.created_at.asc(), OutboxMessage.id.asc())
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        result = await session.execute(stmt)
        return result.scalars().all()

    async def mark_processed(
        self,
        session: AsyncSession,
        message_id: uuid.UUID,
        *,
        attempt_count: int | None = None,
        now: datetime | None = None,
    ) -> bool:
        """Move a pending message to ``processed``.

        Args:
            session: Database session
            message_id: Message to update
            attempt_count: When given, only update if the row still has this count
            now: Update timestamp

        Returns:
            True if this call performed the transition, False if the message
            was already terminal, was updated by someone else, or is unknown
        """
        now = now or datetime.now(UTC)
        stmt = update(OutboxMessage).where(
            OutboxMessage.id == message_id,
            OutboxMessage.status == OutboxStatus.PENDING.value,
        )
        if attempt_count is not None:
            stmt = stmt.where(OutboxMessage.attempt_count == attempt_count)
        stmt = stmt.values(
            status=OutboxStatus.PROCESSED.value,
            updated_at=now,
        ).execution_options(synchronize_session=False)

        result = await session.execute(stmt)
        return result.rowcount > 0

    async def mark_failed(
        self,
        session: AsyncSession,
        message_id: uuid.UUID,
        *,
        current_attempt_count: int,
        max_retries: int,
        retry_delay: float,
        now: datetime | None = None,
    ) -> bool:
        """Record one failed publish attempt.

        The attempt count becomes ``current_attempt_count + 1``. Once it
        reaches ``max_retries`` the message is parked as ``failed`` with no
        further retry time; otherwise it stays pending until
        ``now + retry_delay``.

        Args:
            session: Database session
            message_id: Message to update
            current_attempt_count: Attempt count the caller observed
            max_retries: Retry ceiling
            retry_delay: Backoff in seconds for the next attempt
            now: Update timestamp

        Returns:
            True if this call performed the update, False if the row was no
            longer pending with the observed attempt count
        """
        now = now or datetime.now(UTC)
        new_count = current_attempt_count + 1

        if new_count >= max_retries:
            values: dict[str, Any] = {
                "status": OutboxStatus.FAILED.value,
                "attempt_count": new_count,
                "next_attempt_at": None,
                "updated_at": now,
            }
        else:
            values = {
                "attempt_count": new_count,
                "next_attempt_at": now + timedelta(seconds=retry_delay),
                "updated_at": now,
            }

        stmt = (
            update(OutboxMessage)
            .where(
                OutboxMessage.id == message_id,
                OutboxMessage.status == OutboxStatus.PENDING.value,
                OutboxMessage.attempt_count == current_attempt_count,
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        result = await session.execute(stmt)
        return result.rowcount > 0

    async def count_by_status(self, session: AsyncSession) -> dict[OutboxStatus, int]:
        """Count messages per status, including statuses with no rows."""
        stmt = select(OutboxMessage.status, func.count()).group_by(OutboxMessage.status)
        result = await session.execute(stmt)

        counts = dict.fromkeys(OutboxStatus, 0)
        for status, count in result.all():
            counts[OutboxStatus(status)] = count
        return counts

    async def list_failed(
        self,
        session: AsyncSession,
        *,
        limit: int = 50,
    ) -> Sequence[OutboxMessage]:
        """Parked messages awaiting manual inspection, most recently failed first."""
        stmt = (
            select(OutboxMessage)
            .where(OutboxMessage.status == OutboxStatus.FAILED.value)
            .order_by(OutboxMessage.updated_at.desc())
            .limit(limit)
        )
        result = await session.execute(stmt)
        return result.scalars().all()


__all__ = ["OutboxRepository"]
