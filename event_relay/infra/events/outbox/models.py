"""OutboxMessage SQLAlchemy model for the transactional outbox pattern.

Rows are inserted in the same transaction as the domain change that produced
them, then relayed to the event bus by the dispatcher. Topic and payload are
write-once; only ``status``, ``attempt_count``, ``next_attempt_at`` and
``updated_at`` change after creation.
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from typing import Any

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, Integer, String
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column

from event_relay.core.database.base import Base, TimestampMixin, UUIDv7PKMixin


class OutboxStatus(StrEnum):
    """Lifecycle of an outbox message.

    ``pending`` is the only non-terminal status; a message moves to
    ``processed`` or ``failed`` exactly once.
    """

    PENDING = "pending"
    PROCESSED = "processed"
    FAILED = "failed"


class OutboxMessage(Base, UUIDv7PKMixin, TimestampMixin):
    """Outbox row awaiting (or done with) delivery to the event bus.

    Attributes:
        id: UUID v7 primary key (time-sortable)
        topic: Destination channel, used as the routing key
        payload: JSON value passed through to the bus unchanged
        status: pending | processed | failed
        attempt_count: Number of failed publish attempts
        next_attempt_at: Earliest time of the next publish attempt (NULL = due now)
    """

    __tablename__ = "outbox_messages"

    topic: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
        comment="Destination topic / routing key",
    )
    payload: Mapped[Any] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"),
        nullable=False,
        comment="Event payload, serialized at enqueue time",
    )
    status: Mapped[str] = mapped_column(
        String(16),
        nullable=False,
        default=OutboxStatus.PENDING.value,
        server_default=OutboxStatus.PENDING.value,
        index=True,
        comment="pending | processed | failed",
    )
    attempt_count: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
        default=0,
        server_default="0",
        comment="Number of failed publish attempts",
    )
    next_attempt_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
        index=True,
        comment="Earliest time of the next publish attempt",
    )

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'processed', 'failed')",
            name="status_valid",
        ),
        CheckConstraint("attempt_count >= 0", name="attempt_count_non_negative"),
        # Due-query: pending rows whose retry time has passed, oldest first
        Index("ix_outbox_messages_due", "status", "next_attempt_at", "created_at"),
    )

    def __repr__(self) -> str:
        return (
            f"OutboxMessage("
            f"id={self.id}, "
            f"topic={self.topic!r}, "
            f"status={self.status}, "
            f"attempt_count={self.attempt_count}"
            f")"
        )


__all__ = ["OutboxMessage", "OutboxStatus"]
