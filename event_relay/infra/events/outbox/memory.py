"""In-memory outbox store for tests and local runs."""

from __future__ import annotations

import asyncio
import copy
import dataclasses
import uuid
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from event_relay.core.database.base import generate_uuid7, utcnow
from event_relay.infra.events.outbox.backoff import DEFAULT_MAX_DELAY, compute_backoff
from event_relay.infra.events.outbox.models import OutboxStatus
from event_relay.infra.events.outbox.store import (
    MessageId,
    OutboxMessageData,
    OutboxStore,
    coerce_message_id,
)
from event_relay.infra.events.outbox.writer import serialize_payload

if TYPE_CHECKING:
    from collections.abc import Callable


def _snapshot(message: OutboxMessageData) -> OutboxMessageData:
    return dataclasses.replace(message, payload=copy.deepcopy(message.payload))


class InMemoryOutboxStore(OutboxStore):
    """Dict-backed outbox store.

    Status writes are guarded by an asyncio.Lock and follow the same
    conditional-update rules as the SQL store, so dispatcher behaviour is
    identical against either implementation.

    Every read returns a copy of the stored payload, so a caller mutating
    what it was handed never changes the message that is retried.

    Example:
        store = InMemoryOutboxStore()
        await store.enqueue("orders.created", {"order_id": 1})
    """

    def __init__(
        self,
        *,
        clock: Callable[[], datetime] = utcnow,
        max_delay: float | None = DEFAULT_MAX_DELAY,
        jitter: bool = False,
        jitter_ratio: float = 0.1,
    ) -> None:
        self._messages: dict[uuid.UUID, OutboxMessageData] = {}
        self._lock = asyncio.Lock()
        self._clock = clock
        self.max_delay = max_delay
        self.jitter = jitter
        self.jitter_ratio = jitter_ratio

    def add(
        self,
        topic: str,
        payload: Any,
        *,
        message_id: uuid.UUID | None = None,
        status: OutboxStatus = OutboxStatus.PENDING,
        attempt_count: int = 0,
        next_attempt_at: datetime | None = None,
    ) -> OutboxMessageData:
        """Insert a message in an arbitrary state (test setup)."""
        now = self._clock()
        message = OutboxMessageData(
            id=message_id or generate_uuid7(),
            topic=topic,
            payload=serialize_payload(payload),
            status=status,
            attempt_count=attempt_count,
            next_attempt_at=next_attempt_at,
            created_at=now,
            updated_at=now,
        )
        self._messages[message.id] = message
        return _snapshot(message)

    def get(self, message_id: MessageId) -> OutboxMessageData | None:
        message = self._messages.get(coerce_message_id(message_id))
        return None if message is None else _snapshot(message)

    async def enqueue(self, topic: str, payload: Any) -> OutboxMessageData:
        if not topic or not topic.strip():
            msg = "Outbox topic must be a non-empty string"
            raise ValueError(msg)
        async with self._lock:
            return self.add(topic, payload)

    async def get_due_messages(self, limit: int | None = None) -> list[OutboxMessageData]:
        now = self._clock()
        async with self._lock:
            due = sorted(
                (m for m in self._messages.values() if m.is_due(now)),
                key=lambda m: (m.created_at, m.id),
            )
        if limit is not None:
            due = due[:limit]
        return [_snapshot(m) for m in due]

    async def mark_success(
        self,
        message_id: MessageId,
        *,
        attempt_count: int | None = None,
    ) -> bool:
        key = coerce_message_id(message_id)
        async with self._lock:
            message = self._messages.get(key)
            if message is None or message.status != OutboxStatus.PENDING:
                return False
            if attempt_count is not None and message.attempt_count != attempt_count:
                return False
            self._messages[key] = dataclasses.replace(
                message,
                status=OutboxStatus.PROCESSED,
                updated_at=self._clock(),
            )
            return True

    async def mark_failure(
        self,
        message_id: MessageId,
        current_attempt_count: int,
        max_retries: int,
        base_delay: float,
    ) -> bool:
        key = coerce_message_id(message_id)
        new_count = current_attempt_count + 1
        async with self._lock:
            message = self._messages.get(key)
            if (
                message is None
                or message.status != OutboxStatus.PENDING
                or message.attempt_count != current_attempt_count
            ):
                return False

            now = self._clock()
            if new_count >= max_retries:
                updated = dataclasses.replace(
                    message,
                    status=OutboxStatus.FAILED,
                    attempt_count=new_count,
                    next_attempt_at=None,
                    updated_at=now,
                )
            else:
                delay = compute_backoff(
                    new_count,
                    base_delay,
                    max_delay=self.max_delay,
                    jitter=self.jitter,
                    jitter_ratio=self.jitter_ratio,
                )
                updated = dataclasses.replace(
                    message,
                    attempt_count=new_count,
                    next_attempt_at=now + timedelta(seconds=delay),
                    updated_at=now,
                )
            self._messages[key] = updated
            return True

    async def count_by_status(self) -> dict[OutboxStatus, int]:
        counts = dict.fromkeys(OutboxStatus, 0)
        async with self._lock:
            for message in self._messages.values():
                counts[message.status] += 1
        return counts

    async def list_failed(self, limit: int = 50) -> list[OutboxMessageData]:
        async with self._lock:
            failed = [m for m in self._messages.values() if m.status == OutboxStatus.FAILED]
        failed.sort(key=lambda m: m.updated_at, reverse=True)
        return [_snapshot(m) for m in failed[:limit]]


__all__ = ["InMemoryOutboxStore"]
