"""Transactional outbox pattern implementation.

The outbox pattern ensures reliable event publishing by:
1. Writing events to a database table in the same transaction as domain changes
2. Relaying the table asynchronously to the event bus
3. Marking messages processed after publication, or parking them after
   repeated failures

This guarantees at-least-once delivery semantics.
"""

from event_relay.infra.events.outbox.backoff import compute_backoff
from event_relay.infra.events.outbox.dispatcher import (
    DispatcherHandle,
    DispatchResult,
    OutboxDispatcher,
    start_dispatcher,
)
from event_relay.infra.events.outbox.exceptions import OutboxErrorCodes, OutboxStoreError
from event_relay.infra.events.outbox.memory import InMemoryOutboxStore
from event_relay.infra.events.outbox.models import OutboxMessage, OutboxStatus
from event_relay.infra.events.outbox.repository import OutboxRepository
from event_relay.infra.events.outbox.store import (
    OutboxMessageData,
    OutboxStore,
    SQLAlchemyOutboxStore,
)
from event_relay.infra.events.outbox.writer import enqueue_message

__all__ = [
    "DispatchResult",
    "DispatcherHandle",
    "InMemoryOutboxStore",
    "OutboxDispatcher",
    "OutboxErrorCodes",
    "OutboxMessage",
    "OutboxMessageData",
    "OutboxRepository",
    "OutboxStatus",
    "OutboxStore",
    "OutboxStoreError",
    "SQLAlchemyOutboxStore",
    "compute_backoff",
    "enqueue_message",
    "start_dispatcher",
]
