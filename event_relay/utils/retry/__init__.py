"""Retry helpers with exponential backoff."""

from __future__ import annotations

from event_relay.utils.retry.decorator import retry
from event_relay.utils.retry.exceptions import RetryError, RetryStatistics
from event_relay.utils.retry.strategies import RetryStrategy

__all__ = ["RetryError", "RetryStatistics", "RetryStrategy", "retry"]
