"""Structured logging for the relay worker and CLI."""

from __future__ import annotations

from event_relay.infra.logging.config import configure_logging, setup_logging, shutdown
from event_relay.infra.logging.formatters import JSONFormatter

__all__ = ["JSONFormatter", "configure_logging", "setup_logging", "shutdown"]
