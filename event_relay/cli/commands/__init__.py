"""CLI command modules."""

from event_relay.cli.commands import breakers, outbox

__all__ = ["breakers", "outbox"]
