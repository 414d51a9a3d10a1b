"""CLI utilities for running async operations and formatting output."""

from event_relay.cli.utils.async_runner import coro, run_async
from event_relay.cli.utils.formatters import (
    error,
    header,
    info,
    section,
    success,
    table,
    warning,
)

__all__ = [
    "coro",
    "error",
    "header",
    "info",
    "run_async",
    "section",
    "success",
    "table",
    "warning",
]
