"""Outbox relay commands.

- run            - Start the relay worker (runs until SIGINT/SIGTERM)
- dispatch-once  - Run a single dispatch tick and exit
- stats          - Count messages per status
- failed         - List parked messages
"""

import json
import sys

import click

from event_relay.cli.utils import coro, error, header, info, run_async, success, table, warning
from event_relay.core.settings import get_settings
from event_relay.infra.events.outbox import OutboxStatus, OutboxStoreError
from event_relay.utils.retry import RetryError
from event_relay.worker import relay_context, run_worker, store_context

# Database unreachable or unconfigured, broker unreachable, store failure
_STARTUP_ERRORS = (ConnectionError, OutboxStoreError, RetryError, ValueError)


@click.group(name="outbox")
def outbox() -> None:
    """Transactional outbox relay commands."""


@outbox.command(name="run")
def run() -> None:
    """Start the relay worker until interrupted."""
    try:
        run_async(run_worker(get_settings()))
    except _STARTUP_ERRORS as e:
        error(f"Relay worker failed to start: {e}")
        sys.exit(1)


@outbox.command(name="dispatch-once")
@coro
async def dispatch_once() -> None:
    """Relay every due message once, then exit."""
    try:
        async with relay_context(get_settings()) as dispatcher:
            result = await dispatcher.dispatch_once()
    except _STARTUP_ERRORS as e:
        error(f"Dispatch failed: {e}")
        sys.exit(1)

    if result.fetched == 0:
        info("No due messages")
        return

    click.echo(
        f"fetched={result.fetched} published={result.published} retried={result.retried} "
        f"parked={result.parked} skipped={result.skipped} errors={result.errors} "
        f"duration={result.duration:.3f}s"
    )
    if result.retried or result.parked or result.errors:
        warning("Some messages were not published")
    else:
        success(f"Published {result.published} message(s)")


@outbox.command(name="stats")
@click.option("--json", "as_json", is_flag=True, help="Output counts as JSON")
@coro
async def stats(as_json: bool) -> None:
    """Show the number of outbox messages per status."""
    try:
        async with store_context(get_settings()) as store:
            counts = await store.count_by_status()
    except _STARTUP_ERRORS as e:
        error(f"Failed to read outbox: {e}")
        sys.exit(1)

    if as_json:
        click.echo(json.dumps({status.value: count for status, count in counts.items()}))
        return

    header("Outbox Messages")
    for status in OutboxStatus:
        click.echo(f"  {status.value:<10} {counts.get(status, 0)}")

    if counts.get(OutboxStatus.FAILED, 0):
        warning("Parked messages need attention: event-relay outbox failed")


@outbox.command(name="failed")
@click.option("--limit", default=50, show_default=True, type=click.IntRange(min=1))
@click.option(
    "--format",
    "output_format",
    type=click.Choice(["table", "json"]),
    default="table",
    show_default=True,
)
@coro
async def failed(limit: int, output_format: str) -> None:
    """List parked messages, most recently failed first."""
    try:
        async with store_context(get_settings()) as store:
            messages = await store.list_failed(limit=limit)
    except _STARTUP_ERRORS as e:
        error(f"Failed to read outbox: {e}")
        sys.exit(1)

    rows = [message.to_dict() for message in messages]
    if output_format == "json":
        click.echo(json.dumps(rows, indent=2))
        return

    if not rows:
        success("No parked messages")
        return

    header(f"Parked Messages ({len(rows)})")
    table(rows, ["id", "topic", "attempt_count", "updated_at"])
