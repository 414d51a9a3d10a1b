"""Main CLI entry point for event-relay management commands."""

import click

from event_relay.cli.commands import breakers, outbox
from event_relay.infra.logging.config import setup_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="event-relay")
@click.pass_context
def cli(ctx: click.Context) -> None:
    """Event Relay CLI - transactional outbox relay to RabbitMQ.

    \b
    Command Groups:
      outbox     Run the relay and inspect the outbox table
      breakers   Inspect circuit breakers

    \b
    Quick Start:
      alembic upgrade head             # Create the outbox table
      event-relay outbox run           # Start the relay worker
      event-relay outbox stats         # Count messages per status
      event-relay outbox failed        # List parked messages
    """
    ctx.ensure_object(dict)


cli.add_command(outbox.outbox)
cli.add_command(breakers.breakers)


def main() -> None:
    """Entry point for CLI."""
    setup_logging()
    cli(obj={})


if __name__ == "__main__":
    main()
