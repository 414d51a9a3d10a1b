"""Circuit breaker inspection commands."""

import json

import click

from event_relay.cli.utils import header, info, section
from event_relay.core.settings import get_settings

# Counters live in the worker process; they are exported there as the
# circuit_breaker_* Prometheus metrics.
_CONFIG_KEYS = (
    "failure_threshold",
    "volume_threshold",
    "success_threshold",
    "reset_timeout",
    "request_timeout",
)


@click.group(name="breakers")
def breakers() -> None:
    """Circuit breaker commands."""


@breakers.command(name="list")
@click.option("--json", "as_json", is_flag=True, help="Output configuration as JSON")
def list_breakers(as_json: bool) -> None:
    """Show the configured publish breaker's thresholds.

    This is configuration only; live state and counters of a running worker
    are exported as circuit_breaker_* metrics.
    """
    settings = get_settings().breaker
    configured = []
    if settings.enabled:
        kwargs = settings.to_breaker_kwargs()
        configured.append({"name": settings.name} | {key: kwargs[key] for key in _CONFIG_KEYS})

    if as_json:
        click.echo(json.dumps(configured, indent=2))
        return

    if not configured:
        info("No circuit breakers configured (CIRCUIT_BREAKER_ENABLED=false)")
        return

    header("Circuit Breaker Configuration")
    for entry in configured:
        section(entry["name"])
        for key in _CONFIG_KEYS:
            click.echo(f"  {key:<22} {entry[key]}")
    info("Live state is exported by the worker as circuit_breaker_* metrics")
