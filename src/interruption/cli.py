"""Interruption controller CLI.

Usage:
    interruption-controller run                      # Run the controller
    interruption-controller run --config ctl.yaml    # Run with a YAML config file
    interruption-controller check-config             # Validate configuration
    interruption-controller classify event.json      # Classify a payload
    cat event.json | interruption-controller classify -
"""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path
from typing import TextIO

import click

from .actions import resolve_action
from .config import Config, ConfigurationError
from .main import main as run_controller
from .messages import ClassificationError, classify


def _load_config(config_path: Path | None) -> Config:
    try:
        if config_path is not None:
            return Config.from_file(config_path)
        return Config.from_env()
    except ConfigurationError as e:
        raise click.ClickException(str(e)) from e


# =============================================================================
# Main CLI Group
# =============================================================================


@click.group()
@click.version_option(version="0.1.0", prog_name="interruption-controller")
def cli() -> None:
    """Interruption controller.

    Consumes spot interruption, rebalance, state-change and scheduled
    maintenance events from a queue and removes the affected claims.
    """
    pass


@cli.command()
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with configuration keys (environment variables take precedence).",
)
def run(config_path: Path | None) -> None:
    """Run the controller until SIGTERM or SIGINT."""
    config = _load_config(config_path)
    sys.exit(asyncio.run(run_controller(config)))


@cli.command("check-config")
@click.option(
    "--config",
    "config_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="YAML file with configuration keys.",
)
def check_config(config_path: Path | None) -> None:
    """Validate configuration and print the effective values."""
    config = _load_config(config_path)
    click.echo(f"queue:                   {config.queue_name}")
    click.echo(f"region:                  {config.region or '(sdk default)'}")
    click.echo(f"queue wait:              {config.queue_wait_seconds}s")
    click.echo(f"visibility timeout:      {config.queue_visibility_timeout_seconds}s")
    click.echo(f"reconcile timeout:       {config.reconcile_timeout_seconds}s")
    click.echo(f"error retry:             {config.error_retry_seconds}s")
    click.echo(f"offering ttl:            {config.unavailable_offerings_ttl_seconds}s")
    click.echo(f"metrics port:            {config.metrics_port or 'disabled'}")
    click.echo(f"cluster client:          {config.cluster_client or '(not set)'}")
    click.secho("Configuration is valid", fg="green")


@cli.command("classify")
@click.argument("payload", type=click.File("r"))
def classify_command(payload: TextIO) -> None:
    """Classify a queue payload and print the resulting notification.

    PAYLOAD is a file path, or - to read from stdin.
    """
    body = payload.read()
    try:
        notification = classify(body)
    except ClassificationError as e:
        raise click.ClickException(f"Classification failed: {e}") from e

    output = notification.model_dump(mode="json")
    output["action"] = resolve_action(notification.kind).value
    click.echo(json.dumps(output, indent=2))


if __name__ == "__main__":
    cli()
