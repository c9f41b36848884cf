"""Run command for the apisync CLI.

Commands:
- run: Run the push, pull and delete jobs periodically
"""

from __future__ import annotations

import logging
import time

import click

from apisync.cli.config import get_config_dir, open_service
from apisync.scheduler import (
    DEFAULT_DELETE_INTERVAL,
    DEFAULT_PULL_INTERVAL,
    DEFAULT_PUSH_INTERVAL,
    SyncScheduler,
)


@click.command()
@click.option("--push-interval", default=DEFAULT_PUSH_INTERVAL, show_default=True, help="Seconds between push runs.")
@click.option("--pull-interval", default=DEFAULT_PULL_INTERVAL, show_default=True, help="Seconds between pull runs.")
@click.option(
    "--delete-interval", default=DEFAULT_DELETE_INTERVAL, show_default=True, help="Seconds between delete runs."
)
@click.option("--once", is_flag=True, help="Run every job once and exit.")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def run(push_interval: int, pull_interval: int, delete_interval: int, once: bool, verbose: bool) -> None:
    """Run the sync jobs until interrupted."""
    from apisync.core.log import setup_logging

    get_config_dir().mkdir(parents=True, exist_ok=True)
    setup_logging(logging.DEBUG if verbose else logging.INFO, get_config_dir() / "apisync.log")

    service = open_service()
    scheduler = SyncScheduler(service, push_interval, pull_interval, delete_interval)
    try:
        if once:
            scheduler.run_now()
            return

        scheduler.start()
        click.echo("Sync running. Press Ctrl+C to stop.")
        try:
            while True:
                time.sleep(1)
        except KeyboardInterrupt:
            click.echo("\nStopping...")
        finally:
            scheduler.stop()
    finally:
        service.close()
