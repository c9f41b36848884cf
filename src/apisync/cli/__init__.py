"""Command-line interface for apisync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Save connection and mapping settings
- mappings: List and validate mappings
- read-object: Print a mapped remote record
- push-queue: Process push queues
- requeue: Queue mapped entities for a re-push
- push-unmapped: Push entities without mapped objects
- pull-query: Queue updated remote records
- pull-record: Queue a single remote record
- pull-process: Apply queued remote records
- pull-reset: Reset pull timestamps
- pull-set: Set pull timestamps
- delete-orphans: Delete entities whose remote records are gone
- run: Run the periodic jobs
"""

from __future__ import annotations

import click

from apisync.cli.config import (
    get_config_dir,
    get_config_file,
    load_config,
    save_config,
)
from apisync.cli.configure import configure, mappings, read_object
from apisync.cli.pull import (
    delete_orphans,
    pull_process,
    pull_query,
    pull_record,
    pull_reset,
    pull_set,
)
from apisync.cli.push import push_queue, push_unmapped, requeue
from apisync.cli.run import run


@click.group()
@click.version_option(package_name="apisync")
def cli() -> None:
    """apisync - Bidirectional sync between local entities and an OData service."""


# Setup commands
cli.add_command(configure)
cli.add_command(mappings)
cli.add_command(read_object)

# Push commands
cli.add_command(push_queue)
cli.add_command(requeue)
cli.add_command(push_unmapped)

# Pull commands
cli.add_command(pull_query)
cli.add_command(pull_record)
cli.add_command(pull_process)
cli.add_command(pull_reset)
cli.add_command(pull_set)
cli.add_command(delete_orphans)

# Scheduler
cli.add_command(run)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "load_config",
    "save_config",
]
