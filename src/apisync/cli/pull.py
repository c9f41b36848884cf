"""Pull commands for the apisync CLI.

Commands:
- pull-query: Query updated remote records and queue them for pull
- pull-record: Queue a single mapped remote record for pull
- pull-process: Apply queued remote records
- pull-reset: Forget the pull (or delete) timestamp of mappings
- pull-set: Set the pull (or delete) timestamp of mappings
- delete-orphans: Delete local entities whose remote records are gone
"""

from __future__ import annotations

import sys

import click

from apisync.cli.config import open_service, select_mappings
from apisync.core.dates import parse_timestamp


def _parse_time(value: str | None) -> int:
    """Parse epoch seconds or an ISO 8601 date-time, exiting when invalid."""
    if not value:
        return 0
    if value.isdigit():
        return int(value)
    timestamp = parse_timestamp(value)
    if timestamp is None:
        click.echo(f"Error: Invalid date-time '{value}'.", err=True)
        sys.exit(1)
    return timestamp


@click.command("pull-query")
@click.argument("name", required=False)
@click.option("--where", default="", help="Extra filter clause, e.g. \"Email eq 'a@b.c'\".")
@click.option("--start", default=None, help="Window start (epoch seconds or ISO 8601).")
@click.option("--stop", default=None, help="Window stop (epoch seconds or ISO 8601).")
@click.option("--force-pull", is_flag=True, help="Query every record and pull even if not newer.")
def pull_query(name: str | None, where: str, start: str | None, stop: str | None, force_pull: bool) -> None:
    """Queue updated remote records of mapping NAME, or of every pull mapping."""
    start_time = _parse_time(start)
    stop_time = _parse_time(stop)
    if start_time and stop_time and start_time > stop_time:
        click.echo("Error: Stop date-time must be later than start date-time.", err=True)
        sys.exit(1)
    if force_pull:
        start_time = 1

    service = open_service()
    try:
        for mapping in select_mappings(service, name, "pull"):
            results = service.pull_handler.do_query(mapping, start_time, stop_time, where)
            if results is None:
                click.echo(f"{mapping.id}: query failed", err=True)
                continue
            if results.size() == 0:
                click.echo(f"{mapping.id}: no records found to pull")
                continue
            service.pull_handler.enqueue_all_results(mapping, results, force_pull)
            click.echo(f"{mapping.id}: queued {results.size()} items for pull")
    finally:
        service.close()


@click.command("pull-record")
@click.argument("name")
@click.argument("remote_id")
def pull_record(name: str, remote_id: str) -> None:
    """Queue the remote record REMOTE_ID of mapping NAME for a forced pull."""
    service = open_service()
    try:
        mapping = select_mappings(service, name, "pull")[0]
        if service.pull_handler.get_single_updated_record(mapping, remote_id):
            click.echo(f"{mapping.id}: queued {remote_id} for pull")
        else:
            click.echo(f"Error: Could not queue {remote_id} for mapping {mapping.id}.", err=True)
            sys.exit(1)
    finally:
        service.close()


@click.command("pull-process")
@click.option("--limit", default=0, help="Maximum number of items (0 for all).")
def pull_process(limit: int) -> None:
    """Apply queued remote records to local entities."""
    service = open_service()
    try:
        count = service.pull_worker.process_queue(limit)
        click.echo(f"Applied {count} records, {service.pull_queue.number_of_items()} left in queue")
    finally:
        service.close()


@click.command("pull-reset")
@click.argument("name", required=False)
@click.option("--delete", "reset_delete", is_flag=True, help="Reset the delete timestamp instead.")
def pull_reset(name: str | None, reset_delete: bool) -> None:
    """Reset the pull timestamp of mapping NAME, or of every pull mapping.

    Mapped objects of the mapping are flagged for a forced pull.
    """
    service = open_service()
    try:
        for mapping in select_mappings(service, name, "pull"):
            if reset_delete:
                service.state.set_last_delete_time(mapping.id, 0)
            else:
                service.state.set_last_pull_time(mapping.id, 0)
            service.mapped_objects.set_force_pull(mapping.id)
            click.echo(f"{mapping.id}: pull timestamp reset")
    finally:
        service.close()


@click.command("pull-set")
@click.argument("name")
@click.argument("time")
@click.option("--delete", "set_delete", is_flag=True, help="Set the delete timestamp instead.")
def pull_set(name: str, time: str, set_delete: bool) -> None:
    """Set the pull timestamp of mapping NAME to TIME (epoch seconds or ISO 8601)."""
    timestamp = _parse_time(time)
    service = open_service()
    try:
        for mapping in select_mappings(service, name, "pull"):
            if set_delete:
                service.state.set_last_delete_time(mapping.id, timestamp)
            else:
                service.state.set_last_pull_time(mapping.id, timestamp)
            service.mapped_objects.set_force_pull(mapping.id)
            click.echo(f"{mapping.id}: pull timestamp set to {timestamp}")
    finally:
        service.close()


@click.command("delete-orphans")
def delete_orphans() -> None:
    """Delete local entities whose remote records no longer exist."""
    service = open_service()
    try:
        count = service.delete()
        click.echo(f"Deleted {count} orphaned mapped objects")
    finally:
        service.close()
