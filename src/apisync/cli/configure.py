"""Setup commands for the apisync CLI.

Commands:
- configure: Save the remote connection and mapping file settings
- mappings: List and validate the configured mappings
- read-object: Print the remote record of a mapped object
"""

from __future__ import annotations

import json
import sys
from pathlib import Path

import click

from apisync.cli.config import (
    get_config_file,
    load_config,
    load_registry,
    open_service,
    save_config,
)


@click.command()
@click.option("--instance-url", default=None, help="Remote instance URL (e.g., https://erp.example.com).")
@click.option("--token", default=None, help="Bearer token for the remote service.")
@click.option("--api-path", default=None, help="Path of the OData service root (e.g., /odata/v4).")
@click.option("--database", default=None, help="SQLite database path (default: <config dir>/apisync.db).")
@click.option(
    "--mappings",
    "mappings_file",
    default=None,
    type=click.Path(exists=True, dir_okay=False),
    help="Mapping definitions JSON file.",
)
def configure(
    instance_url: str | None,
    token: str | None,
    api_path: str | None,
    database: str | None,
    mappings_file: str | None,
) -> None:
    """Save connection and mapping settings.

    Options not given keep their saved values.
    """
    config = load_config()
    if instance_url is not None:
        config["instance_url"] = instance_url
    if token is not None:
        config["token"] = token
    if api_path is not None:
        config["api_path"] = api_path
    if database is not None:
        config["database"] = str(Path(database).expanduser().resolve())
    if mappings_file is not None:
        config["mappings"] = str(Path(mappings_file).expanduser().resolve())

    if not config.get("instance_url"):
        config["instance_url"] = click.prompt("Remote instance URL")
    if not config.get("mappings"):
        config["mappings"] = str(
            Path(click.prompt("Mapping file", type=click.Path(exists=True, dir_okay=False))).resolve()
        )
    config.setdefault("settings", {})

    save_config(config)
    click.echo(f"Configuration saved to {get_config_file()}")


@click.command()
def mappings() -> None:
    """List the configured mappings.

    Exits with an error when the mapping file is invalid.
    """
    registry = load_registry(load_config())
    if not len(registry):
        click.echo("No mappings defined.")
        return

    for mapping in registry.all():
        triggers = ",".join(sorted(t.value for t in mapping.sync_triggers)) or "-"
        status = "enabled" if mapping.status else "disabled"
        click.echo(
            f"{mapping.id}: {mapping.entity_type}/{mapping.bundle} <-> {mapping.object_type} "
            f"[{status}] triggers={triggers}"
        )


@click.command("read-object")
@click.argument("name")
@click.argument("remote_id")
def read_object(name: str, remote_id: str) -> None:
    """Print the remote record mapped to REMOTE_ID by mapping NAME."""
    from apisync.core.exceptions import ApiSyncError
    from apisync.mapping.mapped_objects import remote_path

    service = open_service()
    try:
        mapping = service.registry.get(name)
        if mapping is None:
            click.echo(f"Error: Unknown mapping '{name}'.", err=True)
            sys.exit(1)

        mapped_object = service.mapped_objects.load_by_remote_id(remote_id, mapping.id)
        if mapped_object is None:
            click.echo(f"Error: No mapped object for remote id '{remote_id}'.", err=True)
            sys.exit(1)

        try:
            record = service.client.object_read(remote_path(mapped_object, mapping))
        except ApiSyncError as e:
            click.echo(f"Error: {e}", err=True)
            sys.exit(1)
        click.echo(json.dumps(record.fields(), indent=2, default=str))
    finally:
        service.close()
