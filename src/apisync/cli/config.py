"""Configuration utilities for the apisync CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import json
import os
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

import click

from apisync.core.config import RemoteConfig, SyncSettings
from apisync.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from apisync.mapping.models import Mapping
    from apisync.mapping.registry import MappingRegistry
    from apisync.service import SyncService

CONFIG_DIR_ENV = "APISYNC_CONFIG_DIR"


def get_config_dir() -> Path:
    """Get the configuration directory for apisync.

    Returns:
        Path from APISYNC_CONFIG_DIR, or ~/.apisync.
    """
    override = os.environ.get(CONFIG_DIR_ENV)
    if override:
        return Path(override).expanduser()
    return Path.home() / ".apisync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def load_config() -> dict[str, Any]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, Any]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def get_database_path(config: dict[str, Any]) -> Path:
    """Get the database path (configured or default <config dir>/apisync.db)."""
    if config.get("database"):
        return Path(config["database"]).expanduser().resolve()
    return get_config_dir() / "apisync.db"


def load_registry(config: dict[str, Any]) -> MappingRegistry:
    """Load the mapping file named by the config, exiting on errors."""
    from apisync.mapping.registry import MappingRegistry

    if not config.get("mappings"):
        click.echo("Error: No mapping file configured. Run 'apisync configure' first.", err=True)
        sys.exit(1)

    settings = SyncSettings.from_dict(config.get("settings", {}))
    try:
        return MappingRegistry.from_file(Path(config["mappings"]).expanduser(), settings)
    except ConfigurationError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


def open_service() -> SyncService:
    """Build the sync service from the saved configuration, exiting on errors."""
    from apisync.service import SyncService
    from apisync.store.database import Database

    config = load_config()
    if not config.get("instance_url"):
        click.echo("Error: Not configured. Run 'apisync configure' first.", err=True)
        sys.exit(1)

    registry = load_registry(config)
    remote = RemoteConfig(
        instance_url=config["instance_url"],
        token=config.get("token", ""),
        api_path=config.get("api_path", ""),
    )
    settings = SyncSettings.from_dict(config.get("settings", {}))
    return SyncService(remote, registry, Database(get_database_path(config)), settings=settings)


def select_mappings(service: SyncService, name: str | None, direction: str) -> list[Mapping]:
    """Resolve a mapping name, or every mapping of a direction, exiting if none match.

    Args:
        service: Service holding the registry.
        name: Mapping id, or None for all mappings.
        direction: "push" or "pull".
    """
    registry = service.registry
    if name:
        mapping = registry.get(name)
        if mapping is None:
            click.echo(f"Error: Unknown mapping '{name}'.", err=True)
            sys.exit(1)
        mappings = [mapping]
    else:
        mappings = registry.load_push_mappings() if direction == "push" else registry.load_pull_mappings()

    if direction == "push":
        mappings = [m for m in mappings if m.does_push()]
    else:
        mappings = [m for m in mappings if m.does_pull()]
    if not mappings:
        click.echo(f"Error: No {direction} mappings found.", err=True)
        sys.exit(1)
    return mappings
