"""Shared types for apisync.

This module defines the enums and constants used across mappings, queues
and workers.
"""

from __future__ import annotations

from enum import Enum

# Local selector that stores the canonical remote identity on a mapped object
IDENTITY_FIELD = "apisync_id"

# Separator used when pushing multi-value fields
ARRAY_DELIMITER = ";"

# Primitive wire types accepted for mapped-object-type fields
EDM_DATA_TYPES: tuple[str, ...] = (
    "Edm.Binary",
    "Edm.Boolean",
    "Edm.Byte",
    "Edm.Date",
    "Edm.DateTimeOffset",
    "Edm.Decimal",
    "Edm.Double",
    "Edm.Guid",
    "Edm.Int16",
    "Edm.Int32",
    "Edm.Int64",
    "Edm.SByte",
    "Edm.Single",
    "Edm.String",
    "Edm.TimeOfDay",
)


class Direction(str, Enum):
    """Direction tag of a field mapping."""

    DRUPAL_REMOTE = "drupal_remote"
    REMOTE_DRUPAL = "remote_drupal"
    SYNC = "sync"


class Trigger(str, Enum):
    """Sync triggers that can be enabled on a mapping."""

    PUSH_CREATE = "push_create"
    PUSH_UPDATE = "push_update"
    PUSH_DELETE = "push_delete"
    PULL_CREATE = "pull_create"
    PULL_UPDATE = "pull_update"
    PULL_DELETE = "pull_delete"

    @property
    def is_push(self) -> bool:
        return self.value.startswith("push_")

    @property
    def is_pull(self) -> bool:
        return self.value.startswith("pull_")


class PushOp(str, Enum):
    """Local entity operation that produced a push queue item."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"

    @property
    def trigger(self) -> Trigger:
        """Push trigger guarding this operation."""
        return Trigger(f"push_{self.value}")


class PushAction(str, Enum):
    """Remote write chosen for a push."""

    CREATE = "create"
    UPDATE = "update"


class SyncAction(str, Enum):
    """Last sync action recorded on a mapped object."""

    PUSH_CREATE = "push_create"
    PUSH_UPDATE = "push_update"
    PUSH_DELETE = "push_delete"
    PULL = "pull"
