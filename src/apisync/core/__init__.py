"""Core module - Shared config, types, errors and date helpers."""

from apisync.core.config import RemoteConfig, SyncSettings
from apisync.core.dates import format_odata_datetime, parse_timestamp
from apisync.core.exceptions import (
    ApiSyncError,
    ConfigurationError,
    EntityNotFoundError,
    MappingError,
    RequeueError,
    SuspendError,
)
from apisync.core.types import (
    ARRAY_DELIMITER,
    EDM_DATA_TYPES,
    IDENTITY_FIELD,
    Direction,
    PushAction,
    PushOp,
    SyncAction,
    Trigger,
)

__all__ = [
    # Config
    "RemoteConfig",
    "SyncSettings",
    # Dates
    "format_odata_datetime",
    "parse_timestamp",
    # Errors
    "ApiSyncError",
    "ConfigurationError",
    "EntityNotFoundError",
    "MappingError",
    "RequeueError",
    "SuspendError",
    # Types
    "ARRAY_DELIMITER",
    "EDM_DATA_TYPES",
    "IDENTITY_FIELD",
    "Direction",
    "PushAction",
    "PushOp",
    "SyncAction",
    "Trigger",
]
