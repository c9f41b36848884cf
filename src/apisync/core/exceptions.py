"""Exception hierarchy for apisync."""

from __future__ import annotations


class ApiSyncError(Exception):
    """Base exception for sync errors."""


class ConfigurationError(ApiSyncError):
    """Mapping or mapped-object setup is invalid.

    Raised for setup defects (missing key fields, bundle mismatch, missing
    remote metadata fields). These are never retried.
    """


class MappingError(ApiSyncError):
    """Mapping does not support the requested direction."""


class EntityNotFoundError(ApiSyncError):
    """A referenced local entity no longer exists.

    Attributes:
        entity_type: Local entity type.
        entity_id: Local entity id.
    """

    def __init__(self, entity_type: str, entity_id: str | int | None) -> None:
        super().__init__(f"Entity {entity_type}:{entity_id} not found")
        self.entity_type = entity_type
        self.entity_id = entity_id


class RequeueError(ApiSyncError):
    """Release the claimed batch and claim again immediately."""


class SuspendError(ApiSyncError):
    """Release the claimed batch and stop processing this mapping's queue."""
