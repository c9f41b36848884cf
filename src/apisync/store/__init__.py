"""Store module - Durable tables for mapped objects, state and queues."""

from apisync.store.database import Database
from apisync.store.entities import SqlEntityStore
from apisync.store.mapped_objects import MappedObjectStore
from apisync.store.models import (
    Base,
    LocalEntityRecord,
    MappedObject,
    MappedObjectRevision,
    MappingState,
    PullQueueItem,
    PushQueueItem,
)
from apisync.store.state import MappingStateStore

__all__ = [
    "Base",
    "Database",
    "LocalEntityRecord",
    "MappedObject",
    "MappedObjectRevision",
    "MappedObjectStore",
    "MappingState",
    "MappingStateStore",
    "PullQueueItem",
    "PushQueueItem",
    "SqlEntityStore",
]
