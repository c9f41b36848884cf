"""Reconciliation of remote deletions.

This module provides:
- DeleteProvider: Finds mapped objects whose remote record is gone
- DeleteHandler: Deletes the local entities of those mapped objects

The remote service exposes no tombstones, so deletions are inferred: a
mapped object is orphaned when its remote identity is missing from a
full listing of the mapping's object type. The listing selects only the
key fields and is diffed page by page against the stored identities.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy.exc import SQLAlchemyError

from apisync.core.types import Trigger
from apisync.events import DeleteAllowedEvent, EventDispatcher, SyncEvents
from apisync.mapping.identity import IdentityProvider
from apisync.remote.query import SelectQuery

if TYPE_CHECKING:
    from apisync.entities import EntityStore
    from apisync.mapping.models import Mapping
    from apisync.mapping.registry import MappingRegistry
    from apisync.remote.client import ODataClient
    from apisync.store.mapped_objects import MappedObjectStore
    from apisync.store.state import MappingStateStore

logger = logging.getLogger(__name__)


class DeleteProvider:
    """Detects orphaned mapped objects of a mapping."""

    def __init__(
        self,
        client: ODataClient,
        mapped_objects: MappedObjectStore,
        identity_provider: IdentityProvider | None = None,
    ) -> None:
        self._client = client
        self._mapped_objects = mapped_objects
        self._identity_provider = identity_provider or IdentityProvider()

    def get_orphaned_local_ids(self, mapping: Mapping) -> set[int]:
        """Ids of mapped objects whose remote identity no longer exists.

        Raises:
            ConfigurationError: If the mapping has no key fields.
            RemoteError: If the listing cannot be fetched. Nothing is reported
                orphaned in that case.
        """
        candidates = self._mapped_objects.remote_ids_for_mapping(mapping.id)
        if not candidates:
            return set()

        query = SelectQuery(mapping.object_type)
        query.set_fields([key_field.remote_field for key_field in mapping.get_key_fields()])

        results = self._client.query(query)
        while True:
            for record in results.records():
                candidates.pop(self._identity_provider.derive_identity(record, mapping), None)
            if results.done():
                break
            results = self._client.query_more(results)

        if not candidates:
            logger.info("No orphaned mapped objects found for type %s", mapping.object_type)
        return set(candidates.values())


class DeleteHandler:
    """Deletes local entities whose remote record was deleted."""

    def __init__(
        self,
        registry: MappingRegistry,
        provider: DeleteProvider,
        mapped_objects: MappedObjectStore,
        entities: EntityStore,
        state: MappingStateStore,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._provider = provider
        self._mapped_objects = mapped_objects
        self._entities = entities
        self._state = state
        self._events = events or EventDispatcher()
        self._clock = clock

    def process_deleted_records(self) -> int:
        """Reconcile every mapping with the pull_delete trigger.

        Returns:
            Number of mapped objects deleted.
        """
        deleted = 0
        for mapping in self._registry.all():
            if not mapping.status or not mapping.check_triggers([Trigger.PULL_DELETE]):
                continue
            try:
                deleted += self.handle_mapping(mapping)
            except Exception as e:
                self._events.error(
                    "Delete reconciliation of mapping %s failed: %s", mapping.id, e, exception=e
                )
                continue
            self._state.set_last_delete_time(mapping.id, int(self._clock()))
        return deleted

    def handle_mapping(self, mapping: Mapping) -> int:
        """Delete the orphans of one mapping.

        Returns:
            Number of mapped objects deleted.
        """
        deleted = 0
        for mapped_object_id in sorted(self._provider.get_orphaned_local_ids(mapping)):
            mapped_object = self._mapped_objects.load(mapped_object_id)
            if mapped_object is None:
                continue

            entity = None
            if mapped_object.entity_id is not None:
                entity = self._entities.load(mapped_object.entity_type, mapped_object.entity_id)

            event = self._events.dispatch(
                SyncEvents.DELETE_ALLOWED, DeleteAllowedEvent(mapped_object, entity)
            )
            if not event.allowed:
                logger.debug("Delete of mapped object %d vetoed", mapped_object_id)
                continue

            if entity is not None:
                try:
                    self._entities.delete([entity])
                except SQLAlchemyError as e:
                    self._events.error(
                        "Storage exception deleting entity %s for mapped object %d with mapping %s.",
                        entity.id,
                        mapped_object_id,
                        mapping.id,
                        exception=e,
                    )

            try:
                if self._mapped_objects.delete(mapped_object_id):
                    deleted += 1
            except SQLAlchemyError as e:
                self._events.error(
                    "Storage exception deleting mapped object %d with mapping %s",
                    mapped_object_id,
                    mapping.id,
                    exception=e,
                )
        if deleted:
            logger.info("Mapping %s: deleted %d orphaned mapped objects", mapping.id, deleted)
        return deleted
