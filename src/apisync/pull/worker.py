"""Pull of remote records into local entities.

This module provides:
- PullWorker: Applies queued remote records, creating or updating the
  linked local entity

A record whose identity is already mapped updates the linked entity, but
only when the remote trigger date is newer than the local change time,
the remote date is unknown, or a pull is forced. Unmapped records always
create a new entity. Subscribers of pull_prepull can veto either path.

Field values are applied one at a time; a field that cannot be pulled is
reported and skipped without failing the record.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from apisync.core.dates import parse_timestamp
from apisync.core.types import SyncAction, Trigger
from apisync.events import EntityValueEvent, EventDispatcher, PullEvent, SyncEvents
from apisync.mapping.fields import FieldContext, create_field_plugin
from apisync.mapping.identity import IdentityProvider
from apisync.mapping.mapped_objects import apply_record_metadata

if TYPE_CHECKING:
    from apisync.entities import Entity, EntityStore
    from apisync.mapping.models import FieldMapping, Mapping
    from apisync.mapping.registry import MappingRegistry
    from apisync.pull.queue import PullQueue
    from apisync.remote.result import ODataObject
    from apisync.store.mapped_objects import MappedObjectStore
    from apisync.store.models import MappedObject

logger = logging.getLogger(__name__)


class PullWorker:
    """Applies remote records to local entities."""

    def __init__(
        self,
        registry: MappingRegistry,
        queue: PullQueue,
        mapped_objects: MappedObjectStore,
        entities: EntityStore,
        context: FieldContext | None = None,
        identity_provider: IdentityProvider | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._registry = registry
        self._queue = queue
        self._mapped_objects = mapped_objects
        self._entities = entities
        self._context = context or FieldContext(entities, mapped_objects)
        self._identity_provider = identity_provider or IdentityProvider()
        self._events = events or EventDispatcher()
        self._clock = clock

    def process_queue(self, limit: int = 0) -> int:
        """Apply queued records, oldest first.

        Applied items are deleted. Items that raise stay queued with their
        attempt count incremented.

        Args:
            limit: Maximum number of items, 0 for all.

        Returns:
            Number of items applied.
        """
        processed = 0
        for item in self._queue.items(limit):
            try:
                self.process_item(item.mapping_id, self._queue.record_of(item), item.force_pull)
            except Exception as e:
                self._queue.increment_attempts(item)
                self._events.error(
                    "Pull queue item %d of mapping %s failed (attempt %d): %s",
                    item.item_id,
                    item.mapping_id,
                    item.attempts,
                    e,
                    exception=e,
                )
                continue
            self._queue.delete_item(item)
            processed += 1
        return processed

    def process_item(self, mapping_id: str, record: ODataObject, force_pull: bool = False) -> Trigger | None:
        """Apply one remote record.

        Returns:
            PULL_CREATE or PULL_UPDATE for the path taken, None when skipped.
        """
        mapping = self._registry.get(mapping_id)
        if mapping is None:
            logger.warning("Dropping pull item of unknown mapping %s", mapping_id)
            return None

        remote_id = self._identity_provider.derive_identity(record, mapping)
        mapped_object = self._mapped_objects.load_by_remote_id(remote_id, mapping.id)
        if mapped_object is not None:
            return self.update_entity(mapping, mapped_object, record, remote_id, force_pull)
        return self.create_entity(mapping, record, remote_id)

    def update_entity(
        self,
        mapping: Mapping,
        mapped_object: MappedObject,
        record: ODataObject,
        remote_id: str,
        force_pull: bool = False,
    ) -> Trigger | None:
        """Update the local entity linked to a mapped record."""
        if not mapping.check_triggers([Trigger.PULL_UPDATE]):
            return None

        entity = None
        try:
            if mapped_object.entity_id is not None:
                entity = self._entities.load(mapped_object.entity_type, mapped_object.entity_id)
            if entity is None:
                self._events.error(
                    "Local entity existed at one time for remote object %s, but does not currently exist.",
                    remote_id,
                )
                return None

            entity_updated = entity.changed or mapped_object.entity_updated or 0
            record_updated = None
            if mapping.pull_trigger_date:
                # Unknown remote dates always update
                record_updated = parse_timestamp(record.field(mapping.pull_trigger_date))

            event = self._events.dispatch(
                SyncEvents.PULL_PREPULL,
                PullEvent(mapped_object, entity, record, Trigger.PULL_UPDATE.value),
            )
            if not event.allowed:
                self._events.notice("Pull was not allowed for %s with %s", entity.label, remote_id)
                return None

            if (
                force_pull
                or record_updated is None
                or record_updated > entity_updated
                or mapped_object.force_pull
            ):
                self.pull(mapped_object, entity, record, mapping)
                self._events.notice(
                    "Updated entity %s associated with remote object %s", entity.label, remote_id
                )
                return Trigger.PULL_UPDATE
            return None
        except Exception as e:
            self._events.warning(
                "Failed to update entity %s from remote object %s.",
                entity.label if entity is not None else "Unknown",
                remote_id,
                exception=e,
            )
            raise

    def create_entity(self, mapping: Mapping, record: ODataObject, remote_id: str) -> Trigger | None:
        """Create a local entity for an unmapped record."""
        if not mapping.check_triggers([Trigger.PULL_CREATE]):
            return None

        try:
            entity = self._entities.create(mapping.entity_type, {"bundle": mapping.bundle})
            mapped_object = self._mapped_objects.create(mapping)
            apply_record_metadata(mapped_object, record, mapping, self._identity_provider)

            event = self._events.dispatch(
                SyncEvents.PULL_PREPULL,
                PullEvent(mapped_object, entity, record, Trigger.PULL_CREATE.value),
            )
            if not event.allowed:
                self._events.notice("Pull was not allowed for %s with %s", entity.label, remote_id)
                return None

            self.pull(mapped_object, entity, record, mapping)
            self._events.notice(
                "Created entity %s %s associated with remote object %s", entity.id, entity.label, remote_id
            )
            return Trigger.PULL_CREATE
        except Exception as e:
            self._events.warning("Pull-create failed for remote object %s", remote_id, exception=e)
            raise

    def pull(self, mapped_object: MappedObject, entity: Entity, record: ODataObject, mapping: Mapping) -> None:
        """Apply record to entity and save both the entity and the mapped object."""
        for field_mapping in mapping.get_pull_fields():
            self._apply_field(field_mapping, entity, record, mapping, mapped_object)

        op = Trigger.PULL_CREATE if entity.is_new else Trigger.PULL_UPDATE
        self._events.dispatch(SyncEvents.PULL_PRESAVE, PullEvent(mapped_object, entity, record, op.value))
        self._entities.save(entity)

        apply_record_metadata(mapped_object, record, mapping, self._identity_provider)
        mapped_object.entity_id = str(entity.id)
        mapped_object.entity_updated = int(self._clock())
        mapped_object.last_sync_action = SyncAction.PULL.value
        mapped_object.last_sync_status = True
        mapped_object.force_pull = False
        self._mapped_objects.save(mapped_object)

    def _apply_field(
        self,
        field_mapping: FieldMapping,
        entity: Entity,
        record: ODataObject,
        mapping: Mapping,
        mapped_object: MappedObject,
    ) -> None:
        plugin = create_field_plugin(field_mapping)
        if not plugin.pull():
            return

        result = plugin.pull_value(record, entity, mapping, self._context)
        if not result.ok:
            self._events.notice(
                "Field %s.%s not found on %s: %s",
                mapping.object_type,
                field_mapping.remote_field,
                mapped_object.remote_id,
                result.error.message if result.error else "",
                exception=result.error.exception if result.error else None,
            )
            return

        event = self._events.dispatch(
            SyncEvents.PULL_ENTITY_VALUE,
            EntityValueEvent(result.value, field_mapping.local_field, entity, mapping, record),
        )
        if result.applied:
            return

        local_field = field_mapping.local_field
        try:
            if ":" in local_field:
                # One level of reference traversal, saved on the referenced entity
                field_name, subfield = local_field.split(":", 1)
                targets = self._entities.load_referenced(entity, field_name)
                if targets:
                    targets[0].set(subfield, event.value)
                    self._entities.save(targets[0])
                return
            entity.set(local_field, event.value)
        except Exception as e:
            self._events.warning(
                "Exception during pull for %s.%s %s to %s.%s %s with value %r",
                mapping.object_type,
                field_mapping.remote_field,
                mapped_object.remote_id,
                entity.entity_type,
                local_field,
                entity.id,
                event.value,
                exception=e,
            )
