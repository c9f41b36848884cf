"""Push of a single local entity to the remote service.

This module provides:
- PushWorker: Builds the outbound payload and chooses create or update

The remote write is an update when the mapped object already holds a
remote identity and a create otherwise, so repeating a push never
creates a second remote record.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apisync.core.types import PushAction, SyncAction
from apisync.events import EventDispatcher, PushParams, PushParamsEvent, SyncEvents
from apisync.mapping.fields import FieldContext, create_field_plugin
from apisync.mapping.identity import IdentityProvider
from apisync.mapping.mapped_objects import apply_record_metadata, remote_path

if TYPE_CHECKING:
    from apisync.entities import Entity
    from apisync.mapping.models import Mapping
    from apisync.remote.client import ODataClient
    from apisync.remote.result import ODataObject
    from apisync.store.mapped_objects import MappedObjectStore
    from apisync.store.models import MappedObject

logger = logging.getLogger(__name__)


class PushWorker:
    """Pushes local entities through their mapped objects."""

    def __init__(
        self,
        client: ODataClient,
        mapped_objects: MappedObjectStore,
        context: FieldContext,
        identity_provider: IdentityProvider | None = None,
        events: EventDispatcher | None = None,
    ) -> None:
        self._client = client
        self._mapped_objects = mapped_objects
        self._context = context
        self._identity_provider = identity_provider or IdentityProvider()
        self._events = events or EventDispatcher()

    @staticmethod
    def push_action(mapped_object: MappedObject) -> PushAction:
        """Update when a remote identity is known, create otherwise."""
        return PushAction.UPDATE if mapped_object.remote_id else PushAction.CREATE

    def build_params(self, entity: Entity, mapping: Mapping) -> PushParams:
        """Compute the outbound value of every pushing field mapping."""
        params = PushParams(mapping, entity)
        for field_mapping in mapping.get_push_fields():
            plugin = create_field_plugin(field_mapping)
            if not plugin.push():
                continue
            params.set_param(field_mapping.remote_field, plugin.push_value(entity, mapping, self._context))
        return params

    def push(self, mapped_object: MappedObject, entity: Entity, mapping: Mapping) -> ODataObject | None:
        """Push entity and record the outcome on mapped_object.

        Args:
            mapped_object: Mapped object linking entity for mapping; saved on success.
            entity: Local entity to push.
            mapping: Mapping defining the payload.

        Returns:
            The created remote record, None for updates or when the service returns no body.
        """
        action = self.push_action(mapped_object)
        params = self.build_params(entity, mapping)
        self._events.dispatch(SyncEvents.PUSH_PARAMS, PushParamsEvent(mapped_object, params))

        result = None
        if action == PushAction.UPDATE:
            self._client.object_update(remote_path(mapped_object, mapping), params.get_params())
        else:
            result = self._client.object_create(mapping.object_type, params.get_params())

        mapped_object.entity_id = str(entity.id)
        if entity.changed is not None:
            mapped_object.entity_updated = entity.changed
        if result is not None:
            apply_record_metadata(mapped_object, result, mapping, self._identity_provider)
        elif action == PushAction.CREATE:
            logger.warning(
                "Mapping %s: create of entity %s returned no record, remote identity unknown",
                mapping.id,
                entity.id,
            )

        mapped_object.last_sync_action = SyncAction(f"push_{action.value}").value
        mapped_object.last_sync_status = True
        self._mapped_objects.save(mapped_object)

        self._events.dispatch(SyncEvents.PUSH_SUCCESS, PushParamsEvent(mapped_object, params))
        logger.debug("Mapping %s: pushed %s of entity %s", mapping.id, action.value, entity.id)
        return result

    def push_delete(self, mapped_object: MappedObject, mapping: Mapping) -> None:
        """Delete the remote record of mapped_object."""
        path = remote_path(mapped_object, mapping)
        self._client.object_delete(path)
        mapped_object.last_sync_action = SyncAction.PUSH_DELETE.value
        mapped_object.last_sync_status = True
        self._mapped_objects.save(mapped_object)
        self._events.notice("Pushed delete successfully to %s", path)
