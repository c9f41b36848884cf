"""Push queue processors.

This module provides:
- QueueProcessor: Strategy interface for pushing a claimed batch
- RestProcessor: Pushes items one at a time through the OData client

A processor owns per-item outcomes: successful items are deleted from the
queue and failed ones are reported with PushQueue.fail_item. Batch-level
conditions are raised to the queue as RequeueError or SuspendError.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

from apisync.core.exceptions import EntityNotFoundError, RequeueError, SuspendError
from apisync.core.types import PushOp
from apisync.events import EventDispatcher, PushOpEvent, SyncEvents

if TYPE_CHECKING:
    from apisync.entities import EntityStore
    from apisync.mapping.models import Mapping
    from apisync.push.queue import PushQueue
    from apisync.push.worker import PushWorker
    from apisync.remote.client import ODataClient
    from apisync.store.mapped_objects import MappedObjectStore
    from apisync.store.models import MappedObject, PushQueueItem

logger = logging.getLogger(__name__)


class QueueProcessor(ABC):
    """Pushes a batch of claimed queue items."""

    @abstractmethod
    def process(self, items: list[PushQueueItem], mapping: Mapping, queue: PushQueue) -> None:
        """Process items claimed from the queue of mapping.

        Raises:
            RequeueError: To release the batch and claim again.
            SuspendError: To release the batch and stop processing this mapping.
        """


class RestProcessor(QueueProcessor):
    """Processes queue items one at a time against the remote service."""

    def __init__(
        self,
        client: ODataClient,
        mapped_objects: MappedObjectStore,
        entities: EntityStore,
        worker: PushWorker,
        events: EventDispatcher | None = None,
    ) -> None:
        self._client = client
        self._mapped_objects = mapped_objects
        self._entities = entities
        self._worker = worker
        self._events = events or EventDispatcher()

    def process(self, items: list[PushQueueItem], mapping: Mapping, queue: PushQueue) -> None:
        if not self._client.is_authorized():
            raise SuspendError("Remote service is not authorized")

        for item in items:
            try:
                self.process_item(item, mapping)
                queue.delete_item(item)
            except (RequeueError, SuspendError):
                raise
            except Exception as e:
                queue.fail_item(e, item)

    def _find_mapped_object(self, item: PushQueueItem, mapping: Mapping) -> MappedObject:
        mapped_object = None
        if item.mapped_object_id:
            mapped_object = self._mapped_objects.load(item.mapped_object_id)
        if mapped_object is None:
            mapped_object = self._mapped_objects.load_by_entity_and_mapping(
                mapping.entity_type, item.entity_id, mapping.id
            )
        if mapped_object is None:
            mapped_object = self._mapped_objects.create(mapping)
            mapped_object.entity_id = item.entity_id
        return mapped_object

    def process_item(self, item: PushQueueItem, mapping: Mapping) -> None:
        """Push one queue item.

        Raises:
            EntityNotFoundError: If the local entity of a create or update is gone.
        """
        op = PushOp(item.op)
        mapped_object = self._find_mapped_object(item, mapping)
        self._events.dispatch(SyncEvents.PUSH_MAPPING_OBJECT, PushOpEvent(mapped_object, mapping, op.value))

        if op == PushOp.DELETE:
            if mapped_object.is_new:
                logger.debug(
                    "Mapping %s: entity %s was never pushed, nothing to delete", mapping.id, item.entity_id
                )
                return
            if mapped_object.remote_id:
                self._worker.push_delete(mapped_object, mapping)
            self._mapped_objects.delete(mapped_object)
            return

        entity = self._entities.load(mapping.entity_type, item.entity_id)
        if entity is None:
            raise EntityNotFoundError(mapping.entity_type, item.entity_id)

        try:
            self._worker.push(mapped_object, entity, mapping)
        except Exception:
            self._events.dispatch(SyncEvents.PUSH_FAIL, PushOpEvent(mapped_object, mapping, op.value))
            if not mapped_object.is_new:
                mapped_object.last_sync_action = op.trigger.value
                mapped_object.last_sync_status = False
                self._mapped_objects.save(mapped_object, f"Push {op.value} failed")
            raise
