"""Entity lifecycle hooks for pushing.

The embedding application calls PushTrigger.handle after a local entity
is created, updated or deleted. Each enabled push mapping of the
entity's type and bundle either pushes right away or enqueues the change.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apisync.core.types import PushOp
from apisync.events import EventDispatcher, PushAllowedEvent, SyncEvents
from apisync.store.models import PushQueueItem

if TYPE_CHECKING:
    from apisync.entities import Entity
    from apisync.mapping.models import Mapping
    from apisync.mapping.registry import MappingRegistry
    from apisync.push.processor import RestProcessor
    from apisync.push.queue import PushQueue

logger = logging.getLogger(__name__)


class PushTrigger:
    """Routes local entity changes to the push queue or to an immediate push."""

    def __init__(
        self,
        registry: MappingRegistry,
        queue: PushQueue,
        processor: RestProcessor,
        events: EventDispatcher | None = None,
    ) -> None:
        self._registry = registry
        self._queue = queue
        self._processor = processor
        self._events = events or EventDispatcher()

    def mappings_for(self, entity: Entity) -> list[Mapping]:
        """Enabled push mappings matching the entity's type and bundle."""
        return [
            mapping
            for mapping in self._registry.load_push_mappings(entity.entity_type)
            if not mapping.bundle or mapping.bundle == entity.bundle
        ]

    def handle(self, entity: Entity, op: PushOp | str) -> list[str]:
        """Push or enqueue a local entity change.

        Args:
            entity: Saved (or just deleted) local entity.
            op: The lifecycle operation.

        Returns:
            Ids of the mappings that accepted the change.
        """
        op = PushOp(op)
        if entity.id is None:
            logger.debug("Ignoring %s of unsaved %s entity", op.value, entity.entity_type)
            return []

        accepted = []
        for mapping in self.mappings_for(entity):
            if not mapping.check_triggers([op.trigger]):
                continue

            event = self._events.dispatch(
                SyncEvents.PUSH_ALLOWED, PushAllowedEvent(entity, mapping, op.value)
            )
            if not event.allowed:
                logger.debug("Push of %s %s vetoed for mapping %s", entity.entity_type, entity.id, mapping.id)
                continue

            accepted.append(mapping.id)
            if mapping.async_push or mapping.push_standalone:
                self._queue.create_item(mapping.id, entity.id, op)
                continue

            item = PushQueueItem(name=mapping.id, entity_id=str(entity.id), op=op.value, failures=0)
            try:
                self._processor.process_item(item, mapping)
            except Exception as e:
                # The queue retries it on the next run
                self._events.error(
                    "Push of %s %s failed for mapping %s, queued for retry: %s",
                    entity.entity_type,
                    entity.id,
                    mapping.id,
                    e,
                    exception=e,
                )
                self._queue.create_item(mapping.id, entity.id, op)
        return accepted
