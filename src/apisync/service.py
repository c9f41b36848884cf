"""Wiring of the sync engine.

SyncService builds every collaborator explicitly from a remote
configuration, a mapping registry and a database, and exposes one entry
point per periodic job.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from apisync.core.config import SyncSettings
from apisync.events import EventDispatcher, LoggerSubscriber
from apisync.mapping.fields import FieldContext
from apisync.mapping.identity import IdentityProvider
from apisync.pull.delete import DeleteHandler, DeleteProvider
from apisync.pull.handler import PullQueueHandler
from apisync.pull.queue import PullQueue
from apisync.pull.worker import PullWorker
from apisync.push.processor import RestProcessor
from apisync.push.queue import PushQueue
from apisync.push.trigger import PushTrigger
from apisync.push.worker import PushWorker
from apisync.remote.client import ODataClient
from apisync.store.entities import SqlEntityStore
from apisync.store.mapped_objects import MappedObjectStore
from apisync.store.state import MappingStateStore

if TYPE_CHECKING:
    from apisync.core.config import RemoteConfig
    from apisync.entities import EntityStore
    from apisync.mapping.registry import MappingRegistry
    from apisync.store.database import Database

logger = logging.getLogger(__name__)


class SyncService:
    """The push, pull and delete engines sharing one database and client."""

    def __init__(
        self,
        config: RemoteConfig,
        registry: MappingRegistry,
        db: Database,
        entities: EntityStore | None = None,
        settings: SyncSettings | None = None,
        client: ODataClient | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the service.

        Args:
            config: Remote connection settings.
            registry: Active mappings.
            db: Database holding the mapped objects, state and queues.
            entities: Local entity store (defaults to the table-backed store).
            settings: Global engine settings.
            client: OData client (built from config when omitted).
            events: Event dispatcher; a logger subscriber is attached to it.
            clock: Time source returning epoch seconds.
        """
        self.settings = settings or SyncSettings()
        self.registry = registry
        self.db = db
        self.events = events or EventDispatcher()
        LoggerSubscriber(self.settings.log_level).register(self.events)

        self.client = client or ODataClient(config)
        self.entities = entities or SqlEntityStore(db, clock)
        self.mapped_objects = MappedObjectStore(db, self.settings.limit_mapped_object_revisions)
        self.state = MappingStateStore(db)
        self.identity_provider = IdentityProvider()
        self.context = FieldContext(self.entities, self.mapped_objects, self.client)

        self.push_worker = PushWorker(
            self.client, self.mapped_objects, self.context, self.identity_provider, self.events
        )
        self.processor = RestProcessor(
            self.client, self.mapped_objects, self.entities, self.push_worker, self.events
        )
        self.push_queue = PushQueue(
            db, registry, self.state, self.processor, self.settings, self.events, clock
        )
        self.push_trigger = PushTrigger(registry, self.push_queue, self.processor, self.events)

        self.pull_queue = PullQueue(db, clock)
        self.pull_handler = PullQueueHandler(
            self.client,
            registry,
            self.pull_queue,
            self.state,
            self.mapped_objects,
            self.settings,
            self.events,
            clock,
        )
        self.pull_worker = PullWorker(
            registry,
            self.pull_queue,
            self.mapped_objects,
            self.entities,
            self.context,
            self.identity_provider,
            self.events,
            clock,
        )
        self.delete_provider = DeleteProvider(self.client, self.mapped_objects, self.identity_provider)
        self.delete_handler = DeleteHandler(
            registry,
            self.delete_provider,
            self.mapped_objects,
            self.entities,
            self.state,
            self.events,
            clock,
        )

    def push(self) -> int:
        """Process the push queues of every cron push mapping."""
        count = self.push_queue.process_queues()
        logger.info("Push run processed %d queue items", count)
        return count

    def pull(self, force_pull: bool = False, limit: int = 0) -> int:
        """Enqueue updated remote records, then apply the pull queue."""
        self.pull_handler.get_updated_records(force_pull)
        count = self.pull_worker.process_queue(limit)
        logger.info("Pull run applied %d records", count)
        return count

    def delete(self) -> int:
        """Delete local entities whose remote records are gone."""
        count = self.delete_handler.process_deleted_records()
        logger.info("Delete run removed %d mapped objects", count)
        return count

    def close(self) -> None:
        """Close the remote client and the database."""
        self.client.close()
        self.db.close()
