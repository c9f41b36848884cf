"""Pull queue producer.

This module provides:
- PullQueueHandler: Queries each pull mapping for records updated since
  its watermark and enqueues them

The watermark (a mapping's last pull time) is the newest trigger date seen
while draining every page of the query. It is stored only after all pages
were enqueued and never moves backwards, so a failed drain re-fetches the
same window on the next run. Pull workers are idempotent, so re-delivered
records are harmless.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from apisync.core.config import SyncSettings
from apisync.core.dates import parse_timestamp
from apisync.events import EventDispatcher, QueryEvent, SyncEvents
from apisync.mapping.mapped_objects import remote_path
from apisync.remote.result import SelectQueryResult

if TYPE_CHECKING:
    from apisync.mapping.models import Mapping
    from apisync.mapping.registry import MappingRegistry
    from apisync.pull.queue import PullQueue
    from apisync.remote.client import ODataClient
    from apisync.store.mapped_objects import MappedObjectStore
    from apisync.store.state import MappingStateStore

logger = logging.getLogger(__name__)


class PullQueueHandler:
    """Enqueues updated remote records for pull mappings."""

    def __init__(
        self,
        client: ODataClient,
        registry: MappingRegistry,
        queue: PullQueue,
        state: MappingStateStore,
        mapped_objects: MappedObjectStore,
        settings: SyncSettings | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._client = client
        self._registry = registry
        self._queue = queue
        self._state = state
        self._mapped_objects = mapped_objects
        self._settings = settings or SyncSettings()
        self._events = events or EventDispatcher()
        self._clock = clock

    def get_updated_records(self, force_pull: bool = False, start: int = 0, stop: int = 0) -> bool:
        """Enqueue updated records of every cron pull mapping.

        Returns:
            False when the queue is over its maximum size and nothing was queried.
        """
        max_size = self._settings.pull_max_queue_size
        size = self._queue.number_of_items()
        if max_size and size > max_size:
            self._events.notice(
                "Pull queue contains %d items, exceeding the max size of %d items. "
                "Pull processing is blocked until the queue shrinks below the max size.",
                size,
                max_size,
            )
            return False

        for mapping in self._registry.load_cron_pull_mappings():
            self.get_updated_records_for_mapping(mapping, force_pull, start, stop)
        return True

    def get_updated_records_for_mapping(
        self,
        mapping: Mapping,
        force_pull: bool = False,
        start: int = 0,
        stop: int = 0,
        where: str = "",
    ) -> int | None:
        """Enqueue the updated records of one mapping.

        The mapping's pull frequency is honored unless an explicit window
        start or stop is given.

        Args:
            mapping: Pull mapping to query.
            force_pull: Apply the records even if the local entity is newer.
            start: Window start in epoch seconds (defaults to the watermark).
            stop: Window stop in epoch seconds (0 for open-ended).
            where: Extra filter clause appended to the query.

        Returns:
            Number of records reported by the query, None when nothing was queried.
        """
        if not mapping.does_pull():
            return None
        last_pull = self._state.get_last_pull_time(mapping.id)
        if start == 0 and stop == 0 and mapping.next_pull_time(last_pull) > self._clock():
            logger.debug("Mapping %s: next pull not due yet", mapping.id)
            return None

        results = self.do_query(mapping, start, stop, where)
        if results is None:
            return None
        self.enqueue_all_results(mapping, results, force_pull)
        return results.size()

    def do_query(
        self, mapping: Mapping, start: int = 0, stop: int = 0, where: str = ""
    ) -> SelectQueryResult | None:
        """Run the pull query of a mapping.

        Failures are reported as error signals.

        Returns:
            The first result page, None when the query failed.
        """
        try:
            query = mapping.get_pull_query(self._state.get_last_pull_time(mapping.id), start, stop)
            if where:
                query.add_built_condition(where)
            self._events.dispatch(SyncEvents.PULL_QUERY, QueryEvent(mapping, query))
            return self._client.query(query)
        except Exception as e:
            self._events.error("Pull query for mapping %s failed: %s", mapping.id, e, exception=e)
            return None

    def enqueue_all_results(
        self,
        mapping: Mapping,
        results: SelectQueryResult,
        force_pull: bool = False,
        advance_watermark: bool = True,
    ) -> bool:
        """Enqueue every page of results, then advance the watermark.

        Args:
            mapping: Mapping the records belong to.
            results: First result page.
            force_pull: Apply the records even if the local entity is newer.
            advance_watermark: Store the newest trigger date as the last pull time.

        Returns:
            True when every page was enqueued.
        """
        trigger_field = mapping.pull_trigger_date
        max_time = 0
        try:
            while True:
                for record in results.records():
                    self._queue.create_item(mapping.id, record, force_pull)
                    if trigger_field:
                        record_time = parse_timestamp(record.field(trigger_field))
                        if record_time is not None and record_time > max_time:
                            max_time = record_time
                if results.done():
                    break
                results = self._client.query_more(results)
        except Exception as e:
            self._events.error(
                "Enqueuing pull results for mapping %s failed, watermark kept: %s",
                mapping.id,
                e,
                exception=e,
            )
            return False

        if advance_watermark and max_time > self._state.get_last_pull_time(mapping.id):
            self._state.set_last_pull_time(mapping.id, max_time)
            logger.info("Mapping %s: last pull time advanced to %d", mapping.id, max_time)
        return True

    def get_single_updated_record(self, mapping: Mapping, remote_id: str, force_pull: bool = True) -> bool:
        """Read one mapped remote record and enqueue it.

        Returns:
            True when the record was enqueued.
        """
        if not mapping.does_pull():
            return False
        mapped_object = self._mapped_objects.load_by_remote_id(remote_id, mapping.id)
        if mapped_object is None:
            logger.info("Mapping %s: no mapped object for remote id %s", mapping.id, remote_id)
            return False

        record = self._client.object_read(remote_path(mapped_object, mapping))
        if not record.fields():
            return False
        record.object_type = mapping.object_type
        return self.enqueue_all_results(
            mapping, SelectQueryResult.create_single(record), force_pull, advance_watermark=False
        )
