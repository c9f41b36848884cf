"""Durable push queue.

This module provides:
- PushQueue: Keyed, lease-based work queue of local entity changes

Items are keyed by (mapping id, entity id): enqueuing an entity that is
already queued overwrites the pending item instead of duplicating it.
A merge raises the row's update stamp, so a worker that claimed the
previous version releases the row instead of deleting the newer change.

Claiming is lock-free. A worker selects unleased rows under the failure
limit in (created, item_id) order, then sets their lease with an update
restricted to rows that are still unleased. Rows another worker leased
in between are skipped; when none are left the claim starts over. Only
the rows this worker actually leased are returned, so concurrent
claimers never receive overlapping items.

Failed items are released with an incremented failure count and are
claimed again until the count reaches the fail limit. Within one run
an item is attempted at most once; the items queued behind a failed one
are still processed. Permanently failed items stay in the table for
inspection.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

from sqlalchemy import delete, func, select, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert

from apisync.core.config import SyncSettings
from apisync.core.exceptions import EntityNotFoundError, RequeueError, SuspendError
from apisync.core.types import PushOp
from apisync.events import EventDispatcher
from apisync.store.models import PushQueueItem

if TYPE_CHECKING:
    from apisync.mapping.models import Mapping
    from apisync.mapping.registry import MappingRegistry
    from apisync.push.processor import QueueProcessor
    from apisync.store.database import Database
    from apisync.store.state import MappingStateStore

logger = logging.getLogger(__name__)


class PushQueue:
    """Lease-based push queue backed by the push_queue table."""

    def __init__(
        self,
        db: Database,
        registry: MappingRegistry,
        state: MappingStateStore,
        processor: QueueProcessor | None = None,
        settings: SyncSettings | None = None,
        events: EventDispatcher | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        """Initialize the queue.

        Args:
            db: Database holding the push_queue table.
            registry: Mapping registry used to resolve queue names.
            state: Mapping runtime state (last push time).
            processor: Strategy that pushes claimed batches.
            settings: Global limits, fail threshold and lease time.
            events: Dispatcher for operator signals.
            clock: Time source returning epoch seconds.
        """
        self._db = db
        self._registry = registry
        self._state = state
        self.processor = processor
        self._settings = settings or SyncSettings()
        self._events = events or EventDispatcher()
        self._clock = clock

    @property
    def global_limit(self) -> int:
        return self._settings.global_push_limit

    @property
    def max_fails(self) -> int:
        return self._settings.push_max_fails

    def fail_limit(self, mapping: Mapping | None) -> int:
        """Failure count at which items of mapping stop being claimed.

        The mapping's push_retries applies when positive, otherwise the
        global push_max_fails.
        """
        if mapping is not None and mapping.push_retries > 0:
            return mapping.push_retries
        return self.max_fails

    def _now(self) -> int:
        return int(self._clock())

    @staticmethod
    def _next_updated(now: int) -> Any:
        """Update stamp of a merged row, strictly above the stored one.

        A worker holding the previous version of the row can then tell
        that it changed while being pushed.
        """
        return func.max(now, PushQueueItem.updated + 1)

    # === Items ===

    def create_item(
        self,
        name: str,
        entity_id: str | int,
        op: PushOp | str,
        mapped_object_id: int | None = None,
        failures: int | None = None,
    ) -> None:
        """Enqueue an entity change, merging with a pending item for the same entity.

        Args:
            name: Queue name (the mapping id).
            entity_id: Local entity id.
            op: Operation that triggered the push.
            mapped_object_id: Mapped object id, if known.
            failures: Failure count to store. The pending count is kept when None.
        """
        if not name or entity_id in (None, "") or not op:
            raise ValueError('Push queue items require "name", "entity_id" and "op"')

        now = self._now()
        values: dict[str, Any] = {
            "name": name,
            "entity_id": str(entity_id),
            "op": PushOp(op).value,
            "mapped_object_id": mapped_object_id,
            "updated": now,
        }
        changes = dict(values, updated=self._next_updated(now))
        if failures is not None:
            changes["failures"] = failures

        stmt = sqlite_insert(PushQueueItem).values(
            **values, failures=failures or 0, expire=0, created=now
        )
        stmt = stmt.on_conflict_do_update(index_elements=["name", "entity_id"], set_=changes)
        with self._db.session() as session:
            session.execute(stmt)
            session.commit()
        logger.debug("Queued %s of entity %s for mapping %s", values["op"], entity_id, name)

    def requeue(self, name: str, entries: list[tuple[str, int | None]]) -> int:
        """Queue an update of already mapped entities, replacing pending items.

        Replaced items start over: no failures and no lease.

        Args:
            name: Queue name (the mapping id).
            entries: (entity id, mapped object id) pairs.

        Returns:
            Number of entities queued.
        """
        now = self._now()
        with self._db.session() as session:
            for entity_id, mapped_object_id in entries:
                values = {
                    "name": name,
                    "entity_id": str(entity_id),
                    "op": PushOp.UPDATE.value,
                    "mapped_object_id": mapped_object_id,
                    "failures": 0,
                    "expire": 0,
                    "created": now,
                    "updated": now,
                }
                stmt = sqlite_insert(PushQueueItem).values(**values)
                stmt = stmt.on_conflict_do_update(
                    index_elements=["name", "entity_id"],
                    set_=dict(values, updated=self._next_updated(now)),
                )
                session.execute(stmt)
            session.commit()
        logger.info("Requeued %d entities for mapping %s", len(entries), name)
        return len(entries)

    def get_item(self, name: str, entity_id: str | int) -> PushQueueItem | None:
        """Get the pending item of an entity."""
        with self._db.session() as session:
            item = session.execute(
                select(PushQueueItem)
                .where(PushQueueItem.name == name)
                .where(PushQueueItem.entity_id == str(entity_id))
            ).scalar_one_or_none()
            if item is not None:
                session.expunge(item)
            return item

    def number_of_items(self, name: str | None = None) -> int:
        stmt = select(func.count()).select_from(PushQueueItem)
        if name is not None:
            stmt = stmt.where(PushQueueItem.name == name)
        with self._db.session() as session:
            return int(session.execute(stmt).scalar_one())

    def claim_items(
        self,
        name: str,
        n: int,
        fail_limit: int | None = None,
        lease_time: int | None = None,
        exclude: set[int] | None = None,
    ) -> list[PushQueueItem]:
        """Lease up to n items of a queue.

        Args:
            name: Queue name (the mapping id).
            n: Maximum items to claim; 0 or less claims up to the global limit.
            fail_limit: Items with this many failures or more are skipped.
            lease_time: Lease duration in seconds.
            exclude: Item ids that must not be claimed.

        Returns:
            The leased items in (created, item_id) order, empty when none are available.
        """
        if n <= 0:
            n = self.global_limit
        if fail_limit is None:
            fail_limit = self.max_fails
        if lease_time is None:
            lease_time = self._settings.push_lease_time

        stmt = (
            select(PushQueueItem.item_id)
            .where(PushQueueItem.expire == 0)
            .where(PushQueueItem.name == name)
            .where(PushQueueItem.failures < fail_limit)
        )
        if exclude:
            stmt = stmt.where(PushQueueItem.item_id.not_in(sorted(exclude)))
        stmt = stmt.order_by(PushQueueItem.created, PushQueueItem.item_id).limit(n)

        while True:
            with self._db.session() as session:
                candidates = list(session.execute(stmt).scalars())
                if not candidates:
                    return []

                expire = self._now() + lease_time
                claimed: list[int] = []
                for item_id in candidates:
                    # Only one claimer can move a row away from expire = 0
                    result = session.execute(
                        update(PushQueueItem)
                        .where(PushQueueItem.item_id == item_id)
                        .where(PushQueueItem.expire == 0)
                        .values(expire=expire)
                    )
                    if result.rowcount:
                        claimed.append(item_id)
                session.commit()

                if not claimed:
                    logger.debug("Lost claim race on queue %s, retrying", name)
                    continue

                items = list(
                    session.execute(
                        select(PushQueueItem)
                        .where(PushQueueItem.item_id.in_(claimed))
                        .order_by(PushQueueItem.created, PushQueueItem.item_id)
                    ).scalars()
                )
                for item in items:
                    session.expunge(item)
                return items

    def release_items(self, items: list[PushQueueItem]) -> int:
        """Clear the lease of items so they can be claimed again."""
        if not items:
            return 0
        with self._db.session() as session:
            result = session.execute(
                update(PushQueueItem)
                .where(PushQueueItem.item_id.in_([item.item_id for item in items]))
                .values(expire=0)
            )
            session.commit()
        for item in items:
            item.expire = 0
        return result.rowcount

    def delete_item(self, item: PushQueueItem) -> bool:
        """Delete a processed item.

        An item merged with a newer change since it was claimed is kept
        and released instead, so the newer change is pushed too.

        Returns:
            True if the item was deleted.
        """
        with self._db.session() as session:
            result = session.execute(
                delete(PushQueueItem)
                .where(PushQueueItem.item_id == item.item_id)
                .where(PushQueueItem.updated == item.updated)
            )
            if not result.rowcount:
                session.execute(
                    update(PushQueueItem).where(PushQueueItem.item_id == item.item_id).values(expire=0)
                )
            session.commit()
        if not result.rowcount:
            logger.debug("Queue item %s changed while being pushed, kept for the next run", item.item_id)
        return bool(result.rowcount)

    def delete_item_by_entity(self, name: str, entity_id: str | int) -> None:
        """Drop the pending item of an entity, if any."""
        with self._db.session() as session:
            session.execute(
                delete(PushQueueItem)
                .where(PushQueueItem.name == name)
                .where(PushQueueItem.entity_id == str(entity_id))
            )
            session.commit()

    def fail_item(self, exception: BaseException, item: PushQueueItem) -> None:
        """Record a failed push of item.

        Missing local entities are not retryable and delete the item.
        Otherwise the failure count is incremented and the lease cleared.
        """
        mapping = self._registry.get(item.name)
        entity_type = mapping.entity_type if mapping else "unknown"

        if isinstance(exception, EntityNotFoundError):
            self._events.error(
                "Exception while loading entity %s %s for mapping %s. Queue item deleted.",
                entity_type,
                item.entity_id,
                item.name,
                exception=exception,
            )
            self.delete_item(item)
            return

        item.failures += 1
        permanent = item.failures >= self.fail_limit(mapping)
        prefix = "Permanently failed queue item" if permanent else "Queue item"
        self._events.error(
            "%s %s failed %d times. Exception while pushing entity %s %s for mapping %s. %s",
            prefix,
            item.item_id,
            item.failures,
            entity_type,
            item.entity_id,
            item.name,
            exception,
            exception=exception,
        )

        with self._db.session() as session:
            session.execute(
                update(PushQueueItem)
                .where(PushQueueItem.item_id == item.item_id)
                .values(failures=item.failures, expire=0, updated=self._now())
            )
            session.commit()
        item.expire = 0

    def garbage_collection(self) -> int:
        """Clear expired leases.

        Returns:
            Number of items released.
        """
        with self._db.session() as session:
            result = session.execute(
                update(PushQueueItem)
                .where(PushQueueItem.expire != 0)
                .where(PushQueueItem.expire < self._now())
                .values(expire=0)
            )
            session.commit()
        if result.rowcount:
            logger.info("Released %d expired push queue leases", result.rowcount)
        return result.rowcount

    # === Processing ===

    def process_queues(self, mappings: list[Mapping] | None = None) -> int:
        """Process the queues of every cron push mapping.

        Args:
            mappings: Mappings to process instead of the cron push mappings.

        Returns:
            Number of items handed to the processor.
        """
        if mappings is None:
            mappings = self._registry.load_cron_push_mappings()
        if not mappings:
            return 0

        self.garbage_collection()
        total = 0
        for mapping in mappings:
            total += self.process_queue(mapping, self.global_limit - total)
            if total >= self.global_limit:
                logger.info("Global push limit of %d items reached", self.global_limit)
                break
        return total

    def process_queue(self, mapping: Mapping, limit: int | None = None) -> int:
        """Push the queued items of one mapping.

        Each item is attempted at most once per call. Batch-level
        RequeueError releases the batch and claims again, SuspendError
        releases the batch and stops this mapping. Any other batch-level
        exception leaves the batch leased until its lease expires.

        Args:
            mapping: Mapping whose queue is processed.
            limit: Maximum items to process (defaults to the global limit).

        Returns:
            Number of items handed to the processor.
        """
        if self.processor is None:
            raise RuntimeError("Push queue has no processor")

        now = self._now()
        if mapping.next_push_time(self._state.get_last_push_time(mapping.id)) > now:
            logger.debug("Mapping %s: next push not due yet", mapping.id)
            return 0

        limit = self.global_limit if limit is None else limit
        fail_limit = self.fail_limit(mapping)
        attempted: set[int] = set()
        count = 0

        while count < limit:
            batch_size = min(mapping.push_limit or limit, limit - count)
            # Items failed earlier in this run wait for the next one
            items = self.claim_items(mapping.id, batch_size, fail_limit, exclude=attempted)
            if not items:
                self._state.set_last_push_time(mapping.id, now)
                return count

            attempted.update(item.item_id for item in items)
            try:
                self.processor.process(items, mapping, self)
            except RequeueError as e:
                self.release_items(items)
                attempted.difference_update(item.item_id for item in items)
                self._events.warning("Requeued push batch of mapping %s: %s", mapping.id, e, exception=e)
                continue
            except SuspendError as e:
                self.release_items(items)
                self._events.warning("Suspended push queue of mapping %s: %s", mapping.id, e, exception=e)
                return count
            except Exception as e:
                # Batch stays leased and is retried once the lease expires
                self._events.error("Push batch of mapping %s failed: %s", mapping.id, e, exception=e)
            count += len(items)

        return count

    def stats(self) -> dict[str, dict[str, int]]:
        """Per-queue item counts: total, leased and permanently failed."""
        now = self._now()
        stats: dict[str, dict[str, int]] = {}
        with self._db.session() as session:
            rows = session.execute(
                select(PushQueueItem.name, PushQueueItem.expire, PushQueueItem.failures)
            ).all()
        for name, expire, failures in rows:
            entry = stats.setdefault(name, {"total": 0, "leased": 0, "failed": 0})
            entry["total"] += 1
            if expire and expire >= now:
                entry["leased"] += 1
            if failures >= self.fail_limit(self._registry.get(name)):
                entry["failed"] += 1
        return stats
