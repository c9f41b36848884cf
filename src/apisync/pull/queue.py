"""Durable pull queue.

Remote records fetched by the pull query are stored here until a pull
worker applies them locally. Items are processed in (created, item_id)
order; failed items stay queued with their attempt count raised.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update

from apisync.remote.result import ODataObject
from apisync.store.models import PullQueueItem

if TYPE_CHECKING:
    from apisync.store.database import Database

logger = logging.getLogger(__name__)


class PullQueue:
    """FIFO of remote records waiting to be pulled."""

    def __init__(self, db: Database, clock: Callable[[], float] = time.time) -> None:
        self._db = db
        self._clock = clock

    def create_item(self, mapping_id: str, record: ODataObject, force_pull: bool = False) -> int:
        """Enqueue a remote record for a mapping.

        Returns:
            The new item id.
        """
        item = PullQueueItem(
            mapping_id=mapping_id,
            record=record.to_dict(),
            force_pull=force_pull,
            attempts=0,
            created=int(self._clock()),
        )
        with self._db.session() as session:
            session.add(item)
            session.commit()
            return item.item_id

    def items(self, limit: int = 0) -> list[PullQueueItem]:
        """Queued items, oldest first.

        Args:
            limit: Maximum number of items, 0 for all.
        """
        stmt = select(PullQueueItem).order_by(PullQueueItem.created, PullQueueItem.item_id)
        if limit > 0:
            stmt = stmt.limit(limit)
        with self._db.session() as session:
            items = list(session.execute(stmt).scalars().all())
            for item in items:
                session.expunge(item)
            return items

    @staticmethod
    def record_of(item: PullQueueItem) -> ODataObject:
        """The remote record stored on an item."""
        return ODataObject.from_dict(item.record)

    def delete_item(self, item: PullQueueItem) -> None:
        with self._db.session() as session:
            session.execute(delete(PullQueueItem).where(PullQueueItem.item_id == item.item_id))
            session.commit()

    def increment_attempts(self, item: PullQueueItem) -> None:
        """Record a failed attempt, keeping the item queued."""
        with self._db.session() as session:
            session.execute(
                update(PullQueueItem)
                .where(PullQueueItem.item_id == item.item_id)
                .values(attempts=PullQueueItem.attempts + 1)
            )
            session.commit()
        item.attempts += 1

    def number_of_items(self, mapping_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(PullQueueItem)
        if mapping_id is not None:
            stmt = stmt.where(PullQueueItem.mapping_id == mapping_id)
        with self._db.session() as session:
            return int(session.execute(stmt).scalar_one())

    def clear(self, mapping_id: str | None = None) -> int:
        """Delete queued items, optionally only those of one mapping."""
        stmt = delete(PullQueueItem)
        if mapping_id is not None:
            stmt = stmt.where(PullQueueItem.mapping_id == mapping_id)
        with self._db.session() as session:
            result = session.execute(stmt)
            session.commit()
        logger.info("Cleared %d pull queue items", result.rowcount)
        return result.rowcount
