"""Runtime state of mappings.

Last pull, push and delete timestamps are environment-local and live in
the database rather than in the deployable mapping definitions.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, select

from apisync.store.models import MappingState

if TYPE_CHECKING:
    from apisync.store.database import Database

logger = logging.getLogger(__name__)

_FIELDS = ("last_pull", "last_push", "last_delete")


class MappingStateStore:
    """Per-mapping runtime timestamps (epoch seconds, 0 when never run)."""

    def __init__(self, db: Database) -> None:
        self._db = db

    def get(self, mapping_id: str) -> MappingState:
        """Get the state row for a mapping, zeroed if absent."""
        with self._db.session() as session:
            state = session.get(MappingState, mapping_id)
            if state is None:
                return MappingState(mapping_id=mapping_id, last_pull=0, last_push=0, last_delete=0)
            session.expunge(state)
            return state

    def _set(self, mapping_id: str, field_name: str, value: int) -> None:
        with self._db.session() as session:
            state = session.get(MappingState, mapping_id)
            if state is None:
                state = MappingState(mapping_id=mapping_id, last_pull=0, last_push=0, last_delete=0)
                session.add(state)
            setattr(state, field_name, int(value))
            session.commit()
        logger.debug("Mapping %s: %s set to %d", mapping_id, field_name, value)

    def get_last_pull_time(self, mapping_id: str) -> int:
        return self.get(mapping_id).last_pull

    def set_last_pull_time(self, mapping_id: str, value: int) -> None:
        self._set(mapping_id, "last_pull", value)

    def get_last_push_time(self, mapping_id: str) -> int:
        return self.get(mapping_id).last_push

    def set_last_push_time(self, mapping_id: str, value: int) -> None:
        self._set(mapping_id, "last_push", value)

    def get_last_delete_time(self, mapping_id: str) -> int:
        return self.get(mapping_id).last_delete

    def set_last_delete_time(self, mapping_id: str, value: int) -> None:
        self._set(mapping_id, "last_delete", value)

    def reset(self, mapping_id: str) -> None:
        """Forget every timestamp of a mapping."""
        with self._db.session() as session:
            session.execute(delete(MappingState).where(MappingState.mapping_id == mapping_id))
            session.commit()

    def all(self) -> dict[str, dict[str, int]]:
        """Timestamps of every mapping that has state."""
        with self._db.session() as session:
            rows = session.execute(select(MappingState)).scalars().all()
            return {row.mapping_id: {f: getattr(row, f) for f in _FIELDS} for row in rows}
