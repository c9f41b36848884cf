"""Table-backed local entity store.

Stores entities as JSON values in the local_entities table. Used by the
CLI when the engine is not embedded in a host application.
"""

from __future__ import annotations

import time
from collections.abc import Callable, Iterable
from typing import TYPE_CHECKING, Any

from sqlalchemy import select

from apisync.entities import Entity, EntityStore
from apisync.store.models import LocalEntityRecord

if TYPE_CHECKING:
    from apisync.store.database import Database


def _to_entity(record: LocalEntityRecord) -> Entity:
    return Entity(
        entity_type=record.entity_type,
        bundle=record.bundle,
        id=record.id,
        values=dict(record.values or {}),
        changed=record.changed,
    )


class SqlEntityStore(EntityStore):
    """Entity store persisted with SQLAlchemy."""

    def __init__(self, db: Database, clock: Callable[[], float] = time.time) -> None:
        self._db = db
        self._clock = clock

    def load(self, entity_type: str, entity_id: int | str) -> Entity | None:
        try:
            key = int(entity_id)
        except (TypeError, ValueError):
            return None
        with self._db.session() as session:
            record = session.get(LocalEntityRecord, key)
            if record is None or record.entity_type != entity_type:
                return None
            return _to_entity(record)

    def load_by_properties(self, entity_type: str, properties: dict[str, Any]) -> list[Entity]:
        stmt = select(LocalEntityRecord).where(LocalEntityRecord.entity_type == entity_type)
        if "bundle" in properties:
            stmt = stmt.where(LocalEntityRecord.bundle == properties["bundle"])
        with self._db.session() as session:
            entities = [_to_entity(r) for r in session.execute(stmt.order_by(LocalEntityRecord.id)).scalars()]

        def matches(entity: Entity) -> bool:
            for key, expected in properties.items():
                if key == "bundle":
                    continue
                actual = entity.id if key == "id" else entity.values.get(key)
                if str(actual) != str(expected):
                    return False
            return True

        return [entity for entity in entities if matches(entity)]

    def save(self, entity: Entity) -> Entity:
        changed = int(self._clock())
        with self._db.session() as session:
            record = None if entity.id is None else session.get(LocalEntityRecord, int(entity.id))
            if record is None:
                record = LocalEntityRecord(entity_type=entity.entity_type)
                session.add(record)
            record.bundle = entity.bundle
            record.values = dict(entity.values)
            record.changed = changed
            session.commit()
            entity.id = record.id
        entity.changed = changed
        return entity

    def delete(self, entities: Iterable[Entity]) -> None:
        with self._db.session() as session:
            for entity in entities:
                if entity.id is None:
                    continue
                record = session.get(LocalEntityRecord, int(entity.id))
                if record is not None:
                    session.delete(record)
            session.commit()
