"""Mapped-object storage.

Mapped objects are the durable link between a local entity and a remote
identity for one mapping. Every save appends a revision; old revisions
are pruned down to the configured limit, never removing the current one.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from sqlalchemy import delete, func, select, update

from apisync.store.models import MappedObject, MappedObjectRevision

if TYPE_CHECKING:
    from apisync.entities import Entity
    from apisync.mapping.models import Mapping
    from apisync.store.database import Database

logger = logging.getLogger(__name__)

# Columns copied from a caller's instance on save
_SAVED_COLUMNS = (
    "mapping_id",
    "type",
    "entity_type",
    "entity_id",
    "remote_id",
    "metadata_values",
    "entity_updated",
    "last_sync_status",
    "last_sync_action",
    "force_pull",
)

_COLUMN_DEFAULTS = {
    "metadata_values": {},
    "last_sync_status": False,
    "force_pull": False,
}


class MappedObjectStore:
    """Persistence for mapped objects and their revisions."""

    def __init__(self, db: Database, revision_limit: int = 0) -> None:
        """Initialize the store.

        Args:
            db: Database instance.
            revision_limit: Revisions kept per mapped object after each save (0 keeps all).
        """
        self._db = db
        self._revision_limit = revision_limit

    def create(
        self,
        mapping: Mapping,
        entity: Entity | None = None,
        remote_id: str | None = None,
    ) -> MappedObject:
        """Create an unsaved mapped object for mapping.

        Args:
            mapping: Owning mapping; must have a mapped object type.
            entity: Linked local entity, if already known.
            remote_id: Remote identity, if already known.

        Returns:
            A new, unsaved MappedObject.
        """
        mapped_object_type = mapping.require_mapped_object_type()
        return MappedObject(
            mapping_id=mapping.id,
            type=mapped_object_type.id,
            entity_type=mapping.entity_type,
            entity_id=None if entity is None or entity.id is None else str(entity.id),
            remote_id=remote_id,
            metadata_values={},
            last_sync_status=False,
            force_pull=False,
        )

    def save(self, mapped_object: MappedObject, log_message: str = "") -> MappedObject:
        """Insert or update a mapped object and record a new revision.

        The caller's instance is updated with the generated id and revision.

        Raises:
            IntegrityError: If the entity or remote identity is already linked for the mapping.
            LookupError: If an existing mapped object was deleted meanwhile.
        """
        with self._db.session() as session:
            if mapped_object.id is None:
                record = MappedObject()
                session.add(record)
            else:
                record = session.get(MappedObject, mapped_object.id)
                if record is None:
                    raise LookupError(f"Mapped object {mapped_object.id} no longer exists")

            for name in _SAVED_COLUMNS:
                value = getattr(mapped_object, name)
                if value is None and name in _COLUMN_DEFAULTS:
                    value = _COLUMN_DEFAULTS[name]
                setattr(record, name, value)
            session.flush()

            revision = MappedObjectRevision(
                mapped_object_id=record.id,
                entity_id=record.entity_id,
                remote_id=record.remote_id,
                metadata_values=dict(record.metadata_values or {}),
                entity_updated=record.entity_updated,
                last_sync_status=record.last_sync_status,
                last_sync_action=record.last_sync_action,
                force_pull=record.force_pull,
                log_message=log_message,
            )
            session.add(revision)
            session.flush()
            record.revision_id = revision.revision_id
            session.commit()

            mapped_object.id = record.id
            mapped_object.revision_id = record.revision_id
            mapped_object.created = record.created
            mapped_object.changed = record.changed

        if self._revision_limit > 0:
            self.prune_revisions(mapped_object.id, self._revision_limit)
        return mapped_object

    def _load_one(self, stmt) -> MappedObject | None:  # type: ignore[no-untyped-def]
        with self._db.session() as session:
            mapped_object = session.execute(stmt).scalars().first()
            if mapped_object:
                session.expunge(mapped_object)
            return mapped_object

    def _load_many(self, stmt) -> list[MappedObject]:  # type: ignore[no-untyped-def]
        with self._db.session() as session:
            mapped_objects = list(session.execute(stmt).scalars().all())
            for mapped_object in mapped_objects:
                session.expunge(mapped_object)
            return mapped_objects

    def load(self, mapped_object_id: int) -> MappedObject | None:
        """Get a mapped object by id."""
        return self._load_one(select(MappedObject).where(MappedObject.id == mapped_object_id))

    def load_by_entity(self, entity_type: str, entity_id: str | int) -> list[MappedObject]:
        """Get every mapped object linked to a local entity."""
        stmt = (
            select(MappedObject)
            .where(MappedObject.entity_type == entity_type)
            .where(MappedObject.entity_id == str(entity_id))
            .order_by(MappedObject.id)
        )
        return self._load_many(stmt)

    def load_by_entity_and_mapping(
        self, entity_type: str, entity_id: str | int, mapping_id: str
    ) -> MappedObject | None:
        """Get the mapped object linking a local entity through one mapping."""
        stmt = (
            select(MappedObject)
            .where(MappedObject.mapping_id == mapping_id)
            .where(MappedObject.entity_type == entity_type)
            .where(MappedObject.entity_id == str(entity_id))
        )
        return self._load_one(stmt)

    def load_by_remote_id(self, remote_id: str, mapping_id: str) -> MappedObject | None:
        """Get the mapped object holding a remote identity for one mapping."""
        stmt = (
            select(MappedObject)
            .where(MappedObject.mapping_id == mapping_id)
            .where(MappedObject.remote_id == remote_id)
        )
        return self._load_one(stmt)

    def load_by_mapping(self, mapping_id: str) -> list[MappedObject]:
        stmt = select(MappedObject).where(MappedObject.mapping_id == mapping_id).order_by(MappedObject.id)
        return self._load_many(stmt)

    def remote_ids_for_mapping(self, mapping_id: str) -> dict[str, int]:
        """Map each stored remote identity of a mapping to its mapped object id."""
        stmt = (
            select(MappedObject.remote_id, MappedObject.id)
            .where(MappedObject.mapping_id == mapping_id)
            .where(MappedObject.remote_id.is_not(None))
            .distinct()
        )
        with self._db.session() as session:
            return {remote_id: mapped_id for remote_id, mapped_id in session.execute(stmt)}

    def set_force_pull(self, mapping_id: str) -> int:
        """Flag every mapped object of a mapping for an unconditional pull.

        Returns:
            Number of mapped objects flagged.
        """
        with self._db.session() as session:
            result = session.execute(
                update(MappedObject)
                .where(MappedObject.mapping_id == mapping_id)
                .values(force_pull=True)
            )
            session.commit()
            return result.rowcount

    def delete(self, mapped_object: MappedObject | int) -> bool:
        """Delete a mapped object and its revisions.

        Returns:
            True if a row was deleted.
        """
        mapped_object_id = mapped_object if isinstance(mapped_object, int) else mapped_object.id
        with self._db.session() as session:
            record = session.get(MappedObject, mapped_object_id)
            if record is None:
                return False
            session.delete(record)
            session.commit()
            return True

    def revisions(self, mapped_object_id: int) -> list[MappedObjectRevision]:
        """List revisions of a mapped object, oldest first."""
        stmt = (
            select(MappedObjectRevision)
            .where(MappedObjectRevision.mapped_object_id == mapped_object_id)
            .order_by(MappedObjectRevision.revision_id)
        )
        with self._db.session() as session:
            revisions = list(session.execute(stmt).scalars().all())
            for revision in revisions:
                session.expunge(revision)
            return revisions

    def prune_revisions(self, mapped_object_id: int, limit: int) -> int:
        """Delete revisions beyond the newest limit, keeping the current one.

        Returns:
            Number of revisions deleted.
        """
        if limit <= 0:
            return 0
        with self._db.session() as session:
            record = session.get(MappedObject, mapped_object_id)
            if record is None:
                return 0
            keep = list(
                session.execute(
                    select(MappedObjectRevision.revision_id)
                    .where(MappedObjectRevision.mapped_object_id == mapped_object_id)
                    .order_by(MappedObjectRevision.revision_id.desc())
                    .limit(limit)
                ).scalars()
            )
            if record.revision_id is not None:
                keep.append(record.revision_id)
            result = session.execute(
                delete(MappedObjectRevision)
                .where(MappedObjectRevision.mapped_object_id == mapped_object_id)
                .where(MappedObjectRevision.revision_id.not_in(keep))
            )
            session.commit()
            if result.rowcount:
                logger.debug(
                    "Pruned %d revisions of mapped object %d", result.rowcount, mapped_object_id
                )
            return result.rowcount

    def count(self, mapping_id: str | None = None) -> int:
        stmt = select(func.count()).select_from(MappedObject)
        if mapping_id is not None:
            stmt = stmt.where(MappedObject.mapping_id == mapping_id)
        with self._db.session() as session:
            return int(session.execute(stmt).scalar_one())
