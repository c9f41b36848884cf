"""SQLAlchemy models for apisync.

This module defines the durable tables: mapped objects and their
revisions, per-mapping runtime state, the push and pull queues, and the
table-backed local entity store.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""


class MappedObject(Base):
    """Link between a local entity and its remote identity for one mapping."""

    __tablename__ = "mapped_objects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mapping_id: Mapped[str] = mapped_column(String(255), nullable=False)
    type: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_type: Mapped[str] = mapped_column(String(128), nullable=False)
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    remote_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    metadata_values: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    entity_updated: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_sync_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_sync_action: Mapped[str | None] = mapped_column(String(16), nullable=True)
    force_pull: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    revision_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )
    changed: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        onupdate=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    revisions: Mapped[list[MappedObjectRevision]] = relationship(
        "MappedObjectRevision",
        back_populates="mapped_object",
        cascade="all, delete-orphan",
        order_by="MappedObjectRevision.revision_id",
    )

    # Unique keys; SQLite allows several NULL remote ids
    __table_args__ = (
        UniqueConstraint("mapping_id", "entity_type", "entity_id", name="uq_mapped_entity"),
        UniqueConstraint("mapping_id", "remote_id", name="uq_mapped_remote"),
        Index("idx_mapped_objects_remote", "remote_id"),
        Index("idx_mapped_objects_entity", "entity_type", "entity_id"),
    )

    @property
    def is_new(self) -> bool:
        return self.id is None

    def get_value(self, name: str) -> Any:
        """Get a metadata value, including the identity attribute."""
        if name == "apisync_id":
            return self.remote_id
        return (self.metadata_values or {}).get(name)

    def set_value(self, name: str, value: Any) -> None:
        if name == "apisync_id":
            self.remote_id = None if value is None else str(value)
            return
        values = dict(self.metadata_values or {})
        values[name] = value
        self.metadata_values = values

    def __repr__(self) -> str:
        return (
            f"MappedObject(id={self.id}, mapping={self.mapping_id}, "
            f"entity={self.entity_type}:{self.entity_id}, remote_id={self.remote_id})"
        )


class MappedObjectRevision(Base):
    """Snapshot of a mapped object taken on every save."""

    __tablename__ = "mapped_object_revisions"

    revision_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mapped_object_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("mapped_objects.id", ondelete="CASCADE"), nullable=False
    )
    entity_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    remote_id: Mapped[str | None] = mapped_column(String(255), nullable=True)
    metadata_values: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    entity_updated: Mapped[int | None] = mapped_column(Integer, nullable=True)
    last_sync_status: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    last_sync_action: Mapped[str | None] = mapped_column(String(16), nullable=True)
    force_pull: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    log_message: Mapped[str] = mapped_column(Text, default="", nullable=False)
    created: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(UTC),
        nullable=False,
    )

    # Relationships
    mapped_object: Mapped[MappedObject] = relationship("MappedObject", back_populates="revisions")

    __table_args__ = (Index("idx_revisions_mapped_object", "mapped_object_id"),)


class MappingState(Base):
    """Runtime timestamps of a mapping, kept out of the deployable config."""

    __tablename__ = "mapping_state"

    mapping_id: Mapped[str] = mapped_column(String(255), primary_key=True)
    last_pull: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_push: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_delete: Mapped[int] = mapped_column(Integer, default=0, nullable=False)


class PushQueueItem(Base):
    """A queued local entity change waiting to be pushed."""

    __tablename__ = "push_queue"

    item_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    entity_id: Mapped[str] = mapped_column(String(255), nullable=False)
    op: Mapped[str] = mapped_column(String(16), nullable=False)
    mapped_object_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    failures: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    expire: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created: Mapped[int] = mapped_column(Integer, nullable=False)
    updated: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (
        UniqueConstraint("name", "entity_id", name="uq_push_queue_entity"),
        Index("idx_push_queue_entity", "entity_id"),
        Index("idx_push_queue_expire", "expire"),
        Index("idx_push_queue_name_created", "name", "created"),
    )

    def __repr__(self) -> str:
        return (
            f"PushQueueItem(id={self.item_id}, name={self.name}, entity={self.entity_id}, "
            f"op={self.op}, failures={self.failures})"
        )


class PullQueueItem(Base):
    """A remote record waiting to be applied locally."""

    __tablename__ = "pull_queue"

    item_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    mapping_id: Mapped[str] = mapped_column(String(255), nullable=False)
    record: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)
    force_pull: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    created: Mapped[int] = mapped_column(Integer, nullable=False)

    __table_args__ = (Index("idx_pull_queue_created", "created", "item_id"),)


class LocalEntityRecord(Base):
    """Row of the table-backed local entity store."""

    __tablename__ = "local_entities"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    entity_type: Mapped[str] = mapped_column(String(128), nullable=False)
    bundle: Mapped[str] = mapped_column(String(128), default="", nullable=False)
    values: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    changed: Mapped[int | None] = mapped_column(Integer, nullable=True)

    __table_args__ = (Index("idx_local_entities_type", "entity_type", "bundle"),)
