"""Pydantic schemas for the deployable mapping file.

The mapping file is JSON:

    {
      "mapped_object_types": [{"id": "contact", "field_mappings": [...]}],
      "mappings": [{"id": "contacts", "entity_type": "node", ...}]
    }
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from apisync.core.types import Direction, Trigger
from apisync.mapping.models import FieldMapping, MappedObjectType, Mapping


class FieldMappingSchema(BaseModel):
    """One field mapping entry."""

    id: int
    local_field: str
    remote_field: str
    remote_type: str = "Edm.String"
    direction: Direction = Direction.SYNC
    is_key: bool = False
    plugin: str = "properties"
    description: str = ""
    config: dict[str, Any] = Field(default_factory=dict)

    def to_field_mapping(self) -> FieldMapping:
        return FieldMapping(**self.model_dump())


class MappedObjectTypeSchema(BaseModel):
    """A mapped object type entry."""

    id: str
    label: str = ""
    field_mappings: list[FieldMappingSchema] = Field(default_factory=list)

    def to_mapped_object_type(self) -> MappedObjectType:
        return MappedObjectType(
            id=self.id,
            label=self.label,
            field_mappings=[fm.to_field_mapping() for fm in self.field_mappings],
        )


class MappingSchema(BaseModel):
    """A mapping entry."""

    id: str
    entity_type: str
    bundle: str
    object_type: str
    label: str = ""
    mapped_object_type: str | None = None
    field_mappings: list[FieldMappingSchema] = Field(default_factory=list)
    sync_triggers: list[Trigger] = Field(default_factory=list)
    weight: int = 0
    status: bool = True
    async_push: bool = False
    push_standalone: bool = False
    pull_standalone: bool = False
    pull_trigger_date: str = ""
    pull_where_clause: str = ""
    push_frequency: int = Field(default=0, ge=0)
    push_limit: int = Field(default=0, ge=0)
    push_retries: int = Field(default=3, ge=0)
    pull_frequency: int = Field(default=0, ge=0)

    def to_mapping(self, mapped_object_types: dict[str, MappedObjectType]) -> Mapping:
        data = self.model_dump(exclude={"mapped_object_type", "field_mappings", "sync_triggers"})
        return Mapping(
            **data,
            mapped_object_type=(
                mapped_object_types.get(self.mapped_object_type) if self.mapped_object_type else None
            ),
            field_mappings=[fm.to_field_mapping() for fm in self.field_mappings],
            sync_triggers=set(self.sync_triggers),
        )


class MappingFileSchema(BaseModel):
    """Top-level mapping file."""

    mapped_object_types: list[MappedObjectTypeSchema] = Field(default_factory=list)
    mappings: list[MappingSchema] = Field(default_factory=list)
