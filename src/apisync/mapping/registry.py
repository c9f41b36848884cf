"""Mapping storage and lookups.

This module provides:
- MappingRegistry: Holds the active mappings and answers the queries the
  push and pull engines make (push mappings for an entity type, cron pull
  mappings, lookups by property sorted by weight)
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from apisync.core.config import SyncSettings
from apisync.core.exceptions import ConfigurationError
from apisync.mapping.models import MappedObjectType, Mapping
from apisync.mapping.schemas import MappingFileSchema

logger = logging.getLogger(__name__)


class MappingRegistry:
    """In-memory registry of mappings, ordered by weight."""

    def __init__(self, settings: SyncSettings | None = None) -> None:
        self._settings = settings or SyncSettings()
        self._mappings: dict[str, Mapping] = {}
        self._mapped_object_types: dict[str, MappedObjectType] = {}

    @classmethod
    def from_file(cls, path: Path, settings: SyncSettings | None = None) -> MappingRegistry:
        """Load mappings from a JSON mapping file.

        Raises:
            ConfigurationError: If the file is invalid.
        """
        try:
            data = json.loads(Path(path).read_text())
        except (OSError, ValueError) as e:
            raise ConfigurationError(f"Cannot read mapping file {path}: {e}") from e
        registry = cls(settings)
        registry.load_dict(data)
        return registry

    def load_dict(self, data: dict[str, Any]) -> None:
        """Register the mapped object types and mappings of a mapping document."""
        try:
            document = MappingFileSchema.model_validate(data)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid mapping definitions: {e}") from e

        for type_schema in document.mapped_object_types:
            self.add_mapped_object_type(type_schema.to_mapped_object_type())

        for mapping_schema in document.mappings:
            if (
                mapping_schema.mapped_object_type
                and mapping_schema.mapped_object_type not in self._mapped_object_types
            ):
                raise ConfigurationError(
                    f"Mapping {mapping_schema.id} references unknown mapped object type "
                    f"{mapping_schema.mapped_object_type}"
                )
            self.add(mapping_schema.to_mapping(self._mapped_object_types))

    def add_mapped_object_type(self, mapped_object_type: MappedObjectType) -> None:
        """Register a mapped object type.

        Raises:
            ConfigurationError: If its field mappings are invalid.
        """
        mapped_object_type.validate()
        self._mapped_object_types[mapped_object_type.id] = mapped_object_type

    def add(self, mapping: Mapping) -> Mapping:
        """Register a mapping.

        The mapping's pull frequency is shared with every other mapping on
        the same remote object type so that they poll consistently.

        Raises:
            ConfigurationError: If its mapped object type is invalid.
        """
        if mapping.mapped_object_type is not None:
            mapping.mapped_object_type.validate()
            self._mapped_object_types.setdefault(mapping.mapped_object_type.id, mapping.mapped_object_type)

        self._mappings[mapping.id] = mapping
        for other in self._mappings.values():
            if other.object_type == mapping.object_type and other.pull_frequency != mapping.pull_frequency:
                logger.info(
                    "Mapping %s: pull frequency set to %d to match %s",
                    other.id,
                    mapping.pull_frequency,
                    mapping.id,
                )
                other.pull_frequency = mapping.pull_frequency
        return mapping

    def remove(self, mapping_id: str) -> None:
        self._mappings.pop(mapping_id, None)

    def get(self, mapping_id: str) -> Mapping | None:
        return self._mappings.get(mapping_id)

    def get_mapped_object_type(self, type_id: str) -> MappedObjectType | None:
        return self._mapped_object_types.get(type_id)

    def all(self) -> list[Mapping]:
        """Every registered mapping, sorted by weight then id."""
        return sorted(self._mappings.values(), key=lambda m: (m.weight, m.id))

    def load_by_properties(self, **properties: Any) -> list[Mapping]:
        """Enabled mappings whose attributes equal the given values, sorted by weight."""
        return [
            mapping
            for mapping in self.all()
            if mapping.status
            and all(getattr(mapping, key, None) == value for key, value in properties.items())
        ]

    def load_push_mappings(self, entity_type: str | None = None) -> list[Mapping]:
        """Mappings that push, optionally restricted to an entity type."""
        properties = {} if entity_type is None else {"entity_type": entity_type}
        return [m for m in self.load_by_properties(**properties) if m.does_push()]

    def load_pull_mappings(self) -> list[Mapping]:
        return [m for m in self.load_by_properties() if m.does_pull()]

    def load_cron_push_mappings(self) -> list[Mapping]:
        """Push mappings processed by periodic runs."""
        if self._settings.standalone:
            return []
        return [m for m in self.load_push_mappings() if not m.push_standalone]

    def load_cron_pull_mappings(self) -> list[Mapping]:
        """Pull mappings processed by periodic runs."""
        if self._settings.standalone:
            return []
        return [m for m in self.load_pull_mappings() if not m.pull_standalone]

    def __len__(self) -> int:
        return len(self._mappings)

    def __contains__(self, mapping_id: object) -> bool:
        return mapping_id in self._mappings
