"""Local entity store interface.

The engine treats local content as a generic keyed object store with
CRUD and equality lookups. This module provides:
- Entity: A local record with a type, bundle, id and field values
- EntityStore: The interface the engine consumes
- InMemoryEntityStore: A dict-backed store for embedding and tests

Entity reference fields hold ``{"target_type": ..., "target_id": ...}``
values, or lists of them.
"""

from __future__ import annotations

import itertools
import time
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from typing import Any


@dataclass
class Entity:
    """A local content entity.

    Attributes:
        entity_type: Entity type (e.g. "node", "taxonomy_term").
        bundle: Bundle within the type.
        id: Entity id, None until saved.
        values: Field values.
        changed: Last-changed time in epoch seconds.
    """

    entity_type: str
    bundle: str = ""
    id: int | str | None = None
    values: dict[str, Any] = field(default_factory=dict)
    changed: int | None = None

    @property
    def is_new(self) -> bool:
        return self.id is None

    @property
    def label(self) -> str:
        for key in ("label", "title", "name"):
            if self.values.get(key):
                return str(self.values[key])
        return f"{self.entity_type}:{self.id}"

    def has_field(self, name: str) -> bool:
        return name in self.values

    def get(self, path: str, default: Any = None) -> Any:
        """Get a value by field name or dotted property path."""
        current: Any = self.values
        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            elif isinstance(current, list) and part.isdigit() and int(part) < len(current):
                current = current[int(part)]
            else:
                return default
        return current

    def set(self, name: str, value: Any) -> None:
        self.values[name] = value

    def references(self, name: str) -> list[tuple[str, int | str]]:
        """(target_type, target_id) pairs held by a reference field."""
        raw = self.values.get(name)
        items = raw if isinstance(raw, list) else [raw]
        return [
            (item["target_type"], item["target_id"])
            for item in items
            if isinstance(item, dict) and item.get("target_id") is not None
        ]


def reference(entity: Entity) -> dict[str, Any]:
    """Build a reference field value pointing at entity."""
    return {"target_type": entity.entity_type, "target_id": entity.id}


class EntityStore(ABC):
    """Keyed CRUD store for local entities."""

    @abstractmethod
    def load(self, entity_type: str, entity_id: int | str) -> Entity | None:
        """Load an entity, None when it does not exist."""

    @abstractmethod
    def load_by_properties(self, entity_type: str, properties: dict[str, Any]) -> list[Entity]:
        """Load entities whose values equal every given property.

        The pseudo-properties "id" and "bundle" match the entity's own attributes.
        """

    @abstractmethod
    def save(self, entity: Entity) -> Entity:
        """Persist an entity, assigning an id when new and stamping changed."""

    @abstractmethod
    def delete(self, entities: Iterable[Entity]) -> None:
        """Delete entities."""

    def create(self, entity_type: str, values: dict[str, Any] | None = None) -> Entity:
        """Create an unsaved entity.

        A "bundle" entry in values becomes the entity's bundle.
        """
        values = dict(values or {})
        bundle = str(values.pop("bundle", ""))
        return Entity(entity_type=entity_type, bundle=bundle, values=values)

    def field_max_length(self, entity_type: str, field_name: str) -> int | None:
        """Maximum stored length of a text field, None when unbounded."""
        return None

    def load_referenced(self, entity: Entity, field_name: str) -> list[Entity]:
        """Load the entities a reference field points to, skipping missing ones."""
        loaded = (self.load(target_type, target_id) for target_type, target_id in entity.references(field_name))
        return [target for target in loaded if target is not None]


def _matches(entity: Entity, properties: dict[str, Any]) -> bool:
    for key, expected in properties.items():
        if key == "id":
            actual: Any = entity.id
        elif key == "bundle":
            actual = entity.bundle
        else:
            actual = entity.values.get(key)
        if actual != expected and str(actual) != str(expected):
            return False
    return True


class InMemoryEntityStore(EntityStore):
    """Dict-backed entity store."""

    def __init__(
        self,
        clock: Callable[[], float] = time.time,
        max_lengths: dict[tuple[str, str], int] | None = None,
    ) -> None:
        self._entities: dict[tuple[str, str], Entity] = {}
        self._ids = itertools.count(1)
        self._clock = clock
        self._max_lengths = dict(max_lengths or {})

    def load(self, entity_type: str, entity_id: int | str) -> Entity | None:
        return self._entities.get((entity_type, str(entity_id)))

    def load_by_properties(self, entity_type: str, properties: dict[str, Any]) -> list[Entity]:
        return [
            entity
            for (stored_type, _), entity in self._entities.items()
            if stored_type == entity_type and _matches(entity, properties)
        ]

    def save(self, entity: Entity) -> Entity:
        if entity.id is None:
            entity.id = next(self._ids)
        entity.changed = int(self._clock())
        self._entities[(entity.entity_type, str(entity.id))] = entity
        return entity

    def delete(self, entities: Iterable[Entity]) -> None:
        for entity in entities:
            self._entities.pop((entity.entity_type, str(entity.id)), None)

    def field_max_length(self, entity_type: str, field_name: str) -> int | None:
        return self._max_lengths.get((entity_type, field_name))

    def __len__(self) -> int:
        return len(self._entities)
