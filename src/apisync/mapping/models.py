"""Mapping definitions.

This module provides:
- FieldMapping: One local selector to remote field pairing
- MappedObjectType: The key and metadata fields stored on mapped objects
- Mapping: A local type/bundle to remote object type pairing

Mappings are deployable configuration. Runtime timestamps (last pull,
push and delete) are kept in MappingStateStore, not here.
"""

from __future__ import annotations

from collections import Counter
from collections.abc import Iterable
from dataclasses import dataclass, field

from apisync.core.dates import format_odata_datetime
from apisync.core.exceptions import ConfigurationError, MappingError
from apisync.core.types import EDM_DATA_TYPES, IDENTITY_FIELD, Direction, Trigger
from apisync.remote.query import SelectQuery


@dataclass
class FieldMapping:
    """A single field mapping.

    Attributes:
        id: Stable numeric id. Key fields are ordered by it.
        local_field: Local field selector (may be "field:subfield" or a dotted path).
        remote_field: Remote field name.
        remote_type: Declared EDM type of the remote field.
        direction: Which way values flow.
        is_key: Whether the field participates in identity derivation.
        plugin: Field plugin discriminator.
        description: Free-text description.
        config: Plugin-specific settings (constant value, template, vocabularies...).
    """

    id: int
    local_field: str
    remote_field: str
    remote_type: str = "Edm.String"
    direction: Direction = Direction.SYNC
    is_key: bool = False
    plugin: str = "properties"
    description: str = ""
    config: dict[str, object] = field(default_factory=dict)

    def __post_init__(self) -> None:
        self.direction = Direction(self.direction)

    @property
    def pushes(self) -> bool:
        return self.direction in (Direction.DRUPAL_REMOTE, Direction.SYNC)

    @property
    def pulls(self) -> bool:
        return self.direction in (Direction.REMOTE_DRUPAL, Direction.SYNC)


@dataclass
class MappedObjectType:
    """Field mappings stored on each mapped object of a mapping.

    Exactly the key-marked fields derive the remote identity.
    """

    id: str
    label: str = ""
    field_mappings: list[FieldMapping] = field(default_factory=list)

    def key_field_mappings(self) -> list[FieldMapping]:
        """Key field mappings sorted by ascending id.

        The order is part of the hashed identity and must not change.
        """
        return sorted((fm for fm in self.field_mappings if fm.is_key), key=lambda fm: fm.id)

    def identity_is_hashed(self) -> bool:
        """True unless a field maps directly onto the identity attribute."""
        return not any(fm.local_field == IDENTITY_FIELD for fm in self.field_mappings)

    def get_field_mapping(self, local_field: str) -> FieldMapping | None:
        for fm in self.field_mappings:
            if fm.local_field == local_field:
                return fm
        return None

    def violations(self) -> list[str]:
        """Validate the field mapping set.

        Returns:
            A list of human-readable problems, empty when valid.
        """
        problems: list[str] = []
        keys = self.key_field_mappings()
        if not keys:
            problems.append(f"Mapped object type {self.id} must define at least one key field")
        if len(keys) > 1 and any(fm.local_field == IDENTITY_FIELD for fm in keys):
            problems.append(
                f"Mapped object type {self.id} has several key fields, "
                f"none of them may map onto {IDENTITY_FIELD}"
            )

        for attribute, label in (
            ("remote_field", "remote field"),
            ("local_field", "local field"),
            ("id", "id"),
        ):
            counts = Counter(getattr(fm, attribute) for fm in self.field_mappings)
            for value, count in sorted(counts.items(), key=lambda item: str(item[0])):
                if count > 1:
                    problems.append(f"Duplicate {label} {value!r} in mapped object type {self.id}")

        for fm in self.field_mappings:
            if fm.remote_type not in EDM_DATA_TYPES:
                problems.append(f"Field {fm.remote_field} has unsupported type {fm.remote_type}")
            if not fm.is_key and fm.local_field == IDENTITY_FIELD:
                problems.append(f"Non-key field {fm.remote_field} may not map onto {IDENTITY_FIELD}")
        return problems

    def validate(self) -> None:
        """Raise ConfigurationError when the set has violations."""
        problems = self.violations()
        if problems:
            raise ConfigurationError("; ".join(problems))


@dataclass
class Mapping:
    """Configuration linking one local type/bundle to one remote object type."""

    id: str
    entity_type: str
    bundle: str
    object_type: str
    label: str = ""
    mapped_object_type: MappedObjectType | None = None
    field_mappings: list[FieldMapping] = field(default_factory=list)
    sync_triggers: set[Trigger] = field(default_factory=set)
    weight: int = 0
    status: bool = True
    async_push: bool = False
    push_standalone: bool = False
    pull_standalone: bool = False
    pull_trigger_date: str = ""
    pull_where_clause: str = ""
    push_frequency: int = 0
    push_limit: int = 0
    push_retries: int = 3
    pull_frequency: int = 0

    def __post_init__(self) -> None:
        self.sync_triggers = {Trigger(t) for t in self.sync_triggers}

    def check_triggers(self, triggers: Iterable[Trigger]) -> bool:
        """True if any of the given triggers is enabled."""
        return any(Trigger(t) in self.sync_triggers for t in triggers)

    def does_push(self) -> bool:
        return any(t.is_push for t in self.sync_triggers)

    def does_pull(self) -> bool:
        return any(t.is_pull for t in self.sync_triggers)

    def get_push_fields(self) -> list[FieldMapping]:
        return [fm for fm in self.field_mappings if fm.pushes]

    def get_pull_fields(self) -> list[FieldMapping]:
        return [fm for fm in self.field_mappings if fm.pulls]

    def get_pull_field_names(self) -> list[str]:
        """Remote names of every pull-enabled field."""
        return [fm.remote_field for fm in self.get_pull_fields()]

    def get_key_fields(self) -> list[FieldMapping]:
        """Key field mappings of the mapped object type.

        Raises:
            ConfigurationError: If the mapping has no mapped object type.
        """
        return self.require_mapped_object_type().key_field_mappings()

    def require_mapped_object_type(self) -> MappedObjectType:
        if self.mapped_object_type is None:
            raise ConfigurationError(f"No mapped object type found for mapping {self.id}")
        return self.mapped_object_type

    def next_pull_time(self, last_pull: int) -> int:
        return last_pull + self.pull_frequency

    def next_push_time(self, last_push: int) -> int:
        return last_push + self.push_frequency

    def get_pull_query(
        self,
        last_pull: int = 0,
        start: int = 0,
        stop: int = 0,
        fields: list[str] | None = None,
    ) -> SelectQuery:
        """Build the windowed pull query.

        Args:
            last_pull: The mapping's watermark, used when start is 0.
            start: Optional explicit window start (epoch seconds).
            stop: Optional window stop (epoch seconds).
            fields: Remote fields to select instead of the pull fields.

        Returns:
            Query selecting pull fields, metadata fields and the trigger date.

        Raises:
            MappingError: If the mapping does not pull.
            ConfigurationError: If the mapping has no mapped object type.
        """
        if not self.does_pull():
            raise MappingError(f"Mapping {self.id} does not pull")

        query = SelectQuery(self.object_type)
        query.set_fields(fields or self.get_pull_field_names())

        for fm in self.require_mapped_object_type().field_mappings:
            query.add_field(fm.remote_field)

        if self.pull_trigger_date:
            query.add_field(self.pull_trigger_date)

        start = start if start > 0 else last_pull
        # Without a watermark or window start every record is fetched
        if start and self.pull_trigger_date:
            query.add_condition(self.pull_trigger_date, format_odata_datetime(start), ">")

        if stop and self.pull_trigger_date:
            query.add_condition(self.pull_trigger_date, format_odata_datetime(stop), "<")

        if self.pull_where_clause:
            query.add_built_condition(self.pull_where_clause)

        return query
