"""Field mapping plugins.

Each field mapping names a plugin that computes outbound values from a
local entity and inbound values from a remote record:

- properties: a local field or dotted property path
- constant: a fixed value pushed to the remote field
- drupal_constant: a fixed value pulled into the local field
- related_ids: the remote identity of a referenced entity (and back)
- related_properties: a property of a referenced entity ("field:subfield")
- related_term_string: a taxonomy term name, created on pull if missing
- token: templated text built from entity values
- broken: placeholder for unknown plugins; neither pushes nor pulls

Pulls never raise: pull_value returns a FieldResult carrying either the
value or a FieldError so the caller can skip the field and continue.
"""

from __future__ import annotations

import logging
import string
from dataclasses import dataclass
from datetime import UTC, date, datetime
from typing import TYPE_CHECKING, Any, ClassVar

import httpx

from apisync.core.types import ARRAY_DELIMITER
from apisync.entities import reference
from apisync.remote.client import RemoteError

if TYPE_CHECKING:
    from apisync.entities import Entity, EntityStore
    from apisync.mapping.models import FieldMapping, Mapping
    from apisync.remote.client import FieldDescription, ODataClient
    from apisync.remote.result import ODataObject
    from apisync.store.mapped_objects import MappedObjectStore

logger = logging.getLogger(__name__)


@dataclass
class FieldError:
    """Why a field could not be pulled."""

    field: str
    message: str
    exception: BaseException | None = None


@dataclass
class FieldResult:
    """Outcome of pulling one field.

    Attributes:
        value: Value to set on the local field.
        error: Set when the field could not be pulled.
        applied: True when the plugin already wrote the value to the entity.
    """

    value: Any = None
    error: FieldError | None = None
    applied: bool = False

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Any, applied: bool = False) -> FieldResult:
        return cls(value=value, applied=applied)

    @classmethod
    def failure(cls, field: str, message: str, exception: BaseException | None = None) -> FieldResult:
        return cls(error=FieldError(field, message, exception))


@dataclass
class FieldContext:
    """Collaborators available to field plugins.

    Attributes:
        entities: Local entity store.
        mapped_objects: Mapped object store for related-identity lookups.
        client: Remote client used to describe field types, if available.
    """

    entities: EntityStore
    mapped_objects: MappedObjectStore | None = None
    client: ODataClient | None = None

    def describe_field(self, mapping: Mapping, remote_field: str) -> FieldDescription | None:
        """Remote schema of a field, None when it cannot be described."""
        if self.client is None:
            return None
        try:
            return self.client.object_describe(mapping.object_type).get_field(remote_field)
        except (RemoteError, httpx.HTTPError) as e:
            logger.warning(
                "Field definition not found for %s.%s: %s", mapping.object_type, remote_field, e
            )
            return None


def _to_iso(value: Any) -> Any:
    if isinstance(value, datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.isoformat()
    if isinstance(value, date):
        return value.isoformat()
    if isinstance(value, int | float) and not isinstance(value, bool):
        return datetime.fromtimestamp(value, UTC).isoformat()
    return value


def coerce_push_value(value: Any, remote_type: str, max_length: int | None = None) -> Any:
    """Normalize an outbound value for a remote field type.

    Args:
        value: Raw value from the local entity.
        remote_type: EDM type of the remote field.
        max_length: Remote field length; strings are truncated to it.
    """
    if value is None:
        return None

    if remote_type == "Edm.Boolean":
        value = False if value == "false" else bool(value)
    elif remote_type == "Edm.Date":
        value = _to_iso(value)
        if isinstance(value, str):
            value = value[:10]
    elif remote_type == "Edm.DateTimeOffset":
        value = _to_iso(value)
    elif remote_type in ("Edm.Double", "Edm.Decimal", "Edm.Single"):
        value = float(value)
    elif remote_type in ("Edm.Int16", "Edm.Int32", "Edm.Int64", "Edm.Byte", "Edm.SByte"):
        value = int(value)
    elif isinstance(value, list | tuple):
        value = ARRAY_DELIMITER.join(str(item) for item in value)
    elif remote_type in ("Edm.String", "Edm.Guid") and not isinstance(value, str):
        value = str(value)

    if max_length and isinstance(value, str) and len(value) > max_length:
        value = value[:max_length]
    return value


def coerce_pull_value(value: Any, remote_type: str, max_length: int | None = None) -> Any:
    """Normalize an inbound value for storage on a local field.

    Args:
        value: Raw value from the remote record.
        remote_type: EDM type of the remote field.
        max_length: Local field length; strings are truncated to it.
    """
    if value is None:
        return None

    if remote_type == "Edm.Boolean":
        if isinstance(value, str):
            return value.lower() not in ("", "0", "false")
        return bool(value)
    if remote_type == "Edm.Date":
        return str(value)[:10]
    if remote_type == "Edm.DateTimeOffset":
        return str(value)[:19]
    if remote_type in ("Edm.Double", "Edm.Decimal", "Edm.Single"):
        return float(value)
    if remote_type in ("Edm.Int16", "Edm.Int32", "Edm.Int64", "Edm.Byte", "Edm.SByte"):
        return int(value)
    if max_length and isinstance(value, str) and len(value) > max_length:
        return value[:max_length]
    return value


class FieldPlugin:
    """Base field plugin: reads and writes a local field by name."""

    name: ClassVar[str] = "properties"
    supports_push: ClassVar[bool] = True
    supports_pull: ClassVar[bool] = True

    def __init__(self, field_mapping: FieldMapping) -> None:
        self.field_mapping = field_mapping

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.field_mapping.local_field!r} -> {self.field_mapping.remote_field!r})"

    def config(self, key: str, default: Any = None) -> Any:
        return self.field_mapping.config.get(key, default)

    @property
    def local_field(self) -> str:
        return self.field_mapping.local_field

    @property
    def remote_field(self) -> str:
        return self.field_mapping.remote_field

    def push(self) -> bool:
        return self.supports_push and self.field_mapping.pushes

    def pull(self) -> bool:
        return self.supports_pull and self.field_mapping.pulls

    def value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        """Raw outbound value computed from the local entity."""
        return entity.get(self.local_field)

    def push_value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        """Outbound value coerced to the remote field's type and length."""
        value = self.value(entity, mapping, context)
        if not self.push() or not self.remote_field:
            return value
        description = context.describe_field(mapping, self.remote_field)
        if description is not None:
            return coerce_push_value(value, description.type, description.max_length)
        return coerce_push_value(value, self.field_mapping.remote_type)

    def pull_value(
        self, record: ODataObject, entity: Entity, mapping: Mapping, context: FieldContext
    ) -> FieldResult:
        """Inbound value for the local field."""
        if not self.pull() or not self.remote_field:
            return FieldResult.failure(self.remote_field, "No data to pull, field mapping is not defined")
        if not record.has_field(self.remote_field):
            return FieldResult.failure(
                self.remote_field, f"Field {mapping.object_type}.{self.remote_field} not found on record"
            )
        return self._pull(record.field(self.remote_field), entity, mapping, context)

    def _pull(self, value: Any, entity: Entity, mapping: Mapping, context: FieldContext) -> FieldResult:
        description = context.describe_field(mapping, self.remote_field)
        remote_type = description.type if description else self.field_mapping.remote_type
        max_length = context.entities.field_max_length(entity.entity_type, self.local_field)
        try:
            return FieldResult.success(coerce_pull_value(value, remote_type, max_length))
        except (TypeError, ValueError) as e:
            return FieldResult.failure(self.remote_field, f"Cannot convert value {value!r}", e)


PLUGINS: dict[str, type[FieldPlugin]] = {}


def register_field_plugin(cls: type[FieldPlugin]) -> type[FieldPlugin]:
    """Class decorator adding a plugin to the registry under its name."""
    PLUGINS[cls.name] = cls
    return cls


register_field_plugin(FieldPlugin)


@register_field_plugin
class ConstantField(FieldPlugin):
    """Pushes a configured constant."""

    name = "constant"
    supports_pull = False

    def value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        return self.config("value")


@register_field_plugin
class LocalConstantField(FieldPlugin):
    """Pulls a configured constant into the local field."""

    name = "drupal_constant"
    supports_push = False

    def pull_value(
        self, record: ODataObject, entity: Entity, mapping: Mapping, context: FieldContext
    ) -> FieldResult:
        if not self.pull():
            return FieldResult.failure(self.remote_field, "Field does not pull")
        return FieldResult.success(self.config("value"))


@register_field_plugin
class RelatedIdsField(FieldPlugin):
    """Remote identity of the entity referenced by a local reference field.

    Unsynced references resolve to None rather than failing.
    """

    name = "related_ids"

    def value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        if context.mapped_objects is None:
            return None
        refs = entity.references(self.local_field)
        if not refs:
            return None
        target_type, target_id = refs[0]
        for mapped_object in context.mapped_objects.load_by_entity(target_type, target_id):
            if mapped_object.remote_id:
                return mapped_object.remote_id
        return None

    def _pull(self, value: Any, entity: Entity, mapping: Mapping, context: FieldContext) -> FieldResult:
        if not value or context.mapped_objects is None:
            return FieldResult.success(None)
        mapping_id = self.config("mapping", mapping.id)
        mapped_object = context.mapped_objects.load_by_remote_id(str(value), mapping_id)
        if mapped_object is None or mapped_object.entity_id is None:
            return FieldResult.success(None)
        target = context.entities.load(mapped_object.entity_type, mapped_object.entity_id)
        return FieldResult.success(reference(target) if target is not None else None)


@register_field_plugin
class RelatedPropertiesField(FieldPlugin):
    """A property of the first entity referenced by "field:subfield"."""

    name = "related_properties"
    supports_pull = False

    def value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        field_name, _, property_name = self.local_field.partition(":")
        targets = context.entities.load_referenced(entity, field_name)
        if not targets or not property_name:
            return None
        return targets[0].get(property_name)


@register_field_plugin
class RelatedTermStringField(FieldPlugin):
    """Name of the referenced taxonomy term.

    On pull, the term is looked up by name in the configured vocabularies
    and created in the first one when missing.
    """

    name = "related_term_string"
    term_type = "taxonomy_term"

    def value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        terms = context.entities.load_referenced(entity, self.local_field)
        return terms[0].get("name") if terms else None

    def _pull(self, value: Any, entity: Entity, mapping: Mapping, context: FieldContext) -> FieldResult:
        if not value:
            return FieldResult.success(None)
        vocabularies: list[str] = list(self.config("vocabularies", []))
        for vocabulary in vocabularies or [None]:
            properties: dict[str, Any] = {"name": value}
            if vocabulary is not None:
                properties["bundle"] = vocabulary
            existing = context.entities.load_by_properties(self.term_type, properties)
            if existing:
                return FieldResult.success(reference(existing[0]))

        term = context.entities.create(
            self.term_type, {"bundle": vocabularies[0] if vocabularies else "", "name": value}
        )
        context.entities.save(term)
        logger.debug("Created term %s (%s) for %s", term.id, value, self.remote_field)
        return FieldResult.success(reference(term))


class _TemplateValues(dict):  # type: ignore[type-arg]
    def __init__(self, entity: Entity) -> None:
        super().__init__()
        self._entity = entity

    def __missing__(self, key: str) -> str:
        value = self._entity.get(key)
        return "" if value is None else str(value)


@register_field_plugin
class TokenField(FieldPlugin):
    """Templated text such as "{first_name} {last_name}"; empty renders None."""

    name = "token"
    supports_pull = False

    def value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        template = str(self.config("template", self.local_field))
        rendered = string.Formatter().vformat(template, (), _TemplateValues(entity)).strip()
        return rendered or None


@register_field_plugin
class BrokenField(FieldPlugin):
    """Placeholder for a plugin that could not be found."""

    name = "broken"
    supports_push = False
    supports_pull = False

    def value(self, entity: Entity, mapping: Mapping, context: FieldContext) -> Any:
        return None


def create_field_plugin(field_mapping: FieldMapping) -> FieldPlugin:
    """Instantiate the plugin selected by a field mapping.

    Unknown plugin names fall back to BrokenField.
    """
    plugin_class = PLUGINS.get(field_mapping.plugin)
    if plugin_class is None:
        logger.warning(
            "Unknown field plugin %r for %s, using broken placeholder",
            field_mapping.plugin,
            field_mapping.remote_field,
        )
        plugin_class = BrokenField
    return plugin_class(field_mapping)
