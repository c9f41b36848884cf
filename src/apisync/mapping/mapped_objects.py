"""Mapped-object helpers shared by the push and pull workers."""

from __future__ import annotations

from typing import TYPE_CHECKING

from apisync.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from apisync.mapping.identity import IdentityProvider
    from apisync.mapping.models import Mapping
    from apisync.remote.result import ODataObject
    from apisync.store.models import MappedObject


def _is_empty(value: object) -> bool:
    return value is None or value == ""


def remote_path(mapped_object: MappedObject, mapping: Mapping) -> str:
    """Build the remote path of a mapped object, e.g. /Contacts(Type='A',Id=3).

    Key values come from the mapped object's metadata in key order.
    String keys are quoted.

    Raises:
        ConfigurationError: If a key value is missing.
    """
    components = []
    for key_field in mapping.get_key_fields():
        value = mapped_object.get_value(key_field.local_field)
        if _is_empty(value):
            raise ConfigurationError(
                f"Mapped object {mapped_object.id} has no value for key {key_field.local_field}"
            )
        if key_field.remote_type == "Edm.String":
            escaped = str(value).replace("'", "''")
            value = f"'{escaped}'"
        components.append(f"{key_field.remote_field}={value}")
    return f"/{mapping.object_type}({','.join(components)})"


def apply_record_metadata(
    mapped_object: MappedObject,
    record: ODataObject,
    mapping: Mapping,
    identity_provider: IdentityProvider,
) -> None:
    """Copy metadata fields from a remote record onto a mapped object.

    Only empty metadata values are filled. The remote identity is derived
    when it is not already set.

    Raises:
        ConfigurationError: If the mapped object's type does not match the
            mapping, or the record lacks a metadata field.
    """
    mapped_object_type = mapping.require_mapped_object_type()
    if mapped_object.type != mapped_object_type.id:
        raise ConfigurationError(
            f"The mapped object must have the same type as mapping {mapping.id} "
            f"({mapped_object_type.id}), but has {mapped_object.type}"
        )

    for field_mapping in mapped_object_type.field_mappings:
        if not _is_empty(mapped_object.get_value(field_mapping.local_field)):
            continue
        if not record.has_field(field_mapping.remote_field):
            raise ConfigurationError(
                f"The remote record must define the field {field_mapping.remote_field} "
                f"for mapping {mapping.id}"
            )
        mapped_object.set_value(field_mapping.local_field, record.field(field_mapping.remote_field))

    # Hash-derived identities are not mapped directly
    if _is_empty(mapped_object.remote_id):
        mapped_object.remote_id = identity_provider.derive_identity(record, mapping)
