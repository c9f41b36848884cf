"""Remote identity derivation.

A mapped object links a local entity to a remote record through a
canonical identity string. With a single key mapped directly onto the
identity attribute that string is the raw key value. Otherwise the key
values are concatenated in ascending field-mapping id order and hashed
with MD5, which keeps composite keys at a fixed length.
"""

from __future__ import annotations

import hashlib
import logging
from typing import TYPE_CHECKING

from apisync.core.exceptions import ConfigurationError

if TYPE_CHECKING:
    from apisync.mapping.models import Mapping
    from apisync.remote.result import ODataObject

logger = logging.getLogger(__name__)


def hash_identity(values: list[str]) -> str:
    """Hash concatenated key values.

    Args:
        values: Key values in key order.

    Returns:
        32-character hex MD5 digest.
    """
    return hashlib.md5("".join(values).encode("utf-8")).hexdigest()


def _as_string(value: object) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "1" if value else ""
    return str(value)


class IdentityProvider:
    """Derives the canonical remote identity of a record for a mapping."""

    def derive_identity(self, record: ODataObject, mapping: Mapping) -> str:
        """Derive the remote identity string.

        Args:
            record: Remote record holding the key fields.
            mapping: Mapping whose mapped object type declares the keys.

        Returns:
            The raw key value for directly mapped identities, otherwise an MD5 hash.

        Raises:
            ConfigurationError: If the mapping has no key configuration or a
                key field is missing from the record.
        """
        mapped_object_type = mapping.mapped_object_type
        if mapped_object_type is None:
            raise ConfigurationError(f"No mapped object type found for mapping {mapping.id}")

        key_fields = mapped_object_type.key_field_mappings()
        if not key_fields:
            raise ConfigurationError(f"Mapping {mapping.id} does not define any key field")

        values: list[str] = []
        for key_field in key_fields:
            if not record.has_field(key_field.remote_field):
                raise ConfigurationError(
                    f"Key field {key_field.remote_field} missing from record for mapping {mapping.id}"
                )
            values.append(_as_string(record.field(key_field.remote_field)))

        if not mapped_object_type.identity_is_hashed():
            # Direct identity, validated to be the only key
            return values[0]
        return hash_identity(values)
