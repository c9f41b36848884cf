"""Mapping module - Mapping definitions, field plugins and identity."""

from apisync.mapping.fields import (
    PLUGINS,
    FieldContext,
    FieldError,
    FieldPlugin,
    FieldResult,
    create_field_plugin,
)
from apisync.mapping.identity import IdentityProvider, hash_identity
from apisync.mapping.models import FieldMapping, MappedObjectType, Mapping
from apisync.mapping.registry import MappingRegistry

__all__ = [
    "PLUGINS",
    "FieldContext",
    "FieldError",
    "FieldMapping",
    "FieldPlugin",
    "FieldResult",
    "IdentityProvider",
    "MappedObjectType",
    "Mapping",
    "MappingRegistry",
    "create_field_plugin",
    "hash_identity",
]
