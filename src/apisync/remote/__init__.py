"""Remote module - OData client, queries and results."""

from apisync.remote.client import (
    AuthenticationError,
    FieldDescription,
    NotFoundError,
    ObjectDescription,
    ODataClient,
    RemoteError,
)
from apisync.remote.query import Condition, SelectQuery
from apisync.remote.result import ODataObject, SelectQueryResult

__all__ = [
    "AuthenticationError",
    "Condition",
    "FieldDescription",
    "NotFoundError",
    "ObjectDescription",
    "ODataClient",
    "ODataObject",
    "RemoteError",
    "SelectQuery",
    "SelectQueryResult",
]
