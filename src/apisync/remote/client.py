"""HTTP client for the remote OData service.

This module provides:
- ODataClient: Paginated queries, object CRUD and schema describe
- ObjectDescription: Field types and lengths of a remote object type
- RemoteError hierarchy mapped from HTTP statuses
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from apisync.core.config import RemoteConfig
from apisync.core.exceptions import ApiSyncError
from apisync.remote.query import SelectQuery
from apisync.remote.result import ODataObject, SelectQueryResult
from apisync.remote.retry import retry_with_backoff

logger = logging.getLogger(__name__)


class RemoteError(ApiSyncError):
    """Base exception for remote API errors."""

    def __init__(self, message: str, status_code: int | None = None, response_body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


class AuthenticationError(RemoteError):
    """Authentication failed."""


class NotFoundError(RemoteError):
    """Resource not found."""


@dataclass
class FieldDescription:
    """Schema of one remote field."""

    name: str
    type: str = "Edm.String"
    max_length: int | None = None
    nullable: bool = True


@dataclass
class ObjectDescription:
    """Schema of a remote object type.

    Attributes:
        name: Entity set or type name that was described.
        keys: Key property names.
        fields: Field name to description mapping.
    """

    name: str
    keys: list[str] = field(default_factory=list)
    fields: dict[str, FieldDescription] = field(default_factory=dict)

    def get_field(self, name: str) -> FieldDescription | None:
        return self.fields.get(name)

    @classmethod
    def from_csdl(cls, name: str, entity_type: dict[str, Any]) -> ObjectDescription:
        """Create from a JSON CSDL entity type definition."""
        fields: dict[str, FieldDescription] = {}
        for prop_name, prop in entity_type.items():
            if prop_name.startswith("$") or not isinstance(prop, dict):
                continue
            if prop.get("$Kind", "Property") != "Property":
                continue
            fields[prop_name] = FieldDescription(
                name=prop_name,
                type=prop.get("$Type", "Edm.String"),
                max_length=prop.get("$MaxLength"),
                nullable=bool(prop.get("$Nullable", False)),
            )
        return cls(name=name, keys=list(entity_type.get("$Key", [])), fields=fields)


class ODataClient:
    """HTTP client for an OData v4 service."""

    def __init__(
        self,
        config: RemoteConfig,
        token_refresher: Callable[[], str] | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        """Initialize the OData client.

        Args:
            config: Remote connection configuration.
            token_refresher: Optional callable returning a fresh token after a 401.
            transport: Optional httpx transport (used for testing).
        """
        self._config = config
        self._token_refresher = token_refresher
        self._metadata: dict[str, Any] | None = None
        self._descriptions: dict[str, ObjectDescription] = {}
        self._client = httpx.Client(
            base_url=config.base_url,
            timeout=config.timeout,
            verify=config.verify_ssl,
            headers=self._auth_headers(config.token),
            transport=transport,
        )

    @staticmethod
    def _auth_headers(token: str) -> dict[str, str]:
        headers = {"Accept": "application/json"}
        if token:
            headers["Authorization"] = f"Bearer {token}"
        return headers

    def close(self) -> None:
        """Close the HTTP client."""
        self._client.close()

    def __enter__(self) -> ODataClient:
        """Context manager entry."""
        return self

    def __exit__(self, *args: object) -> None:
        """Context manager exit."""
        self.close()

    def is_authorized(self) -> bool:
        """Check if the client has credentials to call the service."""
        return self._config.is_authorized

    def _handle_response(self, response: httpx.Response) -> httpx.Response:
        """Handle API response and raise appropriate exceptions."""
        if response.status_code in (401, 403):
            raise AuthenticationError("Invalid or expired token", response.status_code, response.text)
        if response.status_code == 404:
            raise NotFoundError("Resource not found", 404, response.text)
        if response.status_code >= 400:
            raise RemoteError(self._error_detail(response), response.status_code, response.text)
        return response

    @staticmethod
    def _error_detail(response: httpx.Response) -> str:
        try:
            body = response.json()
        except ValueError:
            return response.text or f"HTTP {response.status_code}"
        error = body.get("error") if isinstance(body, dict) else None
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        return f"HTTP {response.status_code}"

    def _send(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        return retry_with_backoff(
            lambda: self._client.request(method, path, **kwargs),
            max_retries=self._config.max_retries,
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        """Send a request, refreshing the token once on 401."""
        response = self._send(method, path, **kwargs)
        if response.status_code == 401 and self._token_refresher is not None:
            logger.info("Remote returned 401, refreshing token")
            token = self._token_refresher()
            self._config.token = token
            self._client.headers.update(self._auth_headers(token))
            response = self._send(method, path, **kwargs)
        return self._handle_response(response)

    @staticmethod
    def _json(response: httpx.Response) -> dict[str, Any] | None:
        if response.status_code == 204 or not response.content:
            return None
        data = response.json()
        return data if isinstance(data, dict) else None

    # === Queries ===

    def query(self, query: SelectQuery) -> SelectQueryResult:
        """Execute a select query and return its first page."""
        logger.debug("Querying %s", query)
        response = self._request("GET", f"/{query}")
        return SelectQueryResult.from_response(self._json(response) or {}, query.object_type)

    def query_more(self, result: SelectQueryResult) -> SelectQueryResult:
        """Fetch the page following result.

        Raises:
            RemoteError: If result has no next page.
        """
        if not result.next_link:
            raise RemoteError("Query result has no further pages")
        path = result.next_link
        if path.startswith(self._config.base_url):
            path = path[len(self._config.base_url):]
        elif path.startswith(self._config.instance_url):
            path = path[len(self._config.instance_url):]
        response = self._request("GET", path)
        object_type = result.records_list[0].object_type if result.records_list else None
        return SelectQueryResult.from_response(self._json(response) or {}, object_type)

    # === Objects ===

    def object_create(self, object_type: str, params: dict[str, Any]) -> ODataObject | None:
        """Create a remote object.

        Returns:
            The created record when the service returns a representation.
        """
        response = self._request(
            "POST", f"/{object_type}", json=params, headers={"Prefer": "return=representation"}
        )
        data = self._json(response)
        return ODataObject(data, object_type) if data is not None else None

    def object_read(self, path: str) -> ODataObject:
        """Read a single remote object by its path."""
        response = self._request("GET", path)
        return ODataObject(self._json(response) or {})

    def object_update(self, path: str, params: dict[str, Any]) -> None:
        """Update a remote object unconditionally."""
        self._request("PATCH", path, json=params, headers={"If-Match": "*"})

    def object_delete(self, path: str, raise_not_found: bool = False) -> None:
        """Delete a remote object.

        Args:
            path: Object path such as /Contacts(42).
            raise_not_found: Raise NotFoundError instead of ignoring a 404.
        """
        try:
            self._request("DELETE", path, headers={"If-Match": "*"})
        except NotFoundError:
            if raise_not_found:
                raise
            logger.debug("Remote object %s already deleted", path)

    # === Schema ===

    def metadata(self, reset: bool = False) -> dict[str, Any]:
        """Get the service's JSON CSDL document (cached)."""
        if self._metadata is None or reset:
            response = self._request("GET", "/$metadata", params={"$format": "json"})
            self._metadata = self._json(response) or {}
            self._descriptions.clear()
        return self._metadata

    def object_describe(self, object_type: str, reset: bool = False) -> ObjectDescription:
        """Describe a remote object type by entity set or entity type name.

        Raises:
            NotFoundError: If the metadata does not define the type.
        """
        if object_type in self._descriptions and not reset:
            return self._descriptions[object_type]

        metadata = self.metadata(reset=reset)
        entity_type = self._find_entity_type(metadata, object_type)
        if entity_type is None:
            raise NotFoundError(f"Object type {object_type} is not described by the service", 404)

        description = ObjectDescription.from_csdl(object_type, entity_type)
        self._descriptions[object_type] = description
        return description

    @staticmethod
    def _find_entity_type(metadata: dict[str, Any], name: str) -> dict[str, Any] | None:
        types: dict[str, dict[str, Any]] = {}
        sets: dict[str, str] = {}
        for namespace, schema in metadata.items():
            if namespace.startswith("$") or not isinstance(schema, dict):
                continue
            for element_name, element in schema.items():
                if not isinstance(element, dict):
                    continue
                kind = element.get("$Kind")
                if kind == "EntityType":
                    types[f"{namespace}.{element_name}"] = element
                    types.setdefault(element_name, element)
                elif kind == "EntityContainer":
                    for set_name, entity_set in element.items():
                        if isinstance(entity_set, dict) and entity_set.get("$Collection"):
                            sets[set_name] = entity_set.get("$Type", "")

        if name in sets:
            return types.get(sets[name])
        return types.get(name)
