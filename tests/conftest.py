"""Shared fixtures for apisync tests."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any

import pytest

from apisync.core.types import Direction, Trigger
from apisync.mapping.models import FieldMapping, MappedObjectType, Mapping
from apisync.remote.client import NotFoundError
from apisync.remote.query import SelectQuery
from apisync.remote.result import ODataObject, SelectQueryResult

START_TIME = 1_700_000_000


class FakeClock:
    """Settable time source returning epoch seconds."""

    def __init__(self, now: float = START_TIME) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class StubClient:
    """In-memory stand-in for ODataClient.

    Query results are served from ``pages``, a list of record lists; each
    page links to the next one. Writes are recorded in ``calls``.
    """

    def __init__(self, pages: list[list[dict[str, Any]]] | None = None, object_type: str = "Contacts") -> None:
        self.pages = pages or []
        self.object_type = object_type
        self.authorized = True
        self.queries: list[str] = []
        self.calls: list[tuple[str, str, dict[str, Any] | None]] = []
        self.records: dict[str, dict[str, Any]] = {}
        self.fail_on_page: int | None = None
        self.create_error: Exception | None = None
        self.update_error: Exception | None = None
        self.next_id = 100

    def _page(self, index: int) -> SelectQueryResult:
        if self.fail_on_page is not None and index == self.fail_on_page:
            raise ConnectionError(f"page {index} unavailable")
        records = self.pages[index] if index < len(self.pages) else []
        next_link = f"page/{index + 1}" if index + 1 < len(self.pages) else None
        return SelectQueryResult(
            records_list=[ODataObject(record, self.object_type) for record in records],
            next_link=next_link,
        )

    def is_authorized(self) -> bool:
        return self.authorized

    def query(self, query: SelectQuery) -> SelectQueryResult:
        self.queries.append(str(query))
        return self._page(0)

    def query_more(self, result: SelectQueryResult) -> SelectQueryResult:
        assert result.next_link is not None
        return self._page(int(result.next_link.split("/")[1]))

    def object_create(self, object_type: str, params: dict[str, Any]) -> ODataObject | None:
        self.calls.append(("create", object_type, params))
        if self.create_error is not None:
            raise self.create_error
        self.next_id += 1
        record = {"Id": self.next_id, **params}
        self.records[f"/{object_type}(Id={self.next_id})"] = record
        return ODataObject(record, object_type)

    def object_read(self, path: str) -> ODataObject:
        if path not in self.records:
            raise NotFoundError("Resource not found", 404)
        return ODataObject(self.records[path])

    def object_update(self, path: str, params: dict[str, Any]) -> None:
        self.calls.append(("update", path, params))
        if self.update_error is not None:
            raise self.update_error

    def object_delete(self, path: str, raise_not_found: bool = False) -> None:
        self.calls.append(("delete", path, None))
        self.records.pop(path, None)

    def object_describe(self, object_type: str, reset: bool = False) -> Any:
        raise NotFoundError(f"Object type {object_type} is not described by the service", 404)

    def close(self) -> None:
        pass


def make_mapped_object_type(type_id: str = "contact") -> MappedObjectType:
    """Mapped object type keyed directly on the remote Id."""
    return MappedObjectType(
        id=type_id,
        field_mappings=[
            FieldMapping(
                id=1,
                local_field="apisync_id",
                remote_field="Id",
                remote_type="Edm.Int32",
                direction=Direction.REMOTE_DRUPAL,
                is_key=True,
            ),
        ],
    )


def make_mapping(mapping_id: str = "contacts", **overrides: Any) -> Mapping:
    """Mapping of node/contact entities onto remote Contacts."""
    values: dict[str, Any] = {
        "id": mapping_id,
        "entity_type": "node",
        "bundle": "contact",
        "object_type": "Contacts",
        "mapped_object_type": make_mapped_object_type(),
        "field_mappings": [
            FieldMapping(id=10, local_field="title", remote_field="Name"),
            FieldMapping(id=11, local_field="email", remote_field="Email"),
        ],
        "sync_triggers": set(Trigger),
        "pull_trigger_date": "Modified",
    }
    values.update(overrides)
    return Mapping(**values)


@pytest.fixture
def clock() -> FakeClock:
    """A fake clock starting at a fixed time."""
    return FakeClock()


@pytest.fixture
def mapping_factory() -> Callable[..., Mapping]:
    """Build contact mappings with overridable attributes."""
    return make_mapping


@pytest.fixture
def mapping() -> Mapping:
    """The default contact mapping."""
    return make_mapping()


@pytest.fixture
def stub_client_class() -> type[StubClient]:
    """The in-memory remote client class."""
    return StubClient


@pytest.fixture
def stub_client() -> StubClient:
    """An in-memory remote client without query pages."""
    return StubClient()
