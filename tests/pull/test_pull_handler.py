"""Tests for PullQueueHandler and the pull watermark."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING, Any
from unittest.mock import MagicMock

import pytest

from apisync.core.config import SyncSettings
from apisync.core.dates import format_odata_datetime
from apisync.core.types import Trigger
from apisync.events import EventDispatcher, QueryEvent, SignalEvent, SyncEvents
from apisync.mapping.models import Mapping
from apisync.mapping.registry import MappingRegistry
from apisync.pull.handler import PullQueueHandler
from apisync.pull.queue import PullQueue
from apisync.remote.result import ODataObject
from apisync.store.database import Database
from apisync.store.mapped_objects import MappedObjectStore
from apisync.store.state import MappingStateStore

if TYPE_CHECKING:
    from conftest import FakeClock, StubClient

T0 = 1_699_990_000


def contact(record_id: int, modified: int) -> dict[str, Any]:
    return {"Id": record_id, "Name": f"Contact {record_id}", "Modified": format_odata_datetime(modified)}


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    """Create a test database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def queue(db: Database, clock: FakeClock) -> PullQueue:
    return PullQueue(db, clock)


@pytest.fixture
def state(db: Database) -> MappingStateStore:
    return MappingStateStore(db)


@pytest.fixture
def store(db: Database) -> MappedObjectStore:
    return MappedObjectStore(db)


@pytest.fixture
def signals() -> dict[str, list[SignalEvent]]:
    return {"error": [], "notice": []}


@pytest.fixture
def events(signals: dict[str, list[SignalEvent]]) -> EventDispatcher:
    events = EventDispatcher()
    events.subscribe(SyncEvents.ERROR, signals["error"].append)
    events.subscribe(SyncEvents.NOTICE, signals["notice"].append)
    return events


@pytest.fixture
def make_handler(
    queue: PullQueue,
    state: MappingStateStore,
    store: MappedObjectStore,
    events: EventDispatcher,
    clock: FakeClock,
    mapping: Mapping,
) -> Callable[..., PullQueueHandler]:
    """Build a handler around a client, registering the default mapping."""

    def make(client: Any, settings: SyncSettings | None = None) -> PullQueueHandler:
        registry = MappingRegistry()
        registry.add(mapping)
        return PullQueueHandler(client, registry, queue, state, store, settings, events, clock)

    return make


class TestWatermark:
    """Tests for draining pages and advancing the last pull time."""

    def test_drains_every_page(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        queue: PullQueue,
        state: MappingStateStore,
        mapping: Mapping,
    ) -> None:
        """All pages should be queued and the newest trigger date stored."""
        client = stub_client_class([[contact(1, T0 + 10), contact(2, T0 + 90)], [contact(3, T0 + 50)]])
        handler = make_handler(client)

        assert handler.get_updated_records_for_mapping(mapping) == 2

        assert queue.number_of_items("contacts") == 3
        assert state.get_last_pull_time("contacts") == T0 + 90

    def test_query_starts_at_watermark(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        state: MappingStateStore,
        mapping: Mapping,
    ) -> None:
        state.set_last_pull_time("contacts", T0)
        client = stub_client_class([[contact(1, T0 + 10)]])

        make_handler(client).get_updated_records_for_mapping(mapping)

        assert f"$filter=Modified gt {format_odata_datetime(T0)}" in client.queries[0]
        assert client.queries[0].startswith("Contacts?$select=Name,Email,Id,Modified")

    def test_never_moves_backwards(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        state: MappingStateStore,
        mapping: Mapping,
    ) -> None:
        """Records older than the watermark should not lower it."""
        state.set_last_pull_time("contacts", T0 + 500)
        client = stub_client_class([[contact(1, T0 + 10)]])

        make_handler(client).get_updated_records_for_mapping(mapping, start=T0)

        assert state.get_last_pull_time("contacts") == T0 + 500

    def test_failed_drain_keeps_watermark(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        queue: PullQueue,
        state: MappingStateStore,
        signals: dict[str, list[SignalEvent]],
        mapping: Mapping,
    ) -> None:
        """A page failure should leave the watermark for the next run to retry."""
        client = stub_client_class([[contact(1, T0 + 10), contact(2, T0 + 20)], [contact(3, T0 + 30)]])
        client.fail_on_page = 1
        handler = make_handler(client)

        results = handler.do_query(mapping)
        assert results is not None
        assert handler.enqueue_all_results(mapping, results) is False

        assert state.get_last_pull_time("contacts") == 0
        assert queue.number_of_items() == 2
        assert "watermark kept" in signals["error"][0].render()

    def test_unparseable_dates_ignored(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        state: MappingStateStore,
        mapping: Mapping,
    ) -> None:
        client = stub_client_class([[{"Id": 1, "Modified": "yesterday"}, contact(2, T0)]])
        make_handler(client).get_updated_records_for_mapping(mapping)
        assert state.get_last_pull_time("contacts") == T0


class TestScheduling:
    """Tests for cadence, backpressure and query failures."""

    def test_backpressure(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        queue: PullQueue,
        signals: dict[str, list[SignalEvent]],
    ) -> None:
        """An overfull queue should block querying."""
        for record_id in range(3):
            queue.create_item("contacts", ODataObject({"Id": record_id}, "Contacts"))
        client = stub_client_class([[contact(9, T0)]])

        assert make_handler(client, SyncSettings(pull_max_queue_size=2)).get_updated_records() is False
        assert client.queries == []
        assert "exceeding the max size of 2 items" in signals["notice"][0].render()

    def test_queries_cron_mappings(
        self, make_handler: Callable[..., PullQueueHandler], stub_client_class: type[StubClient], queue: PullQueue
    ) -> None:
        client = stub_client_class([[contact(1, T0)]])
        assert make_handler(client).get_updated_records() is True
        assert queue.number_of_items() == 1

    def test_not_due(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        state: MappingStateStore,
        mapping_factory: Callable[..., Mapping],
        clock: FakeClock,
    ) -> None:
        """Mappings should not be queried before their pull frequency elapsed."""
        mapping = mapping_factory(pull_frequency=600)
        state.set_last_pull_time("contacts", int(clock.now) - 60)
        client = stub_client_class([[contact(1, T0)]])
        handler = make_handler(client)

        assert handler.get_updated_records_for_mapping(mapping) is None
        assert client.queries == []
        assert handler.get_updated_records_for_mapping(mapping, start=T0) == 1

    def test_explicit_stop_bypasses_frequency(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        state: MappingStateStore,
        mapping_factory: Callable[..., Mapping],
        clock: FakeClock,
    ) -> None:
        """A window stop alone should query even when the pull is not due."""
        mapping = mapping_factory(pull_frequency=600)
        state.set_last_pull_time("contacts", int(clock.now) - 60)
        client = stub_client_class([[contact(1, T0)]])

        assert make_handler(client).get_updated_records_for_mapping(mapping, stop=int(clock.now)) == 1
        assert len(client.queries) == 1

    def test_not_pulling(
        self, make_handler: Callable[..., PullQueueHandler], stub_client: StubClient, mapping_factory: Callable[..., Mapping]
    ) -> None:
        mapping = mapping_factory(sync_triggers={Trigger.PUSH_CREATE})
        assert make_handler(stub_client).get_updated_records_for_mapping(mapping) is None

    def test_query_failure(
        self,
        make_handler: Callable[..., PullQueueHandler],
        signals: dict[str, list[SignalEvent]],
        mapping: Mapping,
    ) -> None:
        """A failing query should be reported and return None."""
        client = MagicMock()
        client.query.side_effect = ConnectionError("down")

        assert make_handler(client).get_updated_records_for_mapping(mapping) is None
        assert "Pull query for mapping contacts failed" in signals["error"][0].render()

    def test_subscribers_alter_query(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client_class: type[StubClient],
        events: EventDispatcher,
        mapping: Mapping,
    ) -> None:
        def alter(event: QueryEvent) -> None:
            event.query.add_condition("Status", "'Active'")

        events.subscribe(SyncEvents.PULL_QUERY, alter)
        client = stub_client_class([[contact(1, T0)]])

        make_handler(client).get_updated_records_for_mapping(mapping, where="Region eq 'EU'")

        assert "$filter=Region eq 'EU' and Status eq 'Active'" in client.queries[0]


class TestSingleRecord:
    """Tests for get_single_updated_record."""

    def test_enqueues_without_watermark(
        self,
        make_handler: Callable[..., PullQueueHandler],
        stub_client: StubClient,
        store: MappedObjectStore,
        queue: PullQueue,
        state: MappingStateStore,
        mapping: Mapping,
    ) -> None:
        """A single record should be queued forced without touching the watermark."""
        store.save(store.create(mapping, remote_id="7"))
        stub_client.records["/Contacts(Id=7)"] = contact(7, T0 + 999)

        assert make_handler(stub_client).get_single_updated_record(mapping, "7") is True

        item = queue.items()[0]
        assert item.force_pull is True
        assert PullQueue.record_of(item).object_type == "Contacts"
        assert state.get_last_pull_time("contacts") == 0

    def test_unknown_remote_id(
        self, make_handler: Callable[..., PullQueueHandler], stub_client: StubClient, mapping: Mapping
    ) -> None:
        assert make_handler(stub_client).get_single_updated_record(mapping, "7") is False
