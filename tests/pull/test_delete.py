"""Tests for orphan detection and delete reconciliation."""

from __future__ import annotations

from collections.abc import Callable, Iterator
from pathlib import Path
from typing import TYPE_CHECKING
from unittest.mock import MagicMock

import pytest

from apisync.core.types import Trigger
from apisync.entities import Entity, InMemoryEntityStore
from apisync.events import DeleteAllowedEvent, EventDispatcher, SignalEvent, SyncEvents
from apisync.mapping.models import Mapping
from apisync.mapping.registry import MappingRegistry
from apisync.pull.delete import DeleteHandler, DeleteProvider
from apisync.store.database import Database
from apisync.store.mapped_objects import MappedObjectStore
from apisync.store.models import MappedObject
from apisync.store.state import MappingStateStore

if TYPE_CHECKING:
    from conftest import FakeClock, StubClient


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    """Create a test database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def store(db: Database) -> MappedObjectStore:
    return MappedObjectStore(db)


@pytest.fixture
def entities(clock: FakeClock) -> InMemoryEntityStore:
    return InMemoryEntityStore(clock)


@pytest.fixture
def link(store: MappedObjectStore, entities: InMemoryEntityStore, mapping: Mapping) -> Callable[[int], MappedObject]:
    """Save an entity linked to remote record remote_id."""

    def make(remote_id: int) -> MappedObject:
        entity = entities.save(Entity("node", "contact", values={"title": f"Contact {remote_id}"}))
        return store.save(store.create(mapping, entity, remote_id=str(remote_id)))

    return make


class TestDeleteProvider:
    """Tests for get_orphaned_local_ids."""

    def test_diff_across_pages(
        self,
        store: MappedObjectStore,
        stub_client_class: type[StubClient],
        link: Callable[[int], MappedObject],
        mapping: Mapping,
    ) -> None:
        """Identities missing from every page should be orphaned."""
        kept = [link(1), link(2), link(3)]
        orphan = link(4)
        client = stub_client_class([[{"Id": 3}], [{"Id": 1}, {"Id": 99}], [{"Id": 2}]])

        orphans = DeleteProvider(client, store).get_orphaned_local_ids(mapping)  # type: ignore[arg-type]

        assert orphans == {orphan.id}
        assert all(mapped_object.id not in orphans for mapped_object in kept)
        assert client.queries == ["Contacts?$select=Id"]

    def test_page_order_irrelevant(
        self,
        store: MappedObjectStore,
        stub_client_class: type[StubClient],
        link: Callable[[int], MappedObject],
        mapping: Mapping,
    ) -> None:
        orphan = link(1)
        link(2)
        one_page = stub_client_class([[{"Id": 2}, {"Id": 3}]])
        two_pages = stub_client_class([[{"Id": 3}], [{"Id": 2}]])

        assert DeleteProvider(one_page, store).get_orphaned_local_ids(mapping) == {orphan.id}  # type: ignore[arg-type]
        assert DeleteProvider(two_pages, store).get_orphaned_local_ids(mapping) == {orphan.id}  # type: ignore[arg-type]

    def test_nothing_mapped(self, store: MappedObjectStore, mapping: Mapping) -> None:
        """No query should be made without mapped identities."""
        client = MagicMock()
        assert DeleteProvider(client, store).get_orphaned_local_ids(mapping) == set()
        client.query.assert_not_called()

    def test_listing_failure_raises(
        self,
        store: MappedObjectStore,
        stub_client_class: type[StubClient],
        link: Callable[[int], MappedObject],
        mapping: Mapping,
    ) -> None:
        link(1)
        client = stub_client_class([[{"Id": 2}], [{"Id": 3}]])
        client.fail_on_page = 1
        with pytest.raises(ConnectionError):
            DeleteProvider(client, store).get_orphaned_local_ids(mapping)  # type: ignore[arg-type]


class TestDeleteHandler:
    """Tests for process_deleted_records."""

    @pytest.fixture
    def make_handler(
        self,
        db: Database,
        store: MappedObjectStore,
        entities: InMemoryEntityStore,
        clock: FakeClock,
    ) -> Callable[..., DeleteHandler]:
        def make(client: object, mapping: Mapping, events: EventDispatcher | None = None) -> DeleteHandler:
            registry = MappingRegistry()
            registry.add(mapping)
            provider = DeleteProvider(client, store)  # type: ignore[arg-type]
            return DeleteHandler(registry, provider, store, entities, MappingStateStore(db), events, clock)

        return make

    def test_deletes_orphans(
        self,
        make_handler: Callable[..., DeleteHandler],
        db: Database,
        store: MappedObjectStore,
        entities: InMemoryEntityStore,
        stub_client_class: type[StubClient],
        link: Callable[[int], MappedObject],
        mapping: Mapping,
        clock: FakeClock,
    ) -> None:
        """Orphaned entities and their links should be deleted and the run stamped."""
        link(1)
        orphan = link(2)

        handler = make_handler(stub_client_class([[{"Id": 1}]]), mapping)

        assert handler.process_deleted_records() == 1
        assert store.load(orphan.id) is None
        assert entities.load("node", orphan.entity_id) is None  # type: ignore[arg-type]
        assert len(entities) == 1
        assert MappingStateStore(db).get_last_delete_time("contacts") == int(clock.now)

    def test_veto(
        self,
        make_handler: Callable[..., DeleteHandler],
        store: MappedObjectStore,
        entities: InMemoryEntityStore,
        stub_client_class: type[StubClient],
        link: Callable[[int], MappedObject],
        mapping: Mapping,
    ) -> None:
        """delete_allowed subscribers should be able to keep an orphan."""
        orphan = link(1)
        events = EventDispatcher()
        events.subscribe(SyncEvents.DELETE_ALLOWED, DeleteAllowedEvent.disallow_delete)

        handler = make_handler(stub_client_class([[]]), mapping, events)

        assert handler.process_deleted_records() == 0
        assert store.load(orphan.id) is not None
        assert len(entities) == 1

    def test_skips_mappings_without_trigger(
        self,
        make_handler: Callable[..., DeleteHandler],
        stub_client_class: type[StubClient],
        link: Callable[[int], MappedObject],
        mapping_factory: Callable[..., Mapping],
    ) -> None:
        link(1)
        client = stub_client_class([[]])
        mapping = mapping_factory(sync_triggers={Trigger.PULL_CREATE, Trigger.PULL_UPDATE})

        assert make_handler(client, mapping).process_deleted_records() == 0
        assert client.queries == []

    def test_failure_keeps_stamp(
        self,
        make_handler: Callable[..., DeleteHandler],
        db: Database,
        store: MappedObjectStore,
        link: Callable[[int], MappedObject],
        mapping: Mapping,
    ) -> None:
        """A failing listing should delete nothing and leave the last delete time."""
        orphan = link(1)
        errors: list[SignalEvent] = []
        events = EventDispatcher()
        events.subscribe(SyncEvents.ERROR, errors.append)
        client = MagicMock()
        client.query.side_effect = ConnectionError("down")

        assert make_handler(client, mapping, events).process_deleted_records() == 0
        assert store.load(orphan.id) is not None
        assert MappingStateStore(db).get_last_delete_time("contacts") == 0
        assert "Delete reconciliation of mapping contacts failed" in errors[0].render()
