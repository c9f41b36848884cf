"""Tests for the table-backed entity store."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from apisync.entities import Entity
from apisync.store.database import Database
from apisync.store.entities import SqlEntityStore


@pytest.fixture
def db(tmp_path: Path) -> Iterator[Database]:
    """Create a test database."""
    db = Database(tmp_path / "test.db")
    yield db
    db.close()


@pytest.fixture
def store(db: Database) -> SqlEntityStore:
    return SqlEntityStore(db, clock=lambda: 1000.0)


class TestSqlEntityStore:
    """Tests for SqlEntityStore class."""

    def test_save_and_load(self, store: SqlEntityStore) -> None:
        """Saved entities should load back with their values."""
        entity = store.save(store.create("node", {"bundle": "contact", "title": "Ada"}))

        loaded = store.load("node", str(entity.id))

        assert loaded is not None
        assert loaded.bundle == "contact"
        assert loaded.values == {"title": "Ada"}
        assert loaded.changed == 1000

    def test_load_checks_type(self, store: SqlEntityStore) -> None:
        """Ids of another entity type or invalid ids should not load."""
        entity = store.save(Entity("node"))
        assert store.load("taxonomy_term", entity.id) is None  # type: ignore[arg-type]
        assert store.load("node", "abc") is None

    def test_update(self, store: SqlEntityStore) -> None:
        entity = store.save(Entity("node", values={"title": "Ada"}))
        entity.set("title", "Grace")
        store.save(entity)
        assert store.load("node", entity.id).get("title") == "Grace"  # type: ignore[arg-type,union-attr]

    def test_load_by_properties(self, store: SqlEntityStore) -> None:
        """Lookups should filter on bundle, id and values."""
        first = store.save(Entity("node", "contact", values={"email": "a@example.com"}))
        store.save(Entity("node", "lead", values={"email": "a@example.com"}))
        store.save(Entity("node", "contact", values={"email": "b@example.com"}))

        found = store.load_by_properties("node", {"bundle": "contact", "email": "a@example.com"})
        assert [e.id for e in found] == [first.id]
        assert len(store.load_by_properties("node", {"bundle": "contact"})) == 2
        assert [e.id for e in store.load_by_properties("node", {"id": first.id})] == [first.id]

    def test_delete(self, store: SqlEntityStore) -> None:
        entity = store.save(Entity("node"))
        store.delete([entity, Entity("node")])
        assert store.load("node", entity.id) is None  # type: ignore[arg-type]
