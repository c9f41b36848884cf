"""Tests for field mapping plugins."""

from __future__ import annotations

from datetime import UTC, date, datetime
from typing import Any
from unittest.mock import MagicMock

import pytest

from apisync.entities import Entity, InMemoryEntityStore
from apisync.mapping.fields import (
    BrokenField,
    FieldContext,
    FieldPlugin,
    FieldResult,
    coerce_pull_value,
    coerce_push_value,
    create_field_plugin,
)
from apisync.mapping.models import FieldMapping, Mapping
from apisync.remote.client import FieldDescription, ObjectDescription, RemoteError
from apisync.remote.result import ODataObject


@pytest.fixture
def entities() -> InMemoryEntityStore:
    """Entity store with a bounded title field."""
    return InMemoryEntityStore(max_lengths={("node", "title"): 5})


@pytest.fixture
def context(entities: InMemoryEntityStore) -> FieldContext:
    """Field context without remote client or mapped objects."""
    return FieldContext(entities)


def field(plugin: str = "properties", **kwargs: Any) -> FieldMapping:
    values: dict[str, Any] = {"id": 1, "local_field": "title", "remote_field": "Name", "plugin": plugin}
    values.update(kwargs)
    return FieldMapping(**values)


class TestCoercePushValue:
    """Tests for coerce_push_value function."""

    def test_none_passes_through(self) -> None:
        assert coerce_push_value(None, "Edm.Int32") is None

    def test_boolean(self) -> None:
        """The string "false" should push as False."""
        assert coerce_push_value("false", "Edm.Boolean") is False
        assert coerce_push_value(1, "Edm.Boolean") is True

    def test_dates(self) -> None:
        """Dates should push as ISO 8601 strings."""
        assert coerce_push_value(date(2024, 5, 1), "Edm.Date") == "2024-05-01"
        assert coerce_push_value(datetime(2024, 5, 1, 10, 0), "Edm.Date") == "2024-05-01"
        assert coerce_push_value(0, "Edm.DateTimeOffset") == "1970-01-01T00:00:00+00:00"
        assert (
            coerce_push_value(datetime(2024, 5, 1, 10, 0, tzinfo=UTC), "Edm.DateTimeOffset")
            == "2024-05-01T10:00:00+00:00"
        )

    def test_numbers(self) -> None:
        assert coerce_push_value("5", "Edm.Int32") == 5
        assert coerce_push_value("2.5", "Edm.Decimal") == 2.5

    def test_multi_value_joined(self) -> None:
        """Lists should be joined with the array delimiter."""
        assert coerce_push_value(["a", "b"], "Edm.String") == "a;b"

    def test_truncation(self) -> None:
        """Strings should be cut to the remote length."""
        assert coerce_push_value("abcdef", "Edm.String", 3) == "abc"
        assert coerce_push_value(12, "Edm.String") == "12"


class TestCoercePullValue:
    """Tests for coerce_pull_value function."""

    def test_boolean(self) -> None:
        assert coerce_pull_value("false", "Edm.Boolean") is False
        assert coerce_pull_value("1", "Edm.Boolean") is True
        assert coerce_pull_value(0, "Edm.Boolean") is False

    def test_dates_trimmed(self) -> None:
        """Date-times should drop zone and fractions."""
        assert coerce_pull_value("2024-05-01T10:00:00.123Z", "Edm.DateTimeOffset") == "2024-05-01T10:00:00"
        assert coerce_pull_value("2024-05-01T10:00:00Z", "Edm.Date") == "2024-05-01"

    def test_numbers(self) -> None:
        assert coerce_pull_value("7", "Edm.Int64") == 7
        assert coerce_pull_value(1, "Edm.Double") == 1.0

    def test_truncation(self) -> None:
        assert coerce_pull_value("abcdef", "Edm.String", 4) == "abcd"

    def test_invalid_number(self) -> None:
        with pytest.raises(ValueError):
            coerce_pull_value("seven", "Edm.Int32")


class TestPropertiesPlugin:
    """Tests for the default properties plugin."""

    def test_push_value(self, mapping: Mapping, context: FieldContext) -> None:
        """Push should read the local field."""
        plugin = create_field_plugin(field())
        assert type(plugin) is FieldPlugin
        assert plugin.push_value(Entity("node", values={"title": "Ada"}), mapping, context) == "Ada"

    def test_dotted_path(self, mapping: Mapping, context: FieldContext) -> None:
        """Dotted selectors should traverse nested values."""
        plugin = create_field_plugin(field(local_field="address.city", remote_field="City"))
        entity = Entity("node", values={"address": {"city": "Paris"}})
        assert plugin.push_value(entity, mapping, context) == "Paris"

    def test_pull_truncates_to_local_length(self, mapping: Mapping, context: FieldContext) -> None:
        """Pulled strings should fit the local field."""
        plugin = create_field_plugin(field())
        result = plugin.pull_value(ODataObject({"Name": "Augusta"}), Entity("node"), mapping, context)
        assert result.ok
        assert result.value == "Augus"

    def test_pull_missing_field(self, mapping: Mapping, context: FieldContext) -> None:
        """A field absent from the record should be a failure, not an exception."""
        plugin = create_field_plugin(field())
        result = plugin.pull_value(ODataObject({"Id": 1}), Entity("node"), mapping, context)
        assert not result.ok
        assert result.error is not None
        assert "Contacts.Name" in result.error.message

    def test_pull_conversion_failure(self, mapping: Mapping, context: FieldContext) -> None:
        """Unconvertible values should be failures."""
        plugin = create_field_plugin(field(remote_type="Edm.Int32"))
        result = plugin.pull_value(ODataObject({"Name": "many"}), Entity("node"), mapping, context)
        assert not result.ok
        assert isinstance(result.error.exception, ValueError)  # type: ignore[union-attr]

    def test_push_only_field_does_not_pull(self, mapping: Mapping, context: FieldContext) -> None:
        plugin = create_field_plugin(field(direction="drupal_remote"))
        assert plugin.push()
        assert not plugin.pull()
        assert not plugin.pull_value(ODataObject({"Name": "x"}), Entity("node"), mapping, context).ok

    def test_remote_type_from_description(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        """Described remote types should take precedence over the declared type."""
        client = MagicMock()
        client.object_describe.return_value = ObjectDescription(
            "Contacts", fields={"Name": FieldDescription("Name", "Edm.String", max_length=2)}
        )
        context = FieldContext(entities, client=client)
        plugin = create_field_plugin(field())
        assert plugin.push_value(Entity("node", values={"title": "Ada"}), mapping, context) == "Ad"

    def test_describe_failure_falls_back(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        """A failing describe should fall back to the declared type."""
        client = MagicMock()
        client.object_describe.side_effect = RemoteError("unavailable", 503)
        context = FieldContext(entities, client=client)
        plugin = create_field_plugin(field(remote_type="Edm.Int32"))
        assert plugin.push_value(Entity("node", values={"title": "3"}), mapping, context) == 3


class TestConstantPlugins:
    """Tests for constant plugins."""

    def test_constant_pushes_config(self, mapping: Mapping, context: FieldContext) -> None:
        plugin = create_field_plugin(field("constant", config={"value": "web"}))
        assert plugin.push_value(Entity("node"), mapping, context) == "web"
        assert not plugin.pull()

    def test_local_constant_pulls_config(self, mapping: Mapping, context: FieldContext) -> None:
        plugin = create_field_plugin(field("drupal_constant", config={"value": "imported"}))
        result = plugin.pull_value(ODataObject({}), Entity("node"), mapping, context)
        assert result == FieldResult.success("imported")
        assert not plugin.push()


class TestRelatedPlugins:
    """Tests for reference-based plugins."""

    def test_related_ids_push(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        """Push should send the remote identity of the referenced entity."""
        mapped_objects = MagicMock()
        mapped_objects.load_by_entity.return_value = [MagicMock(remote_id=None), MagicMock(remote_id="77")]
        context = FieldContext(entities, mapped_objects)
        plugin = create_field_plugin(field("related_ids", local_field="account", remote_field="AccountId"))
        entity = Entity("node", values={"account": {"target_type": "node", "target_id": 3}})

        assert plugin.push_value(entity, mapping, context) == "77"
        mapped_objects.load_by_entity.assert_called_once_with("node", 3)

    def test_related_ids_unsynced_reference(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        """Unsynced references should push None."""
        mapped_objects = MagicMock()
        mapped_objects.load_by_entity.return_value = []
        context = FieldContext(entities, mapped_objects)
        plugin = create_field_plugin(field("related_ids", local_field="account", remote_field="AccountId"))
        entity = Entity("node", values={"account": {"target_type": "node", "target_id": 3}})

        assert plugin.push_value(entity, mapping, context) is None

    def test_related_ids_pull(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        """Pull should resolve the remote identity to a local reference."""
        account = entities.save(Entity("node", "account", values={"title": "Acme"}))
        mapped_objects = MagicMock()
        mapped_objects.load_by_remote_id.return_value = MagicMock(entity_type="node", entity_id=str(account.id))
        context = FieldContext(entities, mapped_objects)
        plugin = create_field_plugin(
            field("related_ids", local_field="account", remote_field="AccountId", config={"mapping": "accounts"})
        )

        result = plugin.pull_value(ODataObject({"AccountId": 9}), Entity("node"), mapping, context)

        assert result.value == {"target_type": "node", "target_id": account.id}
        mapped_objects.load_by_remote_id.assert_called_once_with("9", "accounts")

    def test_related_properties(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        """field:subfield selectors should read the referenced entity."""
        account = entities.save(Entity("node", "account", values={"title": "Acme"}))
        context = FieldContext(entities)
        plugin = create_field_plugin(
            field("related_properties", local_field="account:title", remote_field="AccountName")
        )
        entity = Entity("node", values={"account": [{"target_type": "node", "target_id": account.id}]})

        assert plugin.push_value(entity, mapping, context) == "Acme"

    def test_term_string_pull_creates_once(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        """Missing terms should be created in the first vocabulary and reused afterwards."""
        context = FieldContext(entities)
        plugin = create_field_plugin(
            field("related_term_string", local_field="tags", remote_field="Tag", config={"vocabularies": ["tags"]})
        )
        record = ODataObject({"Tag": "vip"})

        first = plugin.pull_value(record, Entity("node"), mapping, context)
        second = plugin.pull_value(record, Entity("node"), mapping, context)

        assert first.value == second.value
        terms = entities.load_by_properties("taxonomy_term", {"name": "vip"})
        assert len(terms) == 1
        assert terms[0].bundle == "tags"

    def test_term_string_push(self, mapping: Mapping, entities: InMemoryEntityStore) -> None:
        term = entities.save(Entity("taxonomy_term", "tags", values={"name": "vip"}))
        context = FieldContext(entities)
        plugin = create_field_plugin(field("related_term_string", local_field="tags", remote_field="Tag"))
        entity = Entity("node", values={"tags": {"target_type": "taxonomy_term", "target_id": term.id}})

        assert plugin.push_value(entity, mapping, context) == "vip"


class TestOtherPlugins:
    """Tests for token and broken plugins."""

    def test_token_template(self, mapping: Mapping, context: FieldContext) -> None:
        plugin = create_field_plugin(
            field("token", local_field="full_name", config={"template": "{first} {last}"})
        )
        entity = Entity("node", values={"first": "Ada", "last": "Lovelace"})
        assert plugin.push_value(entity, mapping, context) == "Ada Lovelace"

    def test_token_empty_is_none(self, mapping: Mapping, context: FieldContext) -> None:
        plugin = create_field_plugin(field("token", config={"template": "{missing}"}))
        assert plugin.push_value(Entity("node"), mapping, context) is None

    def test_unknown_plugin_is_broken(self) -> None:
        """Unknown plugin names should neither push nor pull."""
        plugin = create_field_plugin(field("does_not_exist"))
        assert isinstance(plugin, BrokenField)
        assert not plugin.push()
        assert not plugin.pull()
