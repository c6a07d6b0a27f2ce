"""Tests for SchemaStore loading, validation messages, caching and sources.

Covers:
- Structural failures name the missing/mismatched key
- Memoization per (model, connection) and explicit clear()
- Per-context cached variants
- Directory and mapping document sources
"""

import json
import threading

import pytest
import yaml

from schemacrud.errors import ConfigError, NotFoundError, ValidationError
from schemacrud.schema.loader import DirectorySchemaSource, MappingSchemaSource
from schemacrud.schema.models import (
    ForeignKeyRelationship,
    ManyToManyRelationship,
    ManyToManyThroughRelationship,
)
from schemacrud.schema.store import SchemaStore, cache_key

from conftest import all_documents, users_document


class CountingSource(MappingSchemaSource):
    """Mapping source that records every read."""

    def __init__(self, documents):
        super().__init__(documents)
        self.reads = []

    def read(self, model, connection=None):
        self.reads.append((model, connection))
        return super().read(model, connection)


def _store(**documents) -> SchemaStore:
    return SchemaStore(MappingSchemaSource(documents))


# ---------------------------------------------------------------------------
# Structural validation
# ---------------------------------------------------------------------------


class TestLoadFailures:
    """Failures must name the offending key, not just the error kind."""

    def test_missing_document(self):
        store = _store()
        with pytest.raises(NotFoundError, match="Schema not found for model 'ghost'"):
            store.load("ghost")

    @pytest.mark.parametrize("key", ["model", "table", "fields"])
    def test_missing_required_key(self, key):
        document = users_document()
        del document[key]
        store = _store(users=document)
        with pytest.raises(ConfigError) as exc_info:
            store.load("users")
        assert exc_info.value.message == (
            f"Schema for model 'users' is missing required field: {key}"
        )

    def test_model_name_mismatch(self):
        document = users_document()
        document["model"] = "customers"
        store = _store(users=document)
        with pytest.raises(ConfigError, match="'customers' does not match requested model 'users'"):
            store.load("users")

    def test_empty_fields(self):
        document = users_document()
        document["fields"] = {}
        store = _store(users=document)
        with pytest.raises(ConfigError, match="non-empty 'fields'"):
            store.load("users")

    def test_duplicate_field_names_in_list_form(self):
        store = _store(tags={
            "model": "tags",
            "table": "tags",
            "fields": [
                {"name": "id", "type": "integer"},
                {"name": "label", "type": "string"},
                {"name": "label", "type": "text"},
            ],
        })
        with pytest.raises(ConfigError, match="defines field 'label' more than once"):
            store.load("tags")

    def test_list_field_entry_must_be_an_object(self):
        store = _store(tags={"model": "tags", "table": "tags", "fields": ["id", "label"]})
        with pytest.raises(ConfigError, match="field at index 0 that is not an object"):
            store.load("tags")

    def test_field_definition_must_be_an_object(self):
        document = users_document()
        document["fields"]["name"] = "string"
        store = _store(users=document)
        with pytest.raises(ConfigError, match="field 'name' must be an object"):
            store.load("users")

    def test_null_field_definition_uses_defaults(self):
        document = users_document()
        document["fields"]["nickname"] = None
        assert _store(users=document).load("users").fields["nickname"].type == "string"

    def test_json_schema_violation_reports_location(self):
        document = users_document()
        document["fields"]["name"]["filterType"] = "fuzzy"
        store = _store(users=document)
        with pytest.raises(ConfigError) as exc_info:
            store.load("users")
        assert "fields/name/filter_type" in exc_info.value.message

    def test_unknown_context_token(self):
        store = _store(**all_documents())
        with pytest.raises(ValidationError, match="Unknown schema context 'grid'"):
            store.load("users", context="list,grid")

    def test_failed_load_is_not_cached(self):
        document = users_document()
        del document["table"]
        store = _store(users=document)
        with pytest.raises(ConfigError):
            store.load("users")
        assert not store.is_cached("users")


# ---------------------------------------------------------------------------
# Parsing
# ---------------------------------------------------------------------------


class TestParsedSchema:
    def test_relationship_variants(self, store):
        users = store.load("users")
        assert isinstance(users.get_relationship("roles"), ManyToManyRelationship)
        assert isinstance(users.get_relationship("permissions"), ManyToManyThroughRelationship)
        assert users.get_relationship("roles").pivot_table == "user_roles"

    def test_relationship_without_type_is_foreign_key(self):
        document = users_document()
        document["relationships"] = [{"name": "posts", "foreignKey": "user_id"}]
        users = _store(users=document).load("users")
        relationship = users.get_relationship("posts")
        assert isinstance(relationship, ForeignKeyRelationship)
        assert relationship.model == "posts"

    def test_boolean_subtype_keeps_ui_hint(self, store):
        field_def = store.load("users").fields["flag_enabled"]
        assert field_def.type == "boolean"
        assert field_def.ui["component"] == "toggle"

    def test_primary_key_is_readonly(self, store):
        field_def = store.load("users").fields["id"]
        assert field_def.readonly is True

    def test_soft_delete_and_timestamps(self, store):
        users = store.load("users")
        assert users.soft_delete is True
        assert users.timestamps is True
        assert store.load("tags").timestamps is False

    def test_default_actions_follow_permissions(self, store):
        keys = [a.key for a in store.load("users").actions]
        assert keys[:2] == ["edit_action", "delete_action"]
        assert "create_action" not in keys

    def test_coerce_id(self, store):
        users = store.load("users")
        assert users.coerce_id("7") == 7
        with pytest.raises(NotFoundError, match="Record 'abc' not found for model 'users'"):
            users.coerce_id("abc")


# ---------------------------------------------------------------------------
# Caching
# ---------------------------------------------------------------------------


class TestCaching:
    def test_cache_key_format(self):
        assert cache_key("users") == "users:default"
        assert cache_key("users", "reporting") == "users:reporting"

    def test_second_load_issues_no_read(self):
        source = CountingSource(all_documents())
        store = SchemaStore(source)
        first = store.load("users")
        second = store.load("users")
        assert first is second
        assert source.reads == [("users", None)]

    def test_context_variants_are_cached(self):
        source = CountingSource(all_documents())
        store = SchemaStore(source)
        first = store.load("users", context="list")
        second = store.load("users", context="list")
        assert first is second
        assert len(source.reads) == 1

    def test_multi_context_reuses_single_context_entries(self):
        store = SchemaStore(MappingSchemaSource(all_documents()))
        listing = store.load("users", context="list")
        combined = store.load("users", context="list,form")
        assert combined.contexts["list"] is listing

    def test_connections_are_cached_separately(self):
        reporting = users_document()
        reporting["table"] = "report_users"
        store = SchemaStore(MappingSchemaSource({
            "users": users_document(),
            "reporting/users": reporting,
        }))
        default = store.load("users")
        qualified = store.load("users", "reporting")
        assert default.table == "users"
        assert default.connection is None
        assert qualified.table == "report_users"
        assert qualified.connection == "reporting"

    @pytest.mark.parametrize("context", [None, "list", "list,form"])
    def test_concurrent_cold_loads(self, context):
        store = SchemaStore(MappingSchemaSource(all_documents()))
        workers = 8
        barrier = threading.Barrier(workers)
        results = []
        errors = []

        def load():
            barrier.wait()
            try:
                results.append(store.load("users", context=context))
            except Exception as exc:  # noqa: BLE001
                errors.append(exc)

        threads = [threading.Thread(target=load) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)

        assert errors == []
        assert len(results) == workers
        cached = store.load("users", context=context)
        assert all(schema is cached for schema in results)
        assert store.clear() == 1

    def test_clear_one_model(self):
        source = CountingSource(all_documents())
        store = SchemaStore(source)
        store.load("users")
        store.load("roles")
        store.load("users", context="list")

        assert store.clear("users") == 1
        assert not store.is_cached("users")
        assert store.is_cached("roles")

        store.load("users", context="list")
        assert source.reads.count(("users", None)) == 2

    def test_clear_all(self, store):
        store.load("users")
        store.load("roles")
        assert store.clear() == 2
        assert not store.is_cached("users")
        assert not store.is_cached("roles")

    def test_clear_one_connection(self):
        store = SchemaStore(MappingSchemaSource({"users": users_document()}))
        store.load("users")
        store.load("users", "reporting")
        assert store.clear("users", "reporting") == 1
        assert store.is_cached("users")
        assert not store.is_cached("users", "reporting")


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


class TestDirectorySchemaSource:
    def test_reads_json_and_yaml(self, tmp_path):
        (tmp_path / "users.json").write_text(json.dumps(users_document()))
        (tmp_path / "roles.yaml").write_text(yaml.safe_dump(all_documents()["roles"]))
        store = SchemaStore(DirectorySchemaSource(tmp_path))
        assert store.load("users").table == "users"
        assert store.load("roles").table == "roles"

    def test_connection_subdirectory_wins(self, tmp_path):
        (tmp_path / "users.json").write_text(json.dumps(users_document()))
        (tmp_path / "reporting").mkdir()
        reporting = users_document()
        reporting["table"] = "report_users"
        (tmp_path / "reporting" / "users.json").write_text(json.dumps(reporting))

        store = SchemaStore(DirectorySchemaSource(tmp_path))
        assert store.load("users", "reporting").table == "report_users"
        assert store.load("users").table == "users"

    def test_falls_back_to_root_for_connection(self, tmp_path):
        (tmp_path / "users.json").write_text(json.dumps(users_document()))
        store = SchemaStore(DirectorySchemaSource(tmp_path))
        schema = store.load("users", "reporting")
        assert schema.table == "users"
        assert schema.connection == "reporting"

    def test_unsafe_name_is_not_found(self, tmp_path):
        store = SchemaStore(DirectorySchemaSource(tmp_path))
        with pytest.raises(NotFoundError):
            store.load("../etc/passwd")

    def test_unparseable_file(self, tmp_path):
        (tmp_path / "users.json").write_text("{not json")
        store = SchemaStore(DirectorySchemaSource(tmp_path))
        with pytest.raises(ConfigError, match="Could not parse schema file"):
            store.load("users")

    def test_undecodable_file(self, tmp_path):
        (tmp_path / "users.json").write_bytes(b"\xff\xfe{}")
        store = SchemaStore(DirectorySchemaSource(tmp_path))
        with pytest.raises(ConfigError, match="Could not parse schema file"):
            store.load("users")

    def test_list_models(self, tmp_path):
        (tmp_path / "users.json").write_text(json.dumps(users_document()))
        (tmp_path / "reporting").mkdir()
        (tmp_path / "reporting" / "users.json").write_text(json.dumps(users_document()))
        source = DirectorySchemaSource(tmp_path)
        assert source.list_models() == [("users", None), ("users", "reporting")]

    def test_missing_root_lists_nothing(self, tmp_path):
        assert DirectorySchemaSource(tmp_path / "missing").list_models() == []


class TestMappingSchemaSource:
    def test_documents_are_copied(self):
        documents = {"users": users_document()}
        source = MappingSchemaSource(documents)
        source.read("users")["table"] = "mutated"
        assert source.read("users")["table"] == "users"

    def test_list_models(self):
        source = MappingSchemaSource({"users": {}, "reporting/users": {}})
        assert source.list_models() == [("users", None), ("users", "reporting")]
