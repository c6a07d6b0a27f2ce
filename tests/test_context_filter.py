"""Tests for ContextFilter.

Covers:
- Filtered field sets are always subsets of the full schema
- Single, multiple, meta and full contexts
- Action visibility by declared contexts
- Multi-context union keeps the per-context breakdown
"""

import pytest

from schemacrud.errors import ValidationError
from schemacrud.schema.context import ContextFilter, context_key, parse_context
from schemacrud.schema.models import Context

CONTEXT_REQUESTS = [
    "list",
    "form",
    "detail",
    "meta",
    "list,form",
    "form,detail",
    "list,form,detail",
    "detail,meta",
]


@pytest.fixture
def users(store):
    return store.load("users")


@pytest.fixture
def context_filter():
    return ContextFilter()


class TestParseContext:
    def test_full_requests(self):
        assert parse_context(None) is None
        assert parse_context("") is None
        assert parse_context("full") is None
        assert parse_context(" FULL ") is None

    def test_tokens_are_ordered_and_deduplicated(self):
        assert parse_context("form, list,form") == [Context.FORM, Context.LIST]

    def test_unknown_token(self):
        with pytest.raises(ValidationError, match="Unknown schema context 'grid'"):
            parse_context("list,grid")

    def test_context_key(self):
        assert context_key(None) == "full"
        assert context_key([Context.LIST, Context.FORM]) == "list,form"


class TestFieldSubsets:
    @pytest.mark.parametrize("context", CONTEXT_REQUESTS)
    def test_filtered_fields_are_a_subset(self, users, context_filter, context):
        """No context ever invents fields."""
        filtered = context_filter.filter(users, context)
        assert set(filtered.fields) <= set(users.fields)
        for name, field_def in filtered.fields.items():
            assert field_def is users.fields[name]

    def test_list_is_subset_of_list_form(self, users, context_filter):
        combined = context_filter.filter(users, "list,form")
        listing = context_filter.filter(users, "list")
        assert set(listing.fields) <= set(combined.fields)

    def test_list_is_subset_of_list_form_through_store(self, store):
        combined = store.load("users", context="list,form")
        listing = store.load("users", context="list")
        assert set(listing.fields) <= set(combined.fields)

    def test_combined_is_union(self, users, context_filter):
        combined = context_filter.filter(users, "list,form")
        listing = context_filter.filter(users, "list")
        form = context_filter.filter(users, "form")
        assert set(combined.fields) == set(listing.fields) | set(form.fields)


class TestSingleContext:
    def test_list_fields(self, users, context_filter):
        listing = context_filter.filter(users, "list")
        assert list(listing.fields) == [
            "id", "name", "email", "flag_enabled", "status", "age", "post_count",
        ]
        assert listing.context == "list"

    def test_password_only_in_form(self, users, context_filter):
        assert "password" not in context_filter.filter(users, "list").fields
        assert "password" not in context_filter.filter(users, "detail").fields
        assert "password" in context_filter.filter(users, "form").fields

    def test_readonly_fields_stay_out_of_form(self, users, context_filter):
        form = context_filter.filter(users, "form")
        assert "id" not in form.fields
        assert "created_at" not in form.fields

    def test_actions_by_context(self, users, context_filter):
        listing = context_filter.filter(users, "list")
        detail = context_filter.filter(users, "detail")
        list_keys = {a.key for a in listing.actions}
        detail_keys = {a.key for a in detail.actions}

        # no declared contexts: visible everywhere
        assert "disable_user" in list_keys
        assert "disable_user" in detail_keys
        assert "view_profile" in list_keys
        assert "view_profile" not in detail_keys
        assert "password_action" in detail_keys
        assert "password_action" not in list_keys

    def test_relationships_only_in_detail(self, users, context_filter):
        assert context_filter.filter(users, "list").relationships == []
        detail = context_filter.filter(users, "detail")
        assert [r.name for r in detail.relationships] == ["roles", "permissions", "broken_roles"]
        assert [d.model for d in detail.details] == ["posts"]

    def test_default_sort_only_in_list(self, users, context_filter):
        assert context_filter.filter(users, "list").default_sort == {"name": "asc"}
        assert context_filter.filter(users, "form").default_sort == {}

    def test_source_schema_is_untouched(self, users, context_filter):
        before = set(users.fields)
        context_filter.filter(users, "meta")
        context_filter.filter(users, "list")
        assert set(users.fields) == before
        assert users.context is None


class TestMetaContext:
    def test_meta_has_no_fields(self, users, context_filter):
        meta = context_filter.filter(users, "meta")
        assert meta.fields == {}
        assert meta.actions == []

    def test_meta_keeps_model_metadata(self, users, context_filter):
        meta = context_filter.filter(users, "meta")
        assert meta.model == "users"
        assert meta.table == "users"
        assert meta.title == "USER.TITLE"
        assert meta.permissions == users.permissions


class TestMultipleContexts:
    def test_per_context_breakdown(self, users, context_filter):
        combined = context_filter.filter(users, "list,form")
        assert combined.context == "list,form"
        assert set(combined.contexts) == {"list", "form"}
        assert "password" in combined.contexts["form"].fields
        assert "password" not in combined.contexts["list"].fields

    def test_actions_are_unioned_once(self, users, context_filter):
        combined = context_filter.filter(users, "list,detail")
        keys = [a.key for a in combined.actions]
        assert len(keys) == len(set(keys))
        assert {"view_profile", "password_action"} <= set(keys)

    def test_serialized_breakdown(self, users, context_filter):
        data = context_filter.filter(users, "list,form").to_dict()
        assert set(data["contexts"]) == {"list", "form"}
        assert "password" in data["fields"]

    def test_full_schema(self, users, context_filter):
        assert context_filter.filter(users, None) is users
        assert context_filter.filter(users, "full") is users
