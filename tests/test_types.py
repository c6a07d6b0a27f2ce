"""Tests for the field type registry and value coercion."""

from datetime import date, datetime

import pytest

from schemacrud.core.types import (
    coerce_value,
    get_field_type,
    get_storage_type,
    is_known_type,
    is_textual,
    is_truthy,
)
from schemacrud.schema.models import FieldDef


class TestRegistry:
    def test_ui_subtypes_resolve_to_storage_types(self):
        assert get_storage_type("email") == "string"
        assert get_storage_type("currency") == "decimal"
        assert get_storage_type("boolean-tgl") == "boolean"
        assert get_storage_type("markdown") == "text"

    def test_unknown_type_defaults_to_string(self):
        assert not is_known_type("barcode")
        assert get_field_type("barcode").name == "string"

    def test_textual(self):
        assert is_textual("string")
        assert is_textual("email")
        assert not is_textual("integer")
        assert not is_textual("password")

    @pytest.mark.parametrize("field_type", ["string", "date", "datetime", "smartlookup", "integer"])
    def test_undeclared_filter_type_is_equals(self, field_type):
        assert FieldDef(name="x", type=field_type).effective_filter_type == "equals"

    def test_declared_filter_type_wins(self):
        assert FieldDef(name="x", type="string", filter_type="like").effective_filter_type == "like"


class TestCoerceValue:
    def test_none_passes_through(self):
        assert coerce_value("integer", None) is None

    @pytest.mark.parametrize("raw, expected", [("42", 42), (" -3 ", -3), (7, 7), (True, 1)])
    def test_integer(self, raw, expected):
        assert coerce_value("integer", raw) == expected

    @pytest.mark.parametrize("raw", ["4.5", "abc", ""])
    def test_invalid_integer(self, raw):
        with pytest.raises(ValueError):
            coerce_value("integer", raw)

    def test_decimal(self):
        assert coerce_value("decimal", "10.50") == 10.5
        assert coerce_value("currency", 3) == 3.0
        with pytest.raises(ValueError, match="is not a number"):
            coerce_value("decimal", "ten")

    @pytest.mark.parametrize("raw", ["true", "YES", "1", "on", 1, True])
    def test_boolean_true(self, raw):
        assert coerce_value("boolean-yn", raw) is True

    @pytest.mark.parametrize("raw", ["false", "No", "0", "off", 0, False])
    def test_boolean_false(self, raw):
        assert coerce_value("boolean", raw) is False

    def test_invalid_boolean(self):
        with pytest.raises(ValueError, match="is not a boolean"):
            coerce_value("boolean", "maybe")

    def test_dates(self):
        assert coerce_value("date", "2024-03-01") == date(2024, 3, 1)
        assert coerce_value("datetime", "2024-03-01T10:30:00") == datetime(2024, 3, 1, 10, 30)
        with pytest.raises(ValueError, match="is not an ISO date"):
            coerce_value("date", "01/03/2024")

    def test_strings(self):
        assert coerce_value("string", 12) == "12"
        assert coerce_value("email", "a@b.c") == "a@b.c"

    def test_json_passes_through(self):
        value = {"a": [1, 2]}
        assert coerce_value("json", value) is value


class TestIsTruthy:
    @pytest.mark.parametrize("value", [1, True, "1", "true", " Yes "])
    def test_truthy(self, value):
        assert is_truthy(value)

    @pytest.mark.parametrize("value", [None, 0, False, "", "0", "false", "no"])
    def test_falsy(self, value):
        assert not is_truthy(value)
