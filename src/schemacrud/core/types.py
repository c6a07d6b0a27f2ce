"""Field type registry mapping schema field types to storage semantics."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any


@dataclass
class FieldType:
    name: str
    storage_type: str
    textual: bool = False
    ui_component: str | None = None


FIELD_TYPES: dict[str, FieldType] = {
    "integer": FieldType("integer", "integer"),
    "string": FieldType("string", "string", textual=True),
    "text": FieldType("text", "text", textual=True),
    "decimal": FieldType("decimal", "decimal"),
    "float": FieldType("float", "float"),
    "boolean": FieldType("boolean", "boolean", ui_component="checkbox"),
    "date": FieldType("date", "date"),
    "datetime": FieldType("datetime", "datetime"),
    "json": FieldType("json", "json"),
    # UI subtypes: presentation only, storage semantics come from storage_type
    "email": FieldType("email", "string", textual=True, ui_component="email"),
    "url": FieldType("url", "string", textual=True, ui_component="url"),
    "phone": FieldType("phone", "string", textual=True, ui_component="phone"),
    "zip": FieldType("zip", "string", textual=True, ui_component="zip"),
    "color": FieldType("color", "string", textual=True, ui_component="color"),
    "password": FieldType("password", "string", ui_component="password"),
    "textarea": FieldType("textarea", "text", textual=True, ui_component="textarea"),
    "markdown": FieldType("markdown", "text", textual=True, ui_component="markdown"),
    "currency": FieldType("currency", "decimal", ui_component="currency"),
    "percent": FieldType("percent", "decimal", ui_component="percent"),
    "smartlookup": FieldType("smartlookup", "integer", ui_component="lookup"),
    "boolean-tgl": FieldType("boolean-tgl", "boolean", ui_component="toggle"),
    "boolean-toggle": FieldType("boolean-toggle", "boolean", ui_component="toggle"),
    "boolean-chk": FieldType("boolean-chk", "boolean", ui_component="checkbox"),
    "boolean-sel": FieldType("boolean-sel", "boolean", ui_component="select"),
    "boolean-yn": FieldType("boolean-yn", "boolean", ui_component="select"),
}

_TRUE_STRINGS = {"1", "true", "yes", "on", "y", "t"}
_FALSE_STRINGS = {"0", "false", "no", "off", "n", "f"}


def is_known_type(type_name: str) -> bool:
    return type_name in FIELD_TYPES


def get_field_type(type_name: str) -> FieldType:
    """Get field type definition, defaulting to string if unknown."""
    return FIELD_TYPES.get(type_name, FIELD_TYPES["string"])


def get_storage_type(type_name: str) -> str:
    """Get the storage type a field type resolves to."""
    return get_field_type(type_name).storage_type


def is_textual(type_name: str) -> bool:
    """Whether LIKE search applies to fields of this type."""
    return get_field_type(type_name).textual


def coerce_value(type_name: str, value: Any) -> Any:
    """Coerce a request value (usually a string) to the field's storage type.

    Args:
        type_name: Schema field type.
        value: Raw value from the caller.

    Returns:
        The coerced value. ``None`` passes through unchanged.

    Raises:
        ValueError: If the value cannot represent the storage type.
    """
    if value is None:
        return None

    storage = get_storage_type(type_name)

    if storage == "integer":
        if isinstance(value, bool):
            return int(value)
        if isinstance(value, int):
            return value
        text = str(value).strip()
        if not text.lstrip("-").isdigit():
            raise ValueError(f"'{value}' is not an integer")
        return int(text)

    if storage in ("float", "decimal"):
        if isinstance(value, (int, float, Decimal)) and not isinstance(value, bool):
            return float(value)
        try:
            return float(Decimal(str(value).strip()))
        except InvalidOperation as exc:
            raise ValueError(f"'{value}' is not a number") from exc

    if storage == "boolean":
        if isinstance(value, bool):
            return value
        if isinstance(value, int):
            return value != 0
        text = str(value).strip().lower()
        if text in _TRUE_STRINGS:
            return True
        if text in _FALSE_STRINGS:
            return False
        raise ValueError(f"'{value}' is not a boolean")

    if storage == "date":
        if isinstance(value, date):
            return value
        try:
            return date.fromisoformat(str(value).strip())
        except ValueError as exc:
            raise ValueError(f"'{value}' is not an ISO date") from exc

    if storage == "datetime":
        if isinstance(value, datetime):
            return value
        try:
            return datetime.fromisoformat(str(value).strip())
        except ValueError as exc:
            raise ValueError(f"'{value}' is not an ISO datetime") from exc

    if storage in ("string", "text"):
        return value if isinstance(value, str) else str(value)

    return value


def is_truthy(value: Any) -> bool:
    """Interpret a stored value as a boolean. ``None`` counts as ``False``."""
    if value is None:
        return False
    if isinstance(value, str):
        return value.strip().lower() in _TRUE_STRINGS
    return bool(value)
