"""Normalize raw schema documents into the canonical snake_case shape.

Schema authors write documents in several dialects: camelCase keys
(``primaryKey``, ``showIn``, ``pivotTable``), ORM-style column attributes
(``nullable``, ``autoIncrement``, ``references``), legacy visibility flags
(``listable``/``editable``/``viewable``) and boolean UI subtypes
(``boolean-tgl``).  Everything downstream of this module (JSON Schema
validation, the parser, the context filter) only sees the canonical form.

The normalizer never mutates its input.
"""

from __future__ import annotations

import copy
import re
from typing import Any

from schemacrud.core.types import get_field_type, get_storage_type

_CAMEL_BOUNDARY = re.compile(r"(?<=[a-z0-9])(?=[A-Z])")

TOGGLE_CONFIRM_KEY = "ACTION.TOGGLE_CONFIRM"

# (permission operation, action key, label, contexts, confirm)
_DEFAULT_ACTIONS: tuple[tuple[str, str, str, list[str], str | None], ...] = (
    ("create", "create_action", "ACTION.CREATE", ["list"], None),
    ("update", "edit_action", "ACTION.EDIT", ["list", "detail"], None),
    ("delete", "delete_action", "ACTION.DELETE", ["list", "detail"], "ACTION.DELETE_CONFIRM"),
)

_RELATIONSHIP_TYPE_ALIASES = {
    None: "has_many",
    "": "has_many",
    "has_many": "has_many",
    "one_to_many": "has_many",
    "foreign_key": "has_many",
    "many_to_many": "many_to_many",
    "belongs_to_many": "many_to_many",
    "belongs_to_many_through": "belongs_to_many_through",
    "many_to_many_through": "belongs_to_many_through",
}


def snake_case(key: str) -> str:
    """``primaryKey`` -> ``primary_key``; snake_case keys pass through."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _snake_keys(obj: dict[str, Any]) -> dict[str, Any]:
    """Rename the keys of one mapping level, first spelling wins on collision."""
    result: dict[str, Any] = {}
    for key, value in obj.items():
        new_key = snake_case(key) if isinstance(key, str) else key
        result.setdefault(new_key, value)
    return result


def _show_in_tokens(raw: Any) -> list[str]:
    if isinstance(raw, str):
        raw = raw.split(",")
    tokens: list[str] = []
    for token in raw or []:
        token = str(token).strip().lower()
        # create and edit both render the form
        if token in ("create", "edit"):
            token = "form"
        if token and token not in tokens:
            tokens.append(token)
    return tokens


# ---------------------------------------------------------------------------
# Fields
# ---------------------------------------------------------------------------


def normalize_field(name: str, raw: dict[str, Any]) -> dict[str, Any]:
    """Normalize a single field definition."""
    data = _snake_keys(raw)
    data.pop("name", None)

    field_type = str(data.get("type") or "string")

    # Boolean UI subtypes collapse to boolean plus a UI hint
    if field_type.startswith("boolean-") and get_storage_type(field_type) == "boolean":
        ui = dict(data.get("ui") or {})
        ui.setdefault("component", get_field_type(field_type).ui_component)
        data["ui"] = ui
        field_type = "boolean"
    data["type"] = field_type

    # ORM attributes
    if "nullable" in data:
        nullable = data.pop("nullable")
        data.setdefault("required", not nullable)
    auto_increment = data.pop("auto_increment", False)
    if data.pop("primary_key", False) or auto_increment:
        data.setdefault("readonly", True)
        data.setdefault("editable", False)

    validation = dict(data.pop("validate", None) or {})
    validation.update(data.get("validation") or {})
    if data.pop("unique", False):
        validation.setdefault("unique", True)
    length = data.pop("length", None)
    if length is not None:
        validation.setdefault("length", {"max": length})
    if validation:
        data["validation"] = validation

    references = data.pop("references", None)
    if references:
        ui = dict(data.get("ui") or {})
        ui.setdefault("lookup", references)
        data["ui"] = ui

    if "default_value" in data:
        data.setdefault("default", data.pop("default_value"))

    if not data.get("label"):
        data["label"] = name.replace("_", " ").title()

    is_password = field_type == "password" or name == "password"

    if "show_in" in data:
        show_in = _show_in_tokens(data["show_in"])
    else:
        show_in = []
        if data.get("listable", not is_password):
            show_in.append("list")
        if data.get("editable", not data.get("readonly", False)):
            show_in.append("form")
        if data.get("viewable", True):
            show_in.append("detail")
    if is_password and "detail" in show_in:
        show_in.remove("detail")
    data["show_in"] = show_in
    for flag in ("listable", "editable", "viewable"):
        data.pop(flag, None)

    for flag in ("required", "readonly", "computed", "sortable", "filterable", "searchable"):
        data[flag] = bool(data.get(flag, False))

    return data


def _normalize_fields(raw_fields: Any) -> dict[str, dict[str, Any]]:
    """Accept either a name->definition mapping or a list of definitions."""
    if isinstance(raw_fields, list):
        items = []
        for entry in raw_fields:
            entry = dict(entry or {})
            items.append((str(entry.get("name", "")), entry))
    else:
        items = [(str(name), dict(value or {})) for name, value in (raw_fields or {}).items()]
    return {name: normalize_field(name, value) for name, value in items}


# ---------------------------------------------------------------------------
# Relationships, details, actions
# ---------------------------------------------------------------------------


def normalize_relationship(raw: dict[str, Any]) -> dict[str, Any]:
    data = _snake_keys(raw)
    raw_type = data.get("type")
    data["type"] = _RELATIONSHIP_TYPE_ALIASES.get(raw_type, raw_type)
    if data.get("name") and not data.get("model"):
        data["model"] = data["name"]
    return data


def normalize_detail(raw: Any) -> dict[str, Any]:
    if isinstance(raw, str):
        return {"model": raw, "list_fields": []}
    data = _snake_keys(raw)
    data.setdefault("list_fields", [])
    return data


def normalize_action(raw: dict[str, Any]) -> dict[str, Any]:
    data = _snake_keys(raw)

    if not data.get("type"):
        if data.get("toggle") or "value" in data or data.get("field"):
            data["type"] = "field_update"
        elif data.get("handler") or data.get("endpoint"):
            data["type"] = "api_call"
        elif data.get("route"):
            data["type"] = "route"

    contexts = data.pop("show_in", None)
    if "contexts" not in data and "context" in data:
        contexts = data.pop("context")
    if "contexts" in data:
        contexts = data["contexts"]
    data["contexts"] = _show_in_tokens(contexts) if contexts else []

    if data.get("type") == "field_update" and data.get("toggle") and not data.get("confirm"):
        data["confirm"] = TOGGLE_CONFIRM_KEY
        data.setdefault("modal_config", {"type": "confirm", "buttons": "yes_no"})

    if data.get("type") == "api_call":
        data["method"] = str(data.get("method") or "POST").upper()

    return data


def _default_actions(permissions: dict[str, Any], existing: set[str]) -> list[dict[str, Any]]:
    actions = []
    for operation, key, label, contexts, confirm in _DEFAULT_ACTIONS:
        if operation not in permissions or key in existing:
            continue
        action: dict[str, Any] = {
            "key": key,
            "type": "modal",
            "label": label,
            "permission": permissions[operation],
            "contexts": list(contexts),
        }
        if confirm:
            action["confirm"] = confirm
        actions.append(action)
    return actions


# ---------------------------------------------------------------------------
# Document
# ---------------------------------------------------------------------------


def normalize_document(document: dict[str, Any]) -> dict[str, Any]:
    """Return a canonical copy of a raw schema document.

    Args:
        document: Parsed JSON/YAML document as authored.

    Returns:
        A new dict with snake_case keys, defaults applied, visibility
        resolved into ``show_in`` lists and default actions added.
    """
    data = _snake_keys(copy.deepcopy(document))

    data.setdefault("primary_key", "id")
    data["timestamps"] = bool(data.get("timestamps", True))
    if "soft_deletes" in data:
        data.setdefault("soft_delete", data.pop("soft_deletes"))
    data["soft_delete"] = bool(data.get("soft_delete", False))

    data["fields"] = _normalize_fields(data.get("fields"))
    data["relationships"] = [
        normalize_relationship(r) for r in data.get("relationships") or []
    ]
    data["details"] = [normalize_detail(d) for d in data.get("details") or []]
    if "detail" in data:
        data["details"].append(normalize_detail(data.pop("detail")))

    data["permissions"] = dict(data.get("permissions") or {})

    actions = [normalize_action(a) for a in data.get("actions") or []]
    if data.pop("default_actions", True) is not False:
        existing = {a.get("key") for a in actions}
        actions = _default_actions(data["permissions"], existing) + actions
    data["actions"] = actions

    sort = data.get("default_sort") or {}
    if isinstance(sort, str):
        sort = {sort.lstrip("-"): "desc" if sort.startswith("-") else "asc"}
    data["default_sort"] = {str(k): str(v).lower() for k, v in sort.items()}

    return data
