"""Schema document sources and the document -> Schema parser."""

from __future__ import annotations

import copy
import logging
import re
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

from schemacrud.errors import ConfigError
from schemacrud.schema.models import (
    FIELD_CONTEXTS,
    ActionDef,
    ActionType,
    Context,
    DetailDef,
    FieldDef,
    ForeignKeyRelationship,
    ManyToManyRelationship,
    ManyToManyThroughRelationship,
    Relationship,
    Schema,
)
from schemacrud.schema.validator import DOCUMENT_SUFFIXES, iter_schema_files, read_document

logger = logging.getLogger(__name__)

_SAFE_NAME = re.compile(r"^[A-Za-z0-9_][A-Za-z0-9_\-]*$")

_FIELD_ATTRIBUTES = {
    "type",
    "label",
    "required",
    "readonly",
    "computed",
    "sortable",
    "filterable",
    "searchable",
    "filter_type",
    "show_in",
    "validation",
    "default",
    "ui",
    "description",
    "placeholder",
    "width",
}

_ACTION_ATTRIBUTES = {
    "key",
    "type",
    "label",
    "field",
    "toggle",
    "value",
    "permission",
    "confirm",
    "success_message",
    "contexts",
    "requires_password_input",
    "handler",
    "route",
    "endpoint",
    "method",
}


# ---------------------------------------------------------------------------
# Sources
# ---------------------------------------------------------------------------


@runtime_checkable
class SchemaSource(Protocol):
    """Key-value lookup from model name to a raw schema document."""

    def read(self, model: str, connection: str | None = None) -> dict[str, Any] | None:
        """Return the raw document, or None if there is none."""
        ...

    def list_models(self) -> list[tuple[str, str | None]]:
        """All (model, connection) pairs the source can serve."""
        ...


class DirectorySchemaSource:
    """Reads ``{root}/{connection}/{model}.json`` then ``{root}/{model}.json``.

    ``.yaml`` and ``.yml`` documents are accepted alongside ``.json``.
    """

    def __init__(self, root: Path | str):
        self.root = Path(root)

    def _candidates(self, model: str, connection: str | None) -> list[Path]:
        directories = []
        if connection:
            directories.append(self.root / connection)
        directories.append(self.root)
        return [d / f"{model}{suffix}" for d in directories for suffix in DOCUMENT_SUFFIXES]

    def read(self, model: str, connection: str | None = None) -> dict[str, Any] | None:
        # Names become path segments
        if not _SAFE_NAME.match(model) or (connection and not _SAFE_NAME.match(connection)):
            logger.warning("Rejected unsafe schema lookup: model=%r connection=%r", model, connection)
            return None

        for path in self._candidates(model, connection):
            if path.is_file():
                logger.debug("Reading schema for '%s' from %s", model, path)
                return read_document(path)
        return None

    def list_models(self) -> list[tuple[str, str | None]]:
        if not self.root.is_dir():
            return []
        found = []
        for path in iter_schema_files(self.root):
            connection = None if path.parent == self.root else path.parent.name
            pair = (path.stem, connection)
            if pair not in found:
                found.append(pair)
        return found


class MappingSchemaSource:
    """In-memory source keyed by model name or ``connection/model``."""

    def __init__(self, documents: Mapping[str, dict[str, Any]]):
        self._documents = dict(documents)

    def read(self, model: str, connection: str | None = None) -> dict[str, Any] | None:
        if connection and f"{connection}/{model}" in self._documents:
            return copy.deepcopy(self._documents[f"{connection}/{model}"])
        document = self._documents.get(model)
        return copy.deepcopy(document) if document is not None else None

    def list_models(self) -> list[tuple[str, str | None]]:
        pairs = []
        for key in self._documents:
            connection, _, model = key.rpartition("/")
            pairs.append((model, connection or None))
        return pairs


# ---------------------------------------------------------------------------
# Parser
# ---------------------------------------------------------------------------


class SchemaParser:
    """Builds :class:`Schema` objects from normalized, validated documents."""

    def parse(self, document: dict[str, Any]) -> Schema:
        fields = {
            name: self._resolve_field(name, data)
            for name, data in document["fields"].items()
        }
        return Schema(
            model=document["model"],
            table=document["table"],
            fields=fields,
            primary_key=document.get("primary_key", "id"),
            connection=document.get("connection"),
            timestamps=document.get("timestamps", True),
            soft_delete=document.get("soft_delete", False),
            title=document.get("title"),
            singular_title=document.get("singular_title"),
            description=document.get("description"),
            title_field=document.get("title_field"),
            default_sort=dict(document.get("default_sort") or {}),
            relationships=[
                self._resolve_relationship(r) for r in document.get("relationships") or []
            ],
            details=[self._resolve_detail(d) for d in document.get("details") or []],
            actions=[self._resolve_action(a) for a in document.get("actions") or []],
            permissions=dict(document.get("permissions") or {}),
        )

    def _resolve_field(self, name: str, data: dict[str, Any]) -> FieldDef:
        show_in = frozenset(Context(token) for token in data.get("show_in", ()))
        return FieldDef(
            name=name,
            type=data.get("type", "string"),
            label=data.get("label"),
            required=data.get("required", False),
            readonly=data.get("readonly", False),
            computed=data.get("computed", False),
            sortable=data.get("sortable", False),
            filterable=data.get("filterable", False),
            searchable=data.get("searchable", False),
            filter_type=data.get("filter_type"),
            show_in=show_in & FIELD_CONTEXTS,
            validation=dict(data.get("validation") or {}),
            default=data.get("default"),
            ui=dict(data.get("ui") or {}),
            description=data.get("description"),
            placeholder=data.get("placeholder"),
            width=data.get("width"),
            extra={k: v for k, v in data.items() if k not in _FIELD_ATTRIBUTES},
        )

    def _resolve_relationship(self, data: dict[str, Any]) -> Relationship:
        rel_type = data.get("type")
        name = data["name"]
        model = data.get("model") or name
        title = data.get("title")

        if rel_type == ManyToManyRelationship.type:
            return ManyToManyRelationship(
                name=name,
                model=model,
                pivot_table=data.get("pivot_table"),
                foreign_key=data.get("foreign_key"),
                related_key=data.get("related_key"),
                title=title,
            )
        if rel_type == ManyToManyThroughRelationship.type:
            return ManyToManyThroughRelationship(
                name=name,
                model=model,
                through=data.get("through"),
                first_pivot_table=data.get("first_pivot_table"),
                first_foreign_key=data.get("first_foreign_key"),
                first_related_key=data.get("first_related_key"),
                second_pivot_table=data.get("second_pivot_table"),
                second_foreign_key=data.get("second_foreign_key"),
                second_related_key=data.get("second_related_key"),
                title=title,
            )
        if rel_type == ForeignKeyRelationship.type:
            return ForeignKeyRelationship(
                name=name,
                model=model,
                foreign_key=data.get("foreign_key"),
                title=title,
            )
        raise ConfigError(f"Relationship '{name}' has unsupported type '{rel_type}'")

    def _resolve_detail(self, data: dict[str, Any]) -> DetailDef:
        return DetailDef(
            model=data["model"],
            foreign_key=data.get("foreign_key"),
            list_fields=list(data.get("list_fields") or []),
            title=data.get("title"),
        )

    def _resolve_action(self, data: dict[str, Any]) -> ActionDef:
        return ActionDef(
            key=data["key"],
            type=ActionType(data["type"]),
            label=data.get("label"),
            field=data.get("field"),
            toggle=bool(data.get("toggle", False)),
            value=data.get("value"),
            has_value="value" in data,
            permission=data.get("permission"),
            confirm=data.get("confirm"),
            success_message=data.get("success_message"),
            contexts=frozenset(Context(token) for token in data.get("contexts") or ()),
            requires_password_input=bool(data.get("requires_password_input", False)),
            handler=data.get("handler"),
            route=data.get("route"),
            endpoint=data.get("endpoint"),
            method=data.get("method") or "POST",
            extra={k: v for k, v in data.items() if k not in _ACTION_ATTRIBUTES},
        )
