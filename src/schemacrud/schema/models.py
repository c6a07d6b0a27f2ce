"""Typed schema objects produced from normalized schema documents."""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Union

from schemacrud.core.types import coerce_value, get_field_type
from schemacrud.errors import ConfigError, NotFoundError, ValidationError

MODEL_NAME_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")

DEFAULT_FILTER_TYPE = "equals"


class Context(str, Enum):
    """Named views that decide which fields and actions are visible."""

    LIST = "list"
    FORM = "form"
    DETAIL = "detail"
    META = "meta"

    @classmethod
    def parse(cls, token: str) -> Context:
        try:
            return cls(token.strip().lower())
        except ValueError:
            allowed = ", ".join(c.value for c in cls)
            raise ValidationError(
                f"Unknown schema context '{token}'. Expected one of: {allowed}"
            ) from None


# Contexts a field can be shown in (meta never carries fields)
FIELD_CONTEXTS = frozenset({Context.LIST, Context.FORM, Context.DETAIL})


class ActionType(str, Enum):
    FIELD_UPDATE = "field_update"
    ROUTE = "route"
    API_CALL = "api_call"
    MODAL = "modal"


@dataclass
class FieldDef:
    name: str
    type: str = "string"
    label: str | None = None
    required: bool = False
    readonly: bool = False
    computed: bool = False
    sortable: bool = False
    filterable: bool = False
    searchable: bool = False
    filter_type: str | None = None
    show_in: frozenset[Context] = FIELD_CONTEXTS
    validation: dict[str, Any] = field(default_factory=dict)
    default: Any = None
    ui: dict[str, Any] = field(default_factory=dict)
    description: str | None = None
    placeholder: str | None = None
    width: str | int | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    @property
    def storage_type(self) -> str:
        return get_field_type(self.type).storage_type

    @property
    def is_textual(self) -> bool:
        return get_field_type(self.type).textual

    @property
    def is_password(self) -> bool:
        return self.type == "password" or self.name == "password"

    @property
    def effective_filter_type(self) -> str:
        """Declared filter_type; undeclared filters match by equality."""
        return self.filter_type or DEFAULT_FILTER_TYPE

    def visible_in(self, context: Context) -> bool:
        return context in self.show_in

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "type": self.type,
            "label": self.label,
            "required": self.required,
            "readonly": self.readonly,
            "sortable": self.sortable,
            "filterable": self.filterable,
            "searchable": self.searchable,
            "show_in": [c.value for c in Context if c in self.show_in],
        }
        if self.computed:
            data["computed"] = True
        if self.filterable:
            data["filter_type"] = self.effective_filter_type
        if self.validation:
            data["validation"] = dict(self.validation)
        if self.default is not None:
            data["default"] = self.default
        for key in ("description", "placeholder", "width"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.ui:
            data["ui"] = dict(self.ui)
        data.update(self.extra)
        return data


# ---------------------------------------------------------------------------
# Relationships
# ---------------------------------------------------------------------------


def _require(relationship: Any, keys: tuple[str, ...]) -> None:
    for key in keys:
        if not getattr(relationship, key):
            raise ConfigError(
                f"Relationship '{relationship.name}' ({relationship.type}) "
                f"is missing required key: {key}"
            )


@dataclass
class ForeignKeyRelationship:
    """One-to-many: related rows carry ``foreign_key`` pointing at the parent."""

    type: ClassVar[str] = "has_many"
    required_keys: ClassVar[tuple[str, ...]] = ("foreign_key",)

    name: str
    model: str
    foreign_key: str | None = None
    title: str | None = None

    def require_keys(self) -> None:
        _require(self, self.required_keys)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "model": self.model,
            "foreign_key": self.foreign_key,
            "title": self.title,
        }


@dataclass
class ManyToManyRelationship:
    """Single pivot table linking parent and related rows."""

    type: ClassVar[str] = "many_to_many"
    required_keys: ClassVar[tuple[str, ...]] = ("pivot_table", "foreign_key", "related_key")

    name: str
    model: str
    pivot_table: str | None = None
    foreign_key: str | None = None  # pivot column -> parent
    related_key: str | None = None  # pivot column -> related
    title: str | None = None

    def require_keys(self) -> None:
        _require(self, self.required_keys)

    def to_dict(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "type": self.type,
            "model": self.model,
            "pivot_table": self.pivot_table,
            "foreign_key": self.foreign_key,
            "related_key": self.related_key,
            "title": self.title,
        }


@dataclass
class ManyToManyThroughRelationship:
    """Parent -> first pivot -> through model -> second pivot -> related."""

    type: ClassVar[str] = "belongs_to_many_through"
    required_keys: ClassVar[tuple[str, ...]] = (
        "through",
        "first_pivot_table",
        "first_foreign_key",
        "first_related_key",
        "second_pivot_table",
        "second_foreign_key",
        "second_related_key",
    )

    name: str
    model: str
    through: str | None = None
    first_pivot_table: str | None = None
    first_foreign_key: str | None = None
    first_related_key: str | None = None
    second_pivot_table: str | None = None
    second_foreign_key: str | None = None
    second_related_key: str | None = None
    title: str | None = None

    def require_keys(self) -> None:
        _require(self, self.required_keys)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"name": self.name, "type": self.type, "model": self.model}
        for key in self.required_keys:
            data[key] = getattr(self, key)
        data["title"] = self.title
        return data


Relationship = Union[
    ForeignKeyRelationship, ManyToManyRelationship, ManyToManyThroughRelationship
]

RELATIONSHIP_TYPES: dict[str, type] = {
    ForeignKeyRelationship.type: ForeignKeyRelationship,
    ManyToManyRelationship.type: ManyToManyRelationship,
    ManyToManyThroughRelationship.type: ManyToManyThroughRelationship,
}


@dataclass
class DetailDef:
    """Nested collection shown on a record's detail page."""

    model: str
    foreign_key: str | None = None
    list_fields: list[str] = field(default_factory=list)
    title: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "model": self.model,
            "foreign_key": self.foreign_key,
            "list_fields": list(self.list_fields),
            "title": self.title,
        }


@dataclass
class ActionDef:
    key: str
    type: ActionType
    label: str | None = None
    # declared before `field` below, which shadows dataclasses.field in this body
    extra: dict[str, Any] = field(default_factory=dict)
    field: str | None = None
    toggle: bool = False
    value: Any = None
    has_value: bool = False
    permission: str | None = None
    confirm: str | None = None
    success_message: str | None = None
    contexts: frozenset[Context] = frozenset()
    requires_password_input: bool = False
    handler: str | None = None
    route: str | None = None
    endpoint: str | None = None
    method: str = "POST"

    def visible_in(self, context: Context) -> bool:
        """Actions without declared contexts are visible everywhere."""
        return not self.contexts or context in self.contexts

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"key": self.key, "type": self.type.value, "label": self.label}
        if self.field:
            data["field"] = self.field
        if self.toggle:
            data["toggle"] = True
        if self.has_value:
            data["value"] = self.value
        for key in ("permission", "confirm", "success_message", "route", "endpoint"):
            value = getattr(self, key)
            if value is not None:
                data[key] = value
        if self.type == ActionType.API_CALL:
            data["method"] = self.method
        if self.requires_password_input:
            data["requires_password_input"] = True
        if self.contexts:
            data["contexts"] = [c.value for c in Context if c in self.contexts]
        data.update(self.extra)
        return data


# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------


@dataclass
class Schema:
    """A loaded schema. Treated as immutable once it leaves the store."""

    model: str
    table: str
    fields: dict[str, FieldDef]
    primary_key: str = "id"
    connection: str | None = None
    timestamps: bool = True
    soft_delete: bool = False
    title: str | None = None
    singular_title: str | None = None
    description: str | None = None
    title_field: str | None = None
    default_sort: dict[str, str] = field(default_factory=dict)
    relationships: list[Relationship] = field(default_factory=list)
    details: list[DetailDef] = field(default_factory=list)
    actions: list[ActionDef] = field(default_factory=list)
    permissions: dict[str, str] = field(default_factory=dict)
    # Set by ContextFilter only
    context: str | None = None
    contexts: dict[str, Schema] = field(default_factory=dict)

    def get_field(self, name: str) -> FieldDef | None:
        return self.fields.get(name)

    def get_relationship(self, name: str) -> Relationship | None:
        for relationship in self.relationships:
            if relationship.name == name:
                return relationship
        return None

    def get_detail(self, model: str) -> DetailDef | None:
        for detail in self.details:
            if detail.model == model:
                return detail
        return None

    def get_action(self, key: str) -> ActionDef | None:
        for action in self.actions:
            if action.key == key:
                return action
        return None

    def coerce_id(self, value: Any) -> Any:
        """Coerce a record id to the primary key field's type.

        Raises:
            NotFoundError: If the id cannot be a key of this model.
        """
        pk = self.fields.get(self.primary_key)
        if pk is None or value is None:
            return value
        try:
            return coerce_value(pk.type, value)
        except ValueError:
            raise NotFoundError(
                f"Record '{value}' not found for model '{self.model}'"
            ) from None

    def permission(self, operation: str) -> str | None:
        """Permission token for an operation (read/create/update/delete)."""
        return self.permissions.get(operation)

    def sortable_fields(self) -> list[str]:
        return [n for n, f in self.fields.items() if f.sortable and not f.computed]

    def filterable_fields(self) -> list[str]:
        return [n for n, f in self.fields.items() if f.filterable and not f.computed]

    def searchable_fields(self) -> list[str]:
        return [n for n, f in self.fields.items() if f.searchable and not f.computed]

    def selectable_columns(self) -> tuple[str, ...]:
        """Primary key plus every stored field, in declaration order."""
        columns = [self.primary_key]
        for name, field_def in self.fields.items():
            if field_def.computed or name in columns:
                continue
            columns.append(name)
        return tuple(columns)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "model": self.model,
            "table": self.table,
            "primary_key": self.primary_key,
            "connection": self.connection,
            "timestamps": self.timestamps,
            "soft_delete": self.soft_delete,
            "title": self.title,
            "singular_title": self.singular_title,
            "description": self.description,
            "title_field": self.title_field,
            "permissions": dict(self.permissions),
            "fields": {name: f.to_dict() for name, f in self.fields.items()},
            "actions": [a.to_dict() for a in self.actions],
        }
        if self.default_sort:
            data["default_sort"] = dict(self.default_sort)
        if self.relationships:
            data["relationships"] = [r.to_dict() for r in self.relationships]
        if self.details:
            data["details"] = [d.to_dict() for d in self.details]
        if self.context:
            data["context"] = self.context
        if self.contexts:
            data["contexts"] = {
                name: sub.to_dict() for name, sub in self.contexts.items()
            }
        return data
