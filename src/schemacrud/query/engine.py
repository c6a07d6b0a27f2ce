"""Generic paginated, sortable, filterable and searchable listing over a schema."""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from schemacrud.core.config import Settings
from schemacrud.core.types import coerce_value
from schemacrud.errors import NotFoundError, ValidationError
from schemacrud.persistence.storage import Storage
from schemacrud.query.spec import AnyOf, Clause, Condition, Op, QuerySpec
from schemacrud.schema.models import FieldDef, Schema

logger = logging.getLogger(__name__)

_SORT_PARAM = re.compile(r"^sorts\[(?P<name>[^\]]+)\]$")
_FILTER_PARAM = re.compile(r"^filters\[(?P<name>[^\]]+)\]$")

DIRECTIONS = ("asc", "desc")
SOFT_DELETE_COLUMN = "deleted_at"


def escape_like(term: str) -> str:
    """Escape LIKE wildcards so the term matches literally (escape char ``\\``)."""
    return term.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


def _to_int(name: str, value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Query parameter '{name}' must be an integer, got '{value}'") from None


@dataclass
class ListParams:
    """Listing request. Pages are 1-based."""

    page: int = 1
    page_size: int | None = None
    sorts: list[tuple[str, str]] = field(default_factory=list)
    filters: dict[str, Any] = field(default_factory=dict)
    search: str | None = None

    @classmethod
    def from_query(cls, query: Mapping[str, Any]) -> ListParams:
        """Parse query-string style parameters.

        Recognizes ``page``, ``size``/``page_size``, ``search``,
        ``sorts[<field>]=asc|desc`` and ``filters[<field>]=<value>``.
        Other keys are ignored.
        """
        params = cls()
        for key, value in query.items():
            if key == "page":
                params.page = _to_int(key, value)
            elif key in ("size", "page_size"):
                params.page_size = _to_int(key, value)
            elif key == "search":
                params.search = value
            elif match := _SORT_PARAM.match(key):
                params.sorts.append((match.group("name"), str(value)))
            elif match := _FILTER_PARAM.match(key):
                params.filters[match.group("name")] = value
        return params


@dataclass
class ListResult:
    rows: list[dict[str, Any]]
    total: int
    page: int
    page_size: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "rows": self.rows,
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
        }


class DynamicQueryEngine:
    """Lists rows of any schema-described table.

    Sort and filter names are whitelisted against the schema: a name that
    exists but lacks the ``sortable``/``filterable`` flag is rejected, a name
    the schema does not know at all is ignored.
    """

    def __init__(self, storage: Storage, settings: Settings | None = None):
        self.storage = storage
        self.settings = settings or Settings()

    def query(
        self,
        schema: Schema,
        params: ListParams | None = None,
        base: QuerySpec | None = None,
    ) -> ListResult:
        """Run a listing query.

        Args:
            schema: The (usually context-filtered) schema of the listed model.
            params: Paging, sorting, filtering and search parameters.
            base: Starting spec, e.g. from the RelationshipResolver. Defaults
                to a plain scan of ``schema.table``.

        Returns:
            The requested page plus the total row count without paging.

        Raises:
            ValidationError: Invalid paging, sort direction, or a disallowed
                sort/filter field.
            StorageError: The datastore failed.
        """
        params = params or ListParams()
        page, page_size = self._paging(params)

        spec = base or QuerySpec(
            table=schema.table,
            primary_key=schema.primary_key,
            connection=schema.connection,
        )
        spec = spec.with_columns(schema.selectable_columns())

        clauses: list[Clause] = []
        if schema.soft_delete:
            clauses.append(Condition(spec.col(SOFT_DELETE_COLUMN), Op.IS_NULL))
        clauses.extend(self._filters(schema, spec, params.filters))
        search = self._search(schema, spec, params.search)
        if search is not None:
            clauses.append(search)
        spec = spec.and_where(*clauses)
        spec = self._sorts(schema, spec, params.sorts)

        total = self.storage.count(spec.for_count())
        rows = self.storage.fetch(spec.paginate(page_size, (page - 1) * page_size))
        logger.debug(
            "Listed %s page=%d size=%d: %d of %d row(s)",
            schema.model, page, page_size, len(rows), total,
        )
        return ListResult(rows=rows, total=total, page=page, page_size=page_size)

    def get(self, schema: Schema, record_id: Any) -> dict[str, Any]:
        """Fetch one record by primary key.

        Raises:
            NotFoundError: No such (non-deleted) record.
        """
        record_id = schema.coerce_id(record_id)
        spec = QuerySpec(
            table=schema.table,
            primary_key=schema.primary_key,
            connection=schema.connection,
            columns=schema.selectable_columns(),
            limit=1,
        )
        spec = spec.and_where(Condition(spec.col(schema.primary_key), Op.EQ, record_id))
        if schema.soft_delete:
            spec = spec.and_where(Condition(spec.col(SOFT_DELETE_COLUMN), Op.IS_NULL))
        rows = self.storage.fetch(spec)
        if not rows:
            raise NotFoundError(f"Record '{record_id}' not found for model '{schema.model}'")
        return rows[0]

    # ------------------------------------------------------------------
    # Paging
    # ------------------------------------------------------------------

    def _paging(self, params: ListParams) -> tuple[int, int]:
        if params.page < 1:
            raise ValidationError(f"Page must be 1 or greater, got {params.page}")
        page_size = params.page_size
        if page_size is None:
            page_size = self.settings.default_page_size
        if page_size < 1:
            raise ValidationError(f"Page size must be 1 or greater, got {page_size}")
        if page_size > self.settings.max_page_size:
            logger.info(
                "Clamped page size %d to maximum %d", page_size, self.settings.max_page_size
            )
            page_size = self.settings.max_page_size
        return params.page, page_size

    # ------------------------------------------------------------------
    # Sorting
    # ------------------------------------------------------------------

    def _sorts(self, schema: Schema, spec: QuerySpec, sorts: list[tuple[str, str]]) -> QuerySpec:
        for name, direction in sorts:
            field_def = schema.get_field(name)
            if field_def is None:
                logger.debug("Ignoring sort on unknown field '%s' for %s", name, schema.model)
                continue
            if name not in schema.sortable_fields():
                raise ValidationError(f"Field '{name}' is not sortable")
            direction = (direction or "asc").strip().lower()
            if direction not in DIRECTIONS:
                raise ValidationError(
                    f"Invalid sort direction '{direction}' for field '{name}'. Use 'asc' or 'desc'"
                )
            if not spec.orders_on(name):
                spec = spec.then_order_by(name, direction == "desc")

        if not spec.order_by:
            for name, direction in schema.default_sort.items():
                if name in spec.columns and not spec.orders_on(name):
                    spec = spec.then_order_by(name, direction == "desc")

        # Stable paging needs a total order
        if not spec.orders_on(schema.primary_key):
            spec = spec.then_order_by(schema.primary_key)
        return spec

    # ------------------------------------------------------------------
    # Filtering
    # ------------------------------------------------------------------

    def _filters(self, schema: Schema, spec: QuerySpec, filters: Mapping[str, Any]) -> list[Condition]:
        conditions: list[Condition] = []
        for name, value in filters.items():
            field_def = schema.get_field(name)
            if field_def is None:
                logger.debug("Ignoring filter on unknown field '%s' for %s", name, schema.model)
                continue
            if name not in schema.filterable_fields():
                raise ValidationError(f"Field '{name}' is not filterable")
            if value is None or value == "" or value == []:
                continue
            conditions.extend(self._filter_conditions(field_def, spec, value))
        return conditions

    def _coerce(self, field_def: FieldDef, value: Any) -> Any:
        try:
            return coerce_value(field_def.type, value)
        except ValueError as exc:
            raise ValidationError(f"Invalid value for filter '{field_def.name}': {exc}") from exc

    def _filter_conditions(self, field_def: FieldDef, spec: QuerySpec, value: Any) -> list[Condition]:
        column = spec.col(field_def.name)
        filter_type = field_def.effective_filter_type

        if filter_type == "like":
            return [Condition(column, Op.ILIKE, f"%{escape_like(str(value))}%")]

        if filter_type == "starts_with":
            return [Condition(column, Op.ILIKE, f"{escape_like(str(value))}%")]

        if filter_type == "ends_with":
            return [Condition(column, Op.ILIKE, f"%{escape_like(str(value))}")]

        if filter_type == "greater_than":
            return [Condition(column, Op.GT, self._coerce(field_def, value))]

        if filter_type == "less_than":
            return [Condition(column, Op.LT, self._coerce(field_def, value))]

        if filter_type in ("between", "range"):
            low, high = self._bounds(field_def, value)
            if low is not None and high is not None:
                return [Condition(column, Op.BETWEEN, (low, high))]
            if low is not None:
                return [Condition(column, Op.GTE, low)]
            if high is not None:
                return [Condition(column, Op.LTE, high)]
            return []

        if filter_type == "in" or isinstance(value, (list, tuple)):
            values = value if isinstance(value, (list, tuple)) else str(value).split(",")
            coerced = [self._coerce(field_def, v.strip() if isinstance(v, str) else v) for v in values]
            return [Condition(column, Op.IN, tuple(coerced))]

        # equals / boolean
        return [Condition(column, Op.EQ, self._coerce(field_def, value))]

    def _bounds(self, field_def: FieldDef, value: Any) -> tuple[Any, Any]:
        if isinstance(value, Mapping):
            low = value.get("from", value.get("min"))
            high = value.get("to", value.get("max"))
        elif isinstance(value, (list, tuple)):
            if len(value) != 2:
                raise ValidationError(f"Range filter '{field_def.name}' needs exactly two values")
            low, high = value
        else:
            parts = str(value).split(",")
            if len(parts) != 2:
                raise ValidationError(
                    f"Range filter '{field_def.name}' expects 'low,high', got '{value}'"
                )
            low, high = parts
        low = None if low in (None, "") else self._coerce(field_def, low)
        high = None if high in (None, "") else self._coerce(field_def, high)
        return low, high

    # ------------------------------------------------------------------
    # Search
    # ------------------------------------------------------------------

    def _search(self, schema: Schema, spec: QuerySpec, search: str | None) -> AnyOf | None:
        term = (search or "").strip()
        if not term:
            return None
        searchable = schema.searchable_fields()
        if not searchable:
            return None

        conditions = []
        for name in searchable:
            field_def = schema.fields[name]
            column = spec.col(name)
            if field_def.is_textual:
                conditions.append(Condition(column, Op.ILIKE, f"%{escape_like(term)}%"))
                continue
            # Non-textual fields only match a term of their own type
            try:
                conditions.append(Condition(column, Op.EQ, coerce_value(field_def.type, term)))
            except ValueError:
                continue
        return AnyOf(tuple(conditions))
