"""SQLAlchemy Core implementation of the Storage protocol.

Queries are compiled from :class:`~schemacrud.query.spec.QuerySpec` objects
with lightweight ``table()``/``column()`` constructs, so no table metadata or
model classes are needed: every identifier comes from a schema document and
is validated before use.  Dialect-neutral (SQLite and PostgreSQL).
"""

from __future__ import annotations

import logging
import re
import threading
from collections import defaultdict
from collections.abc import Iterable
from typing import Any

from sqlalchemy import and_, create_engine, delete, false, func, insert, or_, select, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.sql import ColumnElement, column, literal_column, table
from sqlalchemy.sql.expression import TableClause

from schemacrud.core.config import DEFAULT_CONNECTION
from schemacrud.errors import ConfigError, StorageError
from schemacrud.persistence.config import DatabaseConfig, to_sqlalchemy_url
from schemacrud.query.spec import AnyOf, Clause, Condition, Op, QuerySpec

logger = logging.getLogger(__name__)

_IDENTIFIER = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*$")

LIKE_ESCAPE = "\\"


def check_identifier(name: str) -> str:
    """Return ``name`` if it is a safe SQL identifier, else raise ConfigError."""
    if not isinstance(name, str) or not _IDENTIFIER.match(name):
        raise ConfigError(f"Invalid table or column name: {name!r}")
    return name


class _Tables:
    """Table clauses for one statement, declaring every column the query touches."""

    def __init__(self, spec: QuerySpec):
        columns: dict[str, set[str]] = defaultdict(set)
        columns[spec.table].update(spec.columns)
        columns[spec.table].add(spec.primary_key)
        for join in spec.joins:
            columns.setdefault(join.table, set())
            columns[join.left.table].add(join.left.column)
            columns[join.right.table].add(join.right.column)
        for condition in spec.conditions():
            columns[condition.column.table].add(condition.column.column)
        for order in spec.order_by:
            columns[order.column.table].add(order.column.column)

        self._tables: dict[str, TableClause] = {}
        for name, names in columns.items():
            check_identifier(name)
            self._tables[name] = table(
                name, *(column(check_identifier(c)) for c in sorted(names))
            )

    def __getitem__(self, name: str) -> TableClause:
        return self._tables[name]

    def col(self, table_name: str, column_name: str) -> ColumnElement:
        return self._tables[table_name].c[column_name]


def _condition(tables: _Tables, condition: Condition) -> ColumnElement:
    col = tables.col(condition.column.table, condition.column.column)
    op, value = condition.op, condition.value

    if op == Op.EQ:
        return col.is_(None) if value is None else col == value
    if op == Op.NEQ:
        return col.is_not(None) if value is None else col != value
    if op == Op.GT:
        return col > value
    if op == Op.GTE:
        return col >= value
    if op == Op.LT:
        return col < value
    if op == Op.LTE:
        return col <= value
    if op == Op.IN:
        return col.in_(list(value))
    if op == Op.NOT_IN:
        return col.not_in(list(value))
    if op == Op.LIKE:
        return col.like(value, escape=LIKE_ESCAPE)
    if op == Op.ILIKE:
        return col.ilike(value, escape=LIKE_ESCAPE)
    if op == Op.BETWEEN:
        low, high = value
        return col.between(low, high)
    if op == Op.IS_NULL:
        return col.is_(None)
    if op == Op.IS_NOT_NULL:
        return col.is_not(None)
    raise ConfigError(f"Unsupported query operator: {op}")


def _clause(tables: _Tables, clause: Clause) -> ColumnElement:
    if isinstance(clause, AnyOf):
        if not clause.conditions:
            return false()
        return or_(*(_condition(tables, c) for c in clause.conditions))
    return _condition(tables, clause)


def compile_select(spec: QuerySpec):
    """Build a SELECT for a QuerySpec (ordering and paging included)."""
    tables = _Tables(spec)
    base = tables[spec.table]

    if spec.columns:
        selected = [base.c[c] for c in spec.columns]
    else:
        selected = [literal_column(f"{spec.table}.*")]

    from_clause = base
    for join in spec.joins:
        on = tables.col(join.left.table, join.left.column) == tables.col(
            join.right.table, join.right.column
        )
        from_clause = from_clause.join(tables[join.table], on)

    stmt = select(*selected).select_from(from_clause)
    if spec.distinct:
        stmt = stmt.distinct()
    if spec.where:
        stmt = stmt.where(and_(*(_clause(tables, c) for c in spec.where)))
    for order in spec.order_by:
        col = tables.col(order.column.table, order.column.column)
        stmt = stmt.order_by(col.desc() if order.descending else col.asc())
    if spec.limit is not None:
        stmt = stmt.limit(spec.limit)
    if spec.offset:
        stmt = stmt.offset(spec.offset)
    return stmt


def compile_count(spec: QuerySpec):
    """COUNT over the query rows, honoring DISTINCT."""
    inner = compile_select(spec.for_count()).subquery()
    return select(func.count()).select_from(inner)


class SQLAlchemyStorage:
    """Storage over one SQLAlchemy engine per connection name.

    Engines are created lazily from :class:`DatabaseConfig`; tests and
    embedding applications may pass ready-made engines instead.
    """

    def __init__(
        self,
        config: DatabaseConfig | None = None,
        *,
        engines: dict[str, Engine] | None = None,
    ):
        if config is None and not engines:
            raise ValueError("SQLAlchemyStorage needs a DatabaseConfig or engines")
        self.config = config
        self._engines: dict[str, Engine] = dict(engines or {})
        self._lock = threading.Lock()

    @classmethod
    def from_url(cls, url: str, **connections: str) -> SQLAlchemyStorage:
        return cls(DatabaseConfig(url=url, connections=dict(connections)))

    def engine_for(self, connection: str | None = None) -> Engine:
        name = connection or DEFAULT_CONNECTION
        with self._lock:
            engine = self._engines.get(name)
            if engine is None:
                if self.config is None:
                    raise ConfigError(f"Unknown database connection '{name}'")
                url = self.config.url_for(name)
                engine = create_engine(to_sqlalchemy_url(url))
                self._engines[name] = engine
                logger.debug("Created engine for connection '%s'", name)
        return engine

    def dispose(self) -> None:
        with self._lock:
            for engine in self._engines.values():
                engine.dispose()
            if self.config is not None:
                self._engines.clear()

    def _failed(self, what: str, exc: SQLAlchemyError) -> StorageError:
        logger.error("Storage failure while %s: %s", what, exc)
        return StorageError(f"Storage failure while {what}: {exc.__class__.__name__}")

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch(self, spec: QuerySpec) -> list[dict[str, Any]]:
        stmt = compile_select(spec)
        engine = self.engine_for(spec.connection)
        try:
            with engine.connect() as conn:
                return [dict(row) for row in conn.execute(stmt).mappings()]
        except SQLAlchemyError as exc:
            raise self._failed(f"reading {spec.table}", exc) from exc

    def count(self, spec: QuerySpec) -> int:
        stmt = compile_count(spec)
        engine = self.engine_for(spec.connection)
        try:
            with engine.connect() as conn:
                return int(conn.execute(stmt).scalar_one())
        except SQLAlchemyError as exc:
            raise self._failed(f"counting {spec.table}", exc) from exc

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def update(
        self,
        table_name: str,
        primary_key: str,
        record_id: Any,
        values: dict[str, Any],
        connection: str | None = None,
    ) -> int:
        if not values:
            return 0
        target = table(
            check_identifier(table_name),
            *(column(check_identifier(c)) for c in {primary_key, *values}),
        )
        stmt = update(target).where(target.c[primary_key] == record_id).values(**values)
        engine = self.engine_for(connection)
        try:
            with engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise self._failed(f"updating {table_name}", exc) from exc

    def _pivot(self, pivot_table: str, foreign_key: str, related_key: str) -> TableClause:
        return table(
            check_identifier(pivot_table),
            column(check_identifier(foreign_key)),
            column(check_identifier(related_key)),
        )

    def attach(
        self,
        pivot_table: str,
        foreign_key: str,
        parent_id: Any,
        related_key: str,
        related_ids: Iterable[Any],
        connection: str | None = None,
    ) -> int:
        ids = list(dict.fromkeys(related_ids))
        if not ids:
            return 0
        pivot = self._pivot(pivot_table, foreign_key, related_key)
        engine = self.engine_for(connection)
        try:
            with engine.begin() as conn:
                existing = set(
                    conn.execute(
                        select(pivot.c[related_key]).where(
                            pivot.c[foreign_key] == parent_id,
                            pivot.c[related_key].in_(ids),
                        )
                    ).scalars()
                )
                missing = [i for i in ids if i not in existing]
                if missing:
                    conn.execute(
                        insert(pivot),
                        [{foreign_key: parent_id, related_key: i} for i in missing],
                    )
                return len(missing)
        except SQLAlchemyError as exc:
            raise self._failed(f"attaching to {pivot_table}", exc) from exc

    def detach(
        self,
        pivot_table: str,
        foreign_key: str,
        parent_id: Any,
        related_key: str,
        related_ids: Iterable[Any],
        connection: str | None = None,
    ) -> int:
        ids = list(dict.fromkeys(related_ids))
        if not ids:
            return 0
        pivot = self._pivot(pivot_table, foreign_key, related_key)
        stmt = delete(pivot).where(
            pivot.c[foreign_key] == parent_id,
            pivot.c[related_key].in_(ids),
        )
        engine = self.engine_for(connection)
        try:
            with engine.begin() as conn:
                return conn.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise self._failed(f"detaching from {pivot_table}", exc) from exc
