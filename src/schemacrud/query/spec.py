"""Engine-neutral query descriptions.

A :class:`QuerySpec` names a target table, a join chain, WHERE clauses with
bound values, ordering and paging.  The relationship resolver and the list
engine build them; a :class:`~schemacrud.persistence.storage.Storage`
implementation turns them into executable statements.  The same spec serves
both row fetches and counts (see :meth:`QuerySpec.for_count`).
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from enum import Enum
from typing import Any, Union


class Op(str, Enum):
    EQ = "eq"
    NEQ = "neq"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    IN = "in"
    NOT_IN = "not_in"
    LIKE = "like"
    ILIKE = "ilike"
    BETWEEN = "between"
    IS_NULL = "is_null"
    IS_NOT_NULL = "is_not_null"


@dataclass(frozen=True)
class ColumnRef:
    table: str
    column: str

    def __str__(self) -> str:
        return f"{self.table}.{self.column}"


@dataclass(frozen=True)
class Join:
    """Inner join of ``table`` on ``left = right``."""

    table: str
    left: ColumnRef
    right: ColumnRef


@dataclass(frozen=True)
class Condition:
    column: ColumnRef
    op: Op
    value: Any = None


@dataclass(frozen=True)
class AnyOf:
    """OR-group of conditions. An empty group matches nothing."""

    conditions: tuple[Condition, ...]


Clause = Union[Condition, AnyOf]


@dataclass(frozen=True)
class OrderBy:
    column: ColumnRef
    descending: bool = False


@dataclass(frozen=True)
class QuerySpec:
    table: str
    primary_key: str = "id"
    connection: str | None = None
    columns: tuple[str, ...] = ()  # columns of ``table``; empty selects all
    joins: tuple[Join, ...] = ()
    where: tuple[Clause, ...] = ()
    order_by: tuple[OrderBy, ...] = ()
    limit: int | None = None
    offset: int = 0
    distinct: bool = False

    def col(self, name: str) -> ColumnRef:
        return ColumnRef(self.table, name)

    def and_where(self, *clauses: Clause) -> QuerySpec:
        return replace(self, where=self.where + tuple(clauses))

    def with_columns(self, columns: tuple[str, ...]) -> QuerySpec:
        return replace(self, columns=tuple(columns))

    def then_order_by(self, column: str, descending: bool = False) -> QuerySpec:
        return replace(self, order_by=self.order_by + (OrderBy(self.col(column), descending),))

    def orders_on(self, column: str) -> bool:
        return any(o.column == self.col(column) for o in self.order_by)

    def paginate(self, limit: int, offset: int = 0) -> QuerySpec:
        return replace(self, limit=limit, offset=offset)

    def for_count(self) -> QuerySpec:
        """Same rows, no ordering or paging."""
        return replace(self, order_by=(), limit=None, offset=0)

    def conditions(self) -> list[Condition]:
        """All conditions, with OR-groups flattened."""
        found: list[Condition] = []
        for clause in self.where:
            if isinstance(clause, AnyOf):
                found.extend(clause.conditions)
            else:
                found.append(clause)
        return found

    def tables(self) -> list[str]:
        return [self.table] + [j.table for j in self.joins]
