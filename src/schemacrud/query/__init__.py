"""Query building: engine-neutral specs, relationship resolution and listing."""

from schemacrud.query.engine import DynamicQueryEngine, ListParams, ListResult
from schemacrud.query.relationships import RelationshipResolver
from schemacrud.query.spec import AnyOf, ColumnRef, Condition, Join, Op, OrderBy, QuerySpec

__all__ = [
    "AnyOf",
    "ColumnRef",
    "Condition",
    "DynamicQueryEngine",
    "Join",
    "ListParams",
    "ListResult",
    "Op",
    "OrderBy",
    "QuerySpec",
    "RelationshipResolver",
]
