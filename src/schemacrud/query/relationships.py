"""Turn schema relationship definitions into executable query specs."""

from __future__ import annotations

import logging
from dataclasses import replace
from typing import Any

from schemacrud.errors import ConfigError, NotFoundError, ValidationError
from schemacrud.query.spec import ColumnRef, Condition, Join, Op, QuerySpec
from schemacrud.schema.models import (
    ForeignKeyRelationship,
    ManyToManyRelationship,
    ManyToManyThroughRelationship,
    Relationship,
    Schema,
)
from schemacrud.schema.store import SchemaStore

logger = logging.getLogger(__name__)


class RelationshipResolver:
    """Resolves ``(parent schema, relationship name, parent id)`` to a QuerySpec.

    Related and through models are loaded through the store on the parent's
    connection. Ordering is left to the caller.
    """

    def __init__(self, store: SchemaStore):
        self.store = store

    def find(self, parent: Schema, name: str) -> Relationship:
        """Look up a relationship by name.

        Explicit ``relationships`` entries win; otherwise a ``details`` entry
        for a model of that name with a ``foreign_key`` acts as a one-to-many.

        Raises:
            NotFoundError: Naming the relationship.
        """
        relationship = parent.get_relationship(name)
        if relationship is not None:
            return relationship

        detail = parent.get_detail(name)
        if detail is not None and detail.foreign_key:
            return ForeignKeyRelationship(
                name=name,
                model=detail.model,
                foreign_key=detail.foreign_key,
                title=detail.title,
            )

        raise NotFoundError(f"Relationship '{name}' not found for model '{parent.model}'")

    def related_schema(
        self,
        parent: Schema,
        name: str,
        context: str | None = None,
    ) -> Schema:
        """Schema of the related model, narrowed to the detail's list fields if set."""
        relationship = self.find(parent, name)
        schema = self.store.load(relationship.model, parent.connection, context)

        detail = parent.get_detail(name)
        if detail is not None and detail.list_fields:
            fields = {n: f for n, f in schema.fields.items() if n in detail.list_fields}
            schema = replace(schema, fields=fields)
        return schema

    def resolve(self, parent: Schema, name: str, parent_id: Any) -> QuerySpec:
        """Build the query for rows related to one parent record.

        Args:
            parent: Full schema of the parent model.
            name: Relationship name.
            parent_id: Primary key value of the parent record.

        Returns:
            A QuerySpec selecting the related model's stored columns.

        Raises:
            NotFoundError: Relationship or related model does not exist.
            ConfigError: Relationship definition is incomplete or of an
                unsupported type.
        """
        relationship = self.find(parent, name)
        relationship.require_keys()
        related = self.store.load(relationship.model, parent.connection)

        base = QuerySpec(
            table=related.table,
            primary_key=related.primary_key,
            connection=related.connection or parent.connection,
            columns=related.selectable_columns(),
        )

        if isinstance(relationship, ManyToManyThroughRelationship):
            spec = self._through(parent, relationship, related, base, parent_id)
        elif isinstance(relationship, ManyToManyRelationship):
            spec = self._many_to_many(relationship, related, base, parent_id)
        elif isinstance(relationship, ForeignKeyRelationship):
            spec = base.and_where(
                Condition(base.col(relationship.foreign_key), Op.EQ, parent_id)
            )
        else:
            raise ConfigError(
                f"Relationship '{name}' has unsupported type '{getattr(relationship, 'type', None)}'"
            )

        logger.debug(
            "Resolved %s.%s (%s) for id=%s: %d join(s)",
            parent.model, name, relationship.type, parent_id, len(spec.joins),
        )
        return spec

    def _many_to_many(
        self,
        relationship: ManyToManyRelationship,
        related: Schema,
        base: QuerySpec,
        parent_id: Any,
    ) -> QuerySpec:
        pivot = relationship.pivot_table
        join = Join(
            table=pivot,
            left=ColumnRef(pivot, relationship.related_key),
            right=base.col(related.primary_key),
        )
        spec = replace(base, joins=(join,))
        return spec.and_where(
            Condition(ColumnRef(pivot, relationship.foreign_key), Op.EQ, parent_id)
        )

    def _through(
        self,
        parent: Schema,
        relationship: ManyToManyThroughRelationship,
        related: Schema,
        base: QuerySpec,
        parent_id: Any,
    ) -> QuerySpec:
        try:
            through = self.store.load(relationship.through, parent.connection)
        except NotFoundError as exc:
            raise ConfigError(
                f"Relationship '{relationship.name}' references unknown through model "
                f"'{relationship.through}'"
            ) from exc

        second = relationship.second_pivot_table
        first = relationship.first_pivot_table
        joins = (
            Join(
                table=second,
                left=ColumnRef(second, relationship.second_related_key),
                right=base.col(related.primary_key),
            ),
            Join(
                table=through.table,
                left=ColumnRef(through.table, through.primary_key),
                right=ColumnRef(second, relationship.second_foreign_key),
            ),
            Join(
                table=first,
                left=ColumnRef(first, relationship.first_related_key),
                right=ColumnRef(through.table, through.primary_key),
            ),
        )
        spec = replace(base, joins=joins, distinct=True)
        spec = spec.and_where(
            Condition(ColumnRef(first, relationship.first_foreign_key), Op.EQ, parent_id)
        )
        if through.soft_delete:
            spec = spec.and_where(Condition(ColumnRef(through.table, "deleted_at"), Op.IS_NULL))
        return spec

    def pivot_for(self, parent: Schema, name: str) -> ManyToManyRelationship:
        """The many-to-many definition behind an attach/detach request.

        Raises:
            NotFoundError: Unknown relationship.
            ValidationError: Relationship is not a writable many-to-many.
            ConfigError: Definition is incomplete.
        """
        relationship = self.find(parent, name)
        if not isinstance(relationship, ManyToManyRelationship):
            raise ValidationError(
                f"Relationship '{name}' ({relationship.type}) does not support attach/detach"
            )
        relationship.require_keys()
        return relationship
