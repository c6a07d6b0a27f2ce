"""Reduce a schema to what a given context (list/form/detail/meta) may see."""

from __future__ import annotations

from dataclasses import replace

from schemacrud.schema.models import ActionDef, Context, Schema

FULL_CONTEXT = "full"


def parse_context(context: str | None) -> list[Context] | None:
    """Split a context request into tokens.

    Args:
        context: ``None``/``"full"`` for the full schema, a single token, or
            a comma-separated list such as ``"list,form"``.

    Returns:
        Ordered, de-duplicated contexts, or ``None`` for the full schema.

    Raises:
        ValidationError: For an unknown token.
    """
    if context is None:
        return None
    text = context.strip()
    if not text or text.lower() == FULL_CONTEXT:
        return None
    tokens: list[Context] = []
    for part in text.split(","):
        if not part.strip():
            continue
        token = Context.parse(part)
        if token not in tokens:
            tokens.append(token)
    return tokens or None


def context_key(contexts: list[Context] | None) -> str:
    if contexts is None:
        return FULL_CONTEXT
    return ",".join(c.value for c in contexts)


class ContextFilter:
    """Pure filtering of schemas by context. Performs no I/O."""

    def filter(self, schema: Schema, context: str | None = None) -> Schema:
        contexts = parse_context(context)
        if contexts is None:
            return schema
        parts = [(c, self.filter_single(schema, c)) for c in contexts]
        if len(parts) == 1:
            return parts[0][1]
        return self.combine(schema, parts)

    def filter_single(self, schema: Schema, context: Context) -> Schema:
        """The schema as seen by exactly one context."""
        if context == Context.META:
            return replace(
                schema,
                fields={},
                actions=[],
                relationships=[],
                details=[],
                default_sort={},
                context=context.value,
                contexts={},
            )

        fields = {
            name: field_def
            for name, field_def in schema.fields.items()
            if field_def.visible_in(context)
        }
        actions = [a for a in schema.actions if a.visible_in(context)]
        is_detail = context == Context.DETAIL
        return replace(
            schema,
            fields=fields,
            actions=actions,
            relationships=list(schema.relationships) if is_detail else [],
            details=list(schema.details) if is_detail else [],
            default_sort=dict(schema.default_sort) if context == Context.LIST else {},
            context=context.value,
            contexts={},
        )

    def combine(self, schema: Schema, parts: list[tuple[Context, Schema]]) -> Schema:
        """Union of single-context results, keeping the per-context breakdown.

        Earlier contexts win when a field or action appears in several.
        """
        fields = {}
        actions: dict[str, ActionDef] = {}
        relationships = []
        details = []
        default_sort: dict[str, str] = {}
        for _, part in parts:
            for name, field_def in part.fields.items():
                fields.setdefault(name, field_def)
            for action in part.actions:
                actions.setdefault(action.key, action)
            for relationship in part.relationships:
                if relationship not in relationships:
                    relationships.append(relationship)
            for detail in part.details:
                if detail not in details:
                    details.append(detail)
            default_sort = default_sort or dict(part.default_sort)

        return replace(
            schema,
            fields=fields,
            actions=list(actions.values()),
            relationships=relationships,
            details=details,
            default_sort=default_sort,
            context=context_key([c for c, _ in parts]),
            contexts={c.value: part for c, part in parts},
        )
