"""Schema loading and caching keyed by model and connection."""

from __future__ import annotations

import logging
import threading

from schemacrud.core.config import DEFAULT_CONNECTION
from schemacrud.errors import NotFoundError
from schemacrud.schema.context import ContextFilter, context_key, parse_context
from schemacrud.schema.loader import SchemaParser, SchemaSource
from schemacrud.schema.models import Schema
from schemacrud.schema.normalizer import normalize_document
from schemacrud.schema.validator import check_document, validate_document

logger = logging.getLogger(__name__)


def cache_key(model: str, connection: str | None = None) -> str:
    return f"{model}:{connection or DEFAULT_CONNECTION}"


class SchemaStore:
    """Loads, validates and memoizes schemas.

    The cache is the only shared mutable state in the engine. Loads run
    outside the lock, so two threads missing the same key may both load;
    the second simply overwrites the entry with an equivalent schema.

    Example:
        store = SchemaStore(DirectorySchemaSource("schema"))
        users = store.load("users")
        listing = store.load("users", context="list")
    """

    def __init__(
        self,
        source: SchemaSource,
        *,
        parser: SchemaParser | None = None,
        context_filter: ContextFilter | None = None,
    ):
        self.source = source
        self.parser = parser or SchemaParser()
        self.context_filter = context_filter or ContextFilter()
        self._lock = threading.Lock()
        self._schemas: dict[str, Schema] = {}
        # (cache_key, context_key) -> filtered schema
        self._filtered: dict[tuple[str, str], Schema] = {}

    def load(
        self,
        model: str,
        connection: str | None = None,
        context: str | None = None,
    ) -> Schema:
        """Load a schema, optionally filtered to a context.

        Args:
            model: Model name, e.g. ``"users"``.
            connection: Optional connection qualifier.
            context: ``None`` for the full schema, or a context request such
                as ``"list"`` or ``"list,form"``.

        Returns:
            The (filtered) schema.

        Raises:
            NotFoundError: If no document exists for the model.
            ConfigError: If the document is malformed.
            ValidationError: If the context names an unknown token.
        """
        schema = self._load_full(model, connection)
        contexts = parse_context(context)
        if contexts is None:
            return schema

        key = cache_key(model, connection)
        combined_key = (key, context_key(contexts))
        with self._lock:
            cached = self._filtered.get(combined_key)
        if cached is not None:
            return cached

        parts = []
        for ctx in contexts:
            single_key = (key, ctx.value)
            with self._lock:
                single = self._filtered.get(single_key)
            if single is None:
                single = self.context_filter.filter_single(schema, ctx)
                with self._lock:
                    single = self._filtered.setdefault(single_key, single)
            parts.append((ctx, single))

        if len(parts) == 1:
            return parts[0][1]

        result = self.context_filter.combine(schema, parts)
        with self._lock:
            return self._filtered.setdefault(combined_key, result)

    def _load_full(self, model: str, connection: str | None) -> Schema:
        key = cache_key(model, connection)
        with self._lock:
            cached = self._schemas.get(key)
        if cached is not None:
            logger.debug("Schema cache hit for %s", key)
            return cached

        logger.debug("Schema cache miss for %s", key)
        document = self.source.read(model, connection)
        if document is None:
            raise NotFoundError(f"Schema not found for model '{model}'")

        check_document(document, model)
        normalized = normalize_document(document)
        validate_document(normalized, model)
        if connection and not normalized.get("connection"):
            normalized["connection"] = connection
        schema = self.parser.parse(normalized)

        with self._lock:
            # concurrent cold loads all return the first stored instance
            return self._schemas.setdefault(key, schema)

    def clear(self, model: str | None = None, connection: str | None = None) -> int:
        """Drop cached schemas.

        Args:
            model: Only this model. ``None`` clears everything.
            connection: Only this connection of ``model``. ``None`` clears
                every connection of the model.

        Returns:
            The number of full-schema entries removed.
        """
        with self._lock:
            if model is None:
                keys = list(self._schemas)
            elif connection is None:
                keys = [k for k in self._schemas if k.split(":", 1)[0] == model]
            else:
                keys = [k for k in self._schemas if k == cache_key(model, connection)]
            for key in keys:
                del self._schemas[key]
            if model is None:
                self._filtered.clear()
            else:
                for filtered_key in [k for k in self._filtered if k[0] in keys]:
                    del self._filtered[filtered_key]

        logger.info("Cleared %d cached schema(s) (model=%s, connection=%s)", len(keys), model, connection)
        return len(keys)

    def is_cached(self, model: str, connection: str | None = None) -> bool:
        with self._lock:
            return cache_key(model, connection) in self._schemas

    def list_models(self) -> list[tuple[str, str | None]]:
        return self.source.list_models()
