"""CRUD API endpoints over schema-described models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable

from fastapi import APIRouter, Body, HTTPException, Query, Request
from pydantic import BaseModel, Field

from schemacrud.actions.executor import ActionExecutor
from schemacrud.auth.authorizer import AllowAllAuthorizer, Authorizer, PermissionSetAuthorizer, require
from schemacrud.core.config import Settings
from schemacrud.persistence.storage import Storage
from schemacrud.query.engine import DynamicQueryEngine, ListParams
from schemacrud.query.relationships import RelationshipResolver
from schemacrud.schema.models import Schema
from schemacrud.schema.store import SchemaStore
from schemacrud.schema.translator import SchemaTranslator

CLEAR_CACHE_PERMISSION = "clear_schema_cache"

# Schema shown when the caller does not name a context
DEFAULT_SCHEMA_CONTEXT = "list"


@dataclass
class CrudServices:
    """Everything the CRUD endpoints need, built once per application."""

    settings: Settings
    store: SchemaStore
    storage: Storage
    engine: DynamicQueryEngine
    resolver: RelationshipResolver
    executor: ActionExecutor
    translator: SchemaTranslator | None = None


class RelatedIdsRequest(BaseModel):
    ids: list[int | str] = Field(min_length=1)


class FieldValueRequest(BaseModel):
    value: Any = None


def _split_model(model: str) -> tuple[str, str | None]:
    """``users@reporting`` -> ("users", "reporting")."""
    name, _, connection = model.partition("@")
    return name, connection or None


def _get_authorizer(request: Request, settings: Settings) -> Authorizer:
    """Permissions are placed on request.state by upstream auth middleware."""
    if settings.disable_auth:
        return AllowAllAuthorizer()
    return PermissionSetAuthorizer(getattr(request.state, "permissions", None) or ())


def create_crud_router(get_services: Callable[[], CrudServices | None]) -> APIRouter:
    """Create the CRUD router with injected dependencies."""
    router = APIRouter(prefix="/api/crud", tags=["crud"])

    def _services() -> CrudServices:
        services = get_services()
        if services is None:
            raise HTTPException(500, "CRUD services not initialized")
        return services

    def _load(services: CrudServices, model: str, context: str | None = None) -> Schema:
        name, connection = _split_model(model)
        return services.store.load(name, connection, context)

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------

    @router.delete("/schema-cache")
    def clear_schema_cache(
        request: Request,
        model: str | None = Query(default=None),
    ) -> dict[str, Any]:
        """Drop cached schemas, e.g. after editing schema files."""
        services = _services()
        require(_get_authorizer(request, services.settings), CLEAR_CACHE_PERMISSION, "clear the schema cache")
        if model is None:
            cleared = services.store.clear()
        else:
            name, connection = _split_model(model)
            cleared = services.store.clear(name, connection)
        return {"ok": True, "cleared": cleared}

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    @router.get("/{model}/schema")
    def get_schema(
        model: str,
        request: Request,
        context: str = Query(default=DEFAULT_SCHEMA_CONTEXT),
    ) -> dict[str, Any]:
        services = _services()
        authorizer = _get_authorizer(request, services.settings)
        full = _load(services, model)
        require(authorizer, full.permission("read"), f"read {full.model}")
        if context.strip().lower() == "full":
            # The unfiltered schema can expose fields no context shows
            require(authorizer, full.permission("update"), f"read the full {full.model} schema")
            schema = full
        else:
            schema = _load(services, model, context)
        if services.translator is not None:
            schema = services.translator.translate_schema(schema)
        return schema.to_dict()

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    @router.get("/{model}")
    def list_records(model: str, request: Request) -> dict[str, Any]:
        services = _services()
        full = _load(services, model)
        require(_get_authorizer(request, services.settings), full.permission("read"), f"read {full.model}")
        listing = _load(services, model, "list")
        params = ListParams.from_query(request.query_params)
        return services.engine.query(listing, params).to_dict()

    @router.get("/{model}/{record_id}")
    def get_record(model: str, record_id: str, request: Request) -> dict[str, Any]:
        services = _services()
        full = _load(services, model)
        require(_get_authorizer(request, services.settings), full.permission("read"), f"read {full.model}")
        detail = _load(services, model, "detail")
        return {"data": services.engine.get(detail, record_id)}

    @router.put("/{model}/{record_id}/{field_name}")
    def update_field(
        model: str,
        record_id: str,
        field_name: str,
        body: FieldValueRequest,
        request: Request,
    ) -> dict[str, Any]:
        services = _services()
        full = _load(services, model)
        result = services.executor.update_field(
            full,
            record_id,
            field_name,
            body.value,
            authorizer=_get_authorizer(request, services.settings),
        )
        return result.to_dict()

    # ------------------------------------------------------------------
    # Relationships
    # ------------------------------------------------------------------

    @router.get("/{model}/{record_id}/{relation}")
    def list_related(model: str, record_id: str, relation: str, request: Request) -> dict[str, Any]:
        services = _services()
        authorizer = _get_authorizer(request, services.settings)
        parent = _load(services, model)
        require(authorizer, parent.permission("read"), f"read {parent.model}")
        services.engine.get(parent, record_id)

        related = services.resolver.related_schema(parent, relation, "list")
        require(authorizer, related.permission("read"), f"read {related.model}")
        spec = services.resolver.resolve(parent, relation, parent.coerce_id(record_id))
        params = ListParams.from_query(request.query_params)
        return services.engine.query(related, params, base=spec).to_dict()

    def _pivot_write(
        services: CrudServices,
        request: Request,
        model: str,
        record_id: str,
        relation: str,
        ids: list[int | str],
        attach: bool,
    ) -> int:
        parent = _load(services, model)
        require(
            _get_authorizer(request, services.settings),
            parent.permission("update"),
            f"change {parent.model} {relation}",
        )
        relationship = services.resolver.pivot_for(parent, relation)
        parent_id = parent.coerce_id(record_id)
        services.engine.get(parent, parent_id)
        related = services.store.load(relationship.model, parent.connection)
        related_ids = [related.coerce_id(i) for i in ids]
        write = services.storage.attach if attach else services.storage.detach
        return write(
            relationship.pivot_table,
            relationship.foreign_key,
            parent_id,
            relationship.related_key,
            related_ids,
            parent.connection,
        )

    @router.post("/{model}/{record_id}/{relation}")
    def attach_related(
        model: str,
        record_id: str,
        relation: str,
        body: RelatedIdsRequest,
        request: Request,
    ) -> dict[str, Any]:
        count = _pivot_write(_services(), request, model, record_id, relation, body.ids, True)
        return {"ok": True, "attached": count}

    @router.delete("/{model}/{record_id}/{relation}")
    def detach_related(
        model: str,
        record_id: str,
        relation: str,
        body: RelatedIdsRequest,
        request: Request,
    ) -> dict[str, Any]:
        count = _pivot_write(_services(), request, model, record_id, relation, body.ids, False)
        return {"ok": True, "detached": count}

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    @router.post("/{model}/{record_id}/a/{action_key}")
    def run_action(
        model: str,
        record_id: str,
        action_key: str,
        request: Request,
        payload: dict[str, Any] = Body(default_factory=dict),
    ) -> dict[str, Any]:
        services = _services()
        full = _load(services, model)
        result = services.executor.execute(
            full,
            record_id,
            action_key,
            payload,
            authorizer=_get_authorizer(request, services.settings),
        )
        return result.to_dict()

    return router
