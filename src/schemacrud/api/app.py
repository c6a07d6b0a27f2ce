"""FastAPI application."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from schemacrud.actions.executor import ActionExecutor
from schemacrud.actions.registry import ActionRegistry
from schemacrud.api.endpoints import CrudServices, create_crud_router
from schemacrud.auth.password import PasswordService
from schemacrud.core.config import Settings
from schemacrud.errors import ConfigError, SchemaCrudError
from schemacrud.persistence.config import DatabaseConfig
from schemacrud.persistence.sqlalchemy_storage import SQLAlchemyStorage
from schemacrud.persistence.storage import Storage
from schemacrud.query.engine import DynamicQueryEngine
from schemacrud.query.relationships import RelationshipResolver
from schemacrud.schema.loader import DirectorySchemaSource
from schemacrud.schema.store import SchemaStore
from schemacrud.schema.translator import DictTranslator, SchemaTranslator, Translator
from schemacrud.schema.validator import validate_schema_dir

logger = logging.getLogger(__name__)


def build_services(
    settings: Settings,
    *,
    store: SchemaStore | None = None,
    storage: Storage | None = None,
    translator: Translator | None = None,
) -> CrudServices:
    """Wire the engine components from settings, keeping any given overrides."""
    store = store or SchemaStore(DirectorySchemaSource(settings.schema_path))
    storage = storage or SQLAlchemyStorage(DatabaseConfig.from_env())
    if translator is None and settings.locale_file is not None:
        translator = DictTranslator.from_yaml(settings.locale_file)

    return CrudServices(
        settings=settings,
        store=store,
        storage=storage,
        engine=DynamicQueryEngine(storage, settings),
        resolver=RelationshipResolver(store),
        executor=ActionExecutor(
            storage,
            password_service=PasswordService(scheme=settings.password_scheme),
        ),
        translator=SchemaTranslator(translator) if translator is not None else None,
    )


def _log_schema_issues(settings: Settings) -> None:
    """Warn about invalid schema documents; startup is not blocked."""
    if not settings.schema_path.is_dir():
        return
    issues = validate_schema_dir(settings.schema_path)
    if not issues:
        return
    for issue in issues:
        if issue.severity == "error":
            logger.error("Schema error: %s", issue)
        else:
            logger.warning("Schema warning: %s", issue)
    logger.warning(
        "Schema validation: %d issue(s). Run 'schemacrud schema validate' for details.",
        len(issues),
    )


def _log_unresolved_handlers(store: SchemaStore) -> None:
    """Warn about ``api_call`` actions whose handler was never registered."""
    for model, connection in store.list_models():
        try:
            schema = store.load(model, connection=connection)
        except ConfigError:
            # already reported by _log_schema_issues
            continue
        for key, handler in ActionRegistry.unresolved(schema).items():
            logger.warning(
                "Action '%s' on %s calls handler '%s', which is not registered", key, model, handler
            )


def create_app(
    settings: Settings | None = None,
    *,
    store: SchemaStore | None = None,
    storage: Storage | None = None,
    translator: Translator | None = None,
) -> FastAPI:
    """Create the API application.

    Services are built immediately so the app is usable without running its
    lifespan (e.g. from a plain ``TestClient``). The lifespan validates schema
    documents on startup and disposes database engines on shutdown.
    """
    settings = settings or Settings.from_env()
    services = build_services(settings, store=store, storage=storage, translator=translator)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        _log_schema_issues(settings)
        _log_unresolved_handlers(services.store)
        yield
        dispose = getattr(services.storage, "dispose", None)
        if dispose is not None:
            dispose()

    app = FastAPI(title="SchemaCRUD API", lifespan=lifespan)
    app.state.services = services

    # CORS for frontend dev server
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["http://localhost:5173"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(SchemaCrudError)
    async def schemacrud_error_handler(request: Request, exc: SchemaCrudError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("%s on %s %s: %s", type(exc).__name__, request.method, request.url.path, exc.message)
        return JSONResponse(
            status_code=exc.status_code,
            content={"ok": False, "error": type(exc).__name__, "message": exc.message},
        )

    @app.get("/api/health")
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    app.include_router(create_crud_router(get_services=lambda: app.state.services))
    return app
