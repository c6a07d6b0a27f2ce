"""Shared fixtures: schema documents and a seeded SQLite database."""

import pytest
from sqlalchemy import create_engine, text

from schemacrud.actions.executor import ActionExecutor
from schemacrud.auth.password import PasswordService
from schemacrud.core.config import Settings
from schemacrud.persistence.sqlalchemy_storage import SQLAlchemyStorage
from schemacrud.query.engine import DynamicQueryEngine
from schemacrud.query.relationships import RelationshipResolver
from schemacrud.schema.loader import MappingSchemaSource
from schemacrud.schema.store import SchemaStore


def users_document() -> dict:
    """Users schema, written in the camelCase dialect most documents use."""
    return {
        "model": "users",
        "table": "users",
        "primaryKey": "id",
        "title": "USER.TITLE",
        "softDelete": True,
        "titleField": "name",
        "defaultSort": {"name": "asc"},
        "fields": {
            "id": {"type": "integer", "primaryKey": True, "sortable": True},
            "name": {
                "type": "string",
                "label": "USER.NAME",
                "sortable": True,
                "filterable": True,
                "filterType": "like",
                "searchable": True,
            },
            "email": {
                "type": "email",
                "searchable": True,
                "filterable": True,
                "filterType": "equals",
            },
            "flag_enabled": {"type": "boolean-tgl", "filterable": True, "label": "USER.ENABLED"},
            "status": {"type": "string", "filterable": True, "filterType": "in", "showIn": ["list", "detail"]},
            "age": {"type": "integer", "filterable": True, "sortable": True, "filterType": "between"},
            "password": {"type": "password", "validation": {"length": {"min": 8}}},
            "created_at": {"type": "datetime", "readonly": True, "sortable": True, "showIn": ["detail"]},
            "post_count": {"type": "integer", "computed": True, "sortable": True, "showIn": ["list"]},
        },
        "relationships": [
            {
                "name": "roles",
                "type": "belongs_to_many",
                "pivotTable": "user_roles",
                "foreignKey": "user_id",
                "relatedKey": "role_id",
                "title": "USER.ROLES",
            },
            {
                "name": "permissions",
                "type": "belongs_to_many_through",
                "through": "roles",
                "firstPivotTable": "user_roles",
                "firstForeignKey": "user_id",
                "firstRelatedKey": "role_id",
                "secondPivotTable": "role_permissions",
                "secondForeignKey": "role_id",
                "secondRelatedKey": "permission_id",
            },
            {
                "name": "broken_roles",
                "model": "roles",
                "type": "many_to_many",
                "pivotTable": "user_roles",
                "foreignKey": "user_id",
            },
        ],
        "details": [
            {"model": "posts", "foreignKey": "user_id", "listFields": ["title"], "title": "Posts"},
        ],
        "actions": [
            {
                "key": "disable_user",
                "type": "field_update",
                "field": "flag_enabled",
                "value": False,
                "label": "Disable",
                "permission": "users.disable",
                "successMessage": "User disabled",
            },
            {"key": "toggle_flag_enabled", "toggle": True, "contexts": ["list", "detail"]},
            {
                "key": "password_action",
                "type": "field_update",
                "requiresPasswordInput": True,
                "contexts": ["detail"],
            },
            {"key": "send_welcome", "type": "api_call", "handler": "send_welcome", "contexts": ["detail"]},
            {"key": "view_profile", "type": "route", "route": "/users/{id}", "contexts": ["list"]},
        ],
        "permissions": {
            "read": "users.read",
            "update": "users.update",
            "delete": "users.delete",
        },
    }


def roles_document() -> dict:
    return {
        "model": "roles",
        "table": "roles",
        "timestamps": False,
        "fields": {
            "id": {"type": "integer", "primaryKey": True, "sortable": True},
            "name": {"type": "string", "sortable": True, "searchable": True},
        },
        "relationships": [
            {
                "name": "permissions",
                "type": "many_to_many",
                "pivotTable": "role_permissions",
                "foreignKey": "role_id",
                "relatedKey": "permission_id",
            },
        ],
        "permissions": {"read": "roles.read", "update": "roles.update"},
    }


def permissions_document() -> dict:
    return {
        "model": "permissions",
        "table": "permissions",
        "timestamps": False,
        "fields": {
            "id": {"type": "integer", "primaryKey": True, "sortable": True},
            "name": {"type": "string", "sortable": True, "searchable": True},
        },
    }


def posts_document() -> dict:
    return {
        "model": "posts",
        "table": "posts",
        "timestamps": False,
        "fields": {
            "id": {"type": "integer", "primaryKey": True, "sortable": True},
            "user_id": {"type": "integer", "filterable": True},
            "title": {"type": "string", "searchable": True, "sortable": True},
        },
    }


def products_document() -> dict:
    return {
        "model": "products",
        "table": "products",
        "timestamps": False,
        "fields": {
            "id": {"type": "integer", "primaryKey": True, "sortable": True},
            "name": {"type": "string", "searchable": True, "sortable": True},
            "sku": {"type": "string", "searchable": True},
            "price": {"type": "decimal", "filterable": True, "sortable": True},
        },
    }


def tags_document() -> dict:
    """No searchable fields at all."""
    return {
        "model": "tags",
        "table": "tags",
        "timestamps": False,
        "fields": {
            "id": {"type": "integer", "primaryKey": True},
            "label": {"type": "string", "sortable": True},
        },
    }


def all_documents() -> dict[str, dict]:
    return {
        "users": users_document(),
        "roles": roles_document(),
        "permissions": permissions_document(),
        "posts": posts_document(),
        "products": products_document(),
        "tags": tags_document(),
    }


_DDL = [
    """CREATE TABLE users (
        id INTEGER PRIMARY KEY,
        name TEXT NOT NULL,
        email TEXT,
        flag_enabled INTEGER,
        status TEXT,
        age INTEGER,
        password TEXT,
        created_at TEXT,
        updated_at TEXT,
        deleted_at TEXT
    )""",
    "CREATE TABLE roles (id INTEGER PRIMARY KEY, name TEXT NOT NULL)",
    "CREATE TABLE permissions (id INTEGER PRIMARY KEY, name TEXT NOT NULL)",
    "CREATE TABLE user_roles (user_id INTEGER NOT NULL, role_id INTEGER NOT NULL)",
    "CREATE TABLE role_permissions (role_id INTEGER NOT NULL, permission_id INTEGER NOT NULL)",
    "CREATE TABLE posts (id INTEGER PRIMARY KEY, user_id INTEGER, title TEXT)",
    "CREATE TABLE products (id INTEGER PRIMARY KEY, name TEXT, sku TEXT, price REAL)",
    "CREATE TABLE tags (id INTEGER PRIMARY KEY, label TEXT)",
]

_SEED = [
    """INSERT INTO users (id, name, email, flag_enabled, status, age, created_at, deleted_at) VALUES
        (1, 'Alice', 'alice@example.com', 1, 'active', 30, '2024-01-01T10:00:00', NULL),
        (2, 'Bob', 'bob@example.com', 0, 'pending', 45, '2024-02-01T10:00:00', NULL),
        (3, 'Carol', 'carol@sample.org', NULL, 'active', 22, '2024-03-01T10:00:00', NULL),
        (4, 'Dave', 'dave@example.com', 1, 'active', 50, '2024-04-01T10:00:00', '2024-05-01T00:00:00')""",
    "INSERT INTO roles (id, name) VALUES (1, 'admin'), (2, 'editor'), (3, 'author')",
    """INSERT INTO permissions (id, name) VALUES
        (10, 'posts.edit'), (11, 'posts.publish'), (12, 'users.manage')""",
    # Asymmetric on purpose: user 1 holds roles 2 and 3, role 1 belongs to user 3 only
    "INSERT INTO user_roles (user_id, role_id) VALUES (1, 2), (1, 3), (3, 1)",
    # Roles 2 and 3 both grant permission 10
    """INSERT INTO role_permissions (role_id, permission_id) VALUES
        (1, 12), (2, 10), (3, 10), (3, 11)""",
    """INSERT INTO posts (id, user_id, title) VALUES
        (1, 1, 'Hello'), (2, 1, 'Second thoughts'), (3, 2, 'Bob writes')""",
    """INSERT INTO products (id, name, sku, price) VALUES
        (1, 'abc-widget', 'W-1', 10.0),
        (2, 'Gadget', 'SKU-abc', 20.0),
        (3, 'Other', 'X-9', 10.0)""",
    "INSERT INTO tags (id, label) VALUES (1, 'red'), (2, 'blue')",
]


@pytest.fixture
def db_engine(tmp_path):
    """SQLite engine on a fresh, seeded database file."""
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}")
    with engine.begin() as conn:
        for statement in _DDL + _SEED:
            conn.execute(text(statement))
    yield engine
    engine.dispose()


@pytest.fixture
def storage(db_engine):
    return SQLAlchemyStorage(engines={"default": db_engine})


@pytest.fixture
def store():
    return SchemaStore(MappingSchemaSource(all_documents()))


@pytest.fixture
def settings():
    return Settings(disable_auth=True, password_scheme="pbkdf2_sha256")


@pytest.fixture
def engine(storage, settings):
    return DynamicQueryEngine(storage, settings)


@pytest.fixture
def resolver(store):
    return RelationshipResolver(store)


@pytest.fixture
def password_service():
    return PasswordService(scheme="pbkdf2_sha256")


@pytest.fixture
def executor(storage, password_service):
    return ActionExecutor(storage, password_service=password_service)


@pytest.fixture
def read_value(db_engine):
    """Read one value straight from the database."""

    def _read(sql: str, **params):
        with db_engine.connect() as conn:
            return conn.execute(text(sql), params).scalar()

    return _read
