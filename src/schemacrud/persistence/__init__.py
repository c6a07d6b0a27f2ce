"""Persistence layer - storage protocol, configuration and SQLAlchemy storage."""

from schemacrud.persistence.config import DatabaseConfig
from schemacrud.persistence.sqlalchemy_storage import SQLAlchemyStorage
from schemacrud.persistence.storage import Storage

__all__ = ["DatabaseConfig", "SQLAlchemyStorage", "Storage"]
