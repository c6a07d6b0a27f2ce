"""Database configuration: the default URL plus named connections."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

from schemacrud.core.config import DEFAULT_CONNECTION
from schemacrud.errors import ConfigError

# SCHEMACRUD_DB_<NAME>=<url> declares a named connection
CONNECTION_ENV_PREFIX = "SCHEMACRUD_DB_"
_RESERVED_ENV = {"SCHEMACRUD_DB_PATH"}


def to_sqlalchemy_url(url: str) -> str:
    """URL suitable for SQLAlchemy engine creation.

    Ensures postgresql:// URLs use the psycopg (v3) driver since
    the project depends on psycopg[binary], not psycopg2.
    """
    if url.startswith("postgresql://"):
        return url.replace("postgresql://", "postgresql+psycopg://", 1)
    return url


@dataclass
class DatabaseConfig:
    """Database connection configuration.

    Supports sqlite:/// and postgresql:// URL schemes.
    """

    url: str
    connections: dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_env(cls, base_path: Path | None = None) -> DatabaseConfig:
        """Create config from environment variables.

        Resolution order for the default connection:
        1. DATABASE_URL env var (standard)
        2. SCHEMACRUD_DB_PATH env var (converted to sqlite:/// URL)
        3. Default: sqlite:///{base_path}/data/schemacrud.db

        Named connections come from ``SCHEMACRUD_DB_<NAME>`` variables,
        e.g. ``SCHEMACRUD_DB_REPORTING=postgresql://...`` -> ``reporting``.
        """
        connections = {
            key[len(CONNECTION_ENV_PREFIX):].lower(): value
            for key, value in os.environ.items()
            if key.startswith(CONNECTION_ENV_PREFIX) and key not in _RESERVED_ENV and value
        }

        url = os.environ.get("DATABASE_URL")
        if url:
            return cls(url=url, connections=connections)

        db_path = os.environ.get("SCHEMACRUD_DB_PATH")
        if db_path:
            return cls(url=f"sqlite:///{db_path}", connections=connections)

        if base_path:
            return cls(
                url=f"sqlite:///{base_path / 'data' / 'schemacrud.db'}",
                connections=connections,
            )

        return cls(url="sqlite:///schemacrud.db", connections=connections)

    def url_for(self, connection: str | None = None) -> str:
        """URL of a named connection; ``None``/``"default"`` is the default URL.

        Raises:
            ConfigError: For an undeclared connection name.
        """
        if not connection or connection == DEFAULT_CONNECTION:
            return self.url
        try:
            return self.connections[connection]
        except KeyError:
            raise ConfigError(f"Unknown database connection '{connection}'") from None

    @property
    def sqlalchemy_url(self) -> str:
        return to_sqlalchemy_url(self.url)
