"""Runtime settings read from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

DEFAULT_MAX_PAGE_SIZE = 1000
DEFAULT_PAGE_SIZE = 25

# Connection name used when a schema or request names none
DEFAULT_CONNECTION = "default"


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got '{raw}'") from exc


@dataclass
class Settings:
    """Engine configuration.

    Attributes:
        schema_path: Directory holding ``{model}.json``/``.yaml`` documents,
            optionally with one subdirectory per named connection.
        max_page_size: Upper bound for list page sizes; larger requests are clamped.
        default_page_size: Page size when the caller does not ask for one.
        disable_auth: Treat every permission as granted (development only).
        password_scheme: passlib scheme used for password actions.
        locale_file: Optional YAML file of translation strings.
    """

    schema_path: Path = Path("schema")
    max_page_size: int = DEFAULT_MAX_PAGE_SIZE
    default_page_size: int = DEFAULT_PAGE_SIZE
    disable_auth: bool = False
    password_scheme: str = "bcrypt"
    locale_file: Path | None = None

    @classmethod
    def from_env(cls) -> Settings:
        """Create settings from ``SCHEMACRUD_*`` environment variables."""
        locale = os.environ.get("SCHEMACRUD_LOCALE_FILE")
        settings = cls(
            schema_path=Path(os.environ.get("SCHEMACRUD_SCHEMA_PATH", "schema")),
            max_page_size=_env_int("SCHEMACRUD_MAX_PAGE_SIZE", DEFAULT_MAX_PAGE_SIZE),
            default_page_size=_env_int("SCHEMACRUD_DEFAULT_PAGE_SIZE", DEFAULT_PAGE_SIZE),
            disable_auth=_env_bool("SCHEMACRUD_DISABLE_AUTH"),
            password_scheme=os.environ.get("SCHEMACRUD_PASSWORD_SCHEME", "bcrypt"),
            locale_file=Path(locale) if locale else None,
        )
        settings.check()
        return settings

    def check(self) -> None:
        """Raise ValueError for inconsistent settings."""
        if self.max_page_size < 1:
            raise ValueError("max_page_size must be at least 1")
        if self.default_page_size < 1:
            raise ValueError("default_page_size must be at least 1")
        if self.default_page_size > self.max_page_size:
            raise ValueError("default_page_size cannot exceed max_page_size")
