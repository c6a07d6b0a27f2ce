"""Error taxonomy shared by every schemacrud component.

The engine raises these and never builds transport structures itself; the
HTTP layer (``schemacrud.api``) maps each kind to a status code.
"""

from __future__ import annotations


class SchemaCrudError(Exception):
    """Base class for all engine errors."""

    status_code: int = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConfigError(SchemaCrudError):
    """A schema document or relationship definition is malformed.

    Always an authoring/deployment bug, never caused by request input.
    """

    status_code = 500


class NotFoundError(SchemaCrudError):
    """A model, relationship, action or record does not exist."""

    status_code = 404


class ValidationError(SchemaCrudError):
    """Caller-supplied sort, filter, pagination or payload is invalid."""

    status_code = 400


class ForbiddenError(SchemaCrudError):
    """The authorization collaborator denied a permission token."""

    status_code = 403

    def __init__(self, message: str, permission: str | None = None):
        super().__init__(message)
        self.permission = permission


class StorageError(SchemaCrudError):
    """The underlying datastore failed. Wrapped, never interpreted."""

    status_code = 503
