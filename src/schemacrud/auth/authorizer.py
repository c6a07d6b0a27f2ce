"""Permission checks. The engine only ever asks ``can(token)``."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Protocol, runtime_checkable

from schemacrud.errors import ForbiddenError

logger = logging.getLogger(__name__)

WILDCARD = "*"


@runtime_checkable
class Authorizer(Protocol):
    def can(self, permission: str) -> bool:
        """Whether the current caller holds the permission token."""
        ...


class AllowAllAuthorizer:
    """Grants everything. Used when authentication is disabled."""

    def can(self, permission: str) -> bool:
        return True


class PermissionSetAuthorizer:
    """Grants the tokens in a fixed set; ``"*"`` grants all."""

    def __init__(self, granted: Iterable[str]):
        self.granted = frozenset(granted)

    def can(self, permission: str) -> bool:
        return WILDCARD in self.granted or permission in self.granted


def require(authorizer: Authorizer, permission: str | None, what: str) -> None:
    """Raise ForbiddenError unless ``permission`` is granted.

    A ``None`` permission means the operation is not guarded.

    Args:
        authorizer: The caller's authorizer.
        permission: Token to check.
        what: Human-readable description of the attempted operation.

    Raises:
        ForbiddenError: If the authorizer denies the token.
    """
    if permission is None or authorizer.can(permission):
        return
    logger.warning("Denied %s: missing permission '%s'", what, permission)
    raise ForbiddenError(f"Permission '{permission}' required to {what}", permission=permission)
