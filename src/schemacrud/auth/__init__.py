"""Authorization collaborators and password hashing."""

from schemacrud.auth.authorizer import (
    AllowAllAuthorizer,
    Authorizer,
    PermissionSetAuthorizer,
    require,
)
from schemacrud.auth.password import PasswordService

__all__ = [
    "AllowAllAuthorizer",
    "Authorizer",
    "PasswordService",
    "PermissionSetAuthorizer",
    "require",
]
