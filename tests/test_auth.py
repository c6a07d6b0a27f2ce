"""Tests for authorization collaborators and password hashing."""

import pytest

from schemacrud.auth import (
    AllowAllAuthorizer,
    Authorizer,
    PasswordService,
    PermissionSetAuthorizer,
    require,
)
from schemacrud.errors import ForbiddenError


class TestAuthorizers:
    def test_allow_all(self):
        assert AllowAllAuthorizer().can("anything.at.all")

    def test_permission_set(self):
        authorizer = PermissionSetAuthorizer(["users.read", "users.update"])
        assert authorizer.can("users.read")
        assert not authorizer.can("users.delete")

    def test_wildcard(self):
        assert PermissionSetAuthorizer(["*"]).can("users.delete")

    def test_empty(self):
        assert not PermissionSetAuthorizer([]).can("users.read")

    def test_protocol(self):
        assert isinstance(AllowAllAuthorizer(), Authorizer)
        assert isinstance(PermissionSetAuthorizer(()), Authorizer)


class TestRequire:
    def test_granted(self):
        require(PermissionSetAuthorizer(["users.read"]), "users.read", "read users")

    def test_unguarded(self):
        require(PermissionSetAuthorizer([]), None, "read users")

    def test_denied(self):
        with pytest.raises(ForbiddenError) as exc_info:
            require(PermissionSetAuthorizer([]), "users.read", "read users")
        assert exc_info.value.message == "Permission 'users.read' required to read users"
        assert exc_info.value.permission == "users.read"
        assert exc_info.value.status_code == 403


class TestPasswordService:
    @pytest.fixture
    def service(self):
        return PasswordService(scheme="pbkdf2_sha256")

    def test_hash_and_verify(self, service):
        hashed = service.hash("correct horse")
        assert hashed != "correct horse"
        assert hashed.startswith("$pbkdf2-sha256$")
        assert service.verify("correct horse", hashed)
        assert not service.verify("battery staple", hashed)

    def test_hashes_are_salted(self, service):
        assert service.hash("same") != service.hash("same")

    def test_malformed_hash_is_a_mismatch(self, service):
        assert service.verify("anything", "not-a-hash") is False

    def test_rounds(self):
        service = PasswordService(scheme="pbkdf2_sha256", rounds=1000)
        hashed = service.hash("pw")
        assert "$1000$" in hashed
        assert service.verify("pw", hashed)
