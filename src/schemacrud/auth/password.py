"""Password hashing for password-setting actions."""

from passlib.context import CryptContext


class PasswordService:
    """Hashes and verifies passwords with passlib.

    bcrypt by default; the scheme is configurable (``SCHEMACRUD_PASSWORD_SCHEME``)
    so deployments can match whatever their user tables already store.
    """

    def __init__(self, scheme: str = "bcrypt", rounds: int | None = None):
        """Initialize the password service.

        Args:
            scheme: passlib scheme name, e.g. ``"bcrypt"`` or ``"pbkdf2_sha256"``.
            rounds: Optional work factor for the scheme.
        """
        options = {}
        if rounds is not None:
            options[f"{scheme}__rounds"] = rounds
        self.scheme = scheme
        self._context = CryptContext(schemes=[scheme], deprecated="auto", **options)

    def hash(self, password: str) -> str:
        return self._context.hash(password)

    def verify(self, password: str, hash: str) -> bool:
        """Verify a password against a hash.

        Returns:
            True if password matches. Malformed or foreign hashes count as a
            mismatch rather than an error.
        """
        try:
            return self._context.verify(password, hash)
        except (ValueError, TypeError):
            return False
