"""Password hashing with bcrypt."""

from typing import Optional

import bcrypt
import structlog

from account_service.config import get_settings
from account_service.errors import CorruptCredentialError, ValidationError

logger = structlog.get_logger(__name__)

# bcrypt only consumes the first 72 bytes of its input
BCRYPT_MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """One-way bcrypt hashing and constant-time verification."""

    def __init__(self, rounds: Optional[int] = None):
        self.rounds = rounds if rounds is not None else get_settings().bcrypt_rounds

    def hash(self, password: str) -> str:
        """Hash a password with a freshly generated salt.

        Args:
            password: Plain-text password to hash

        Returns:
            Bcrypt hash string

        Raises:
            ValidationError: If the password is empty or longer than 72 bytes
        """
        if not password:
            raise ValidationError.for_field("password", "Password is required")
        encoded = password.encode("utf-8")
        if len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
            raise ValidationError.for_field(
                "password", "Password must be at most 72 bytes long"
            )
        salt = bcrypt.gensalt(rounds=self.rounds)
        return bcrypt.hashpw(encoded, salt).decode("utf-8")

    def verify(self, password: str, password_hash: str) -> bool:
        """Verify a password against a bcrypt hash.

        Args:
            password: Plain-text password to check
            password_hash: Bcrypt hash to verify against

        Returns:
            True if the password matches, False otherwise

        Raises:
            CorruptCredentialError: If ``password_hash`` is not a bcrypt hash
        """
        if not password_hash:
            raise CorruptCredentialError("Stored password hash is empty")
        encoded = password.encode("utf-8") if password else b""
        if not encoded or len(encoded) > BCRYPT_MAX_PASSWORD_BYTES:
            # Nothing this long or empty could have been hashed by hash()
            return False
        try:
            return bcrypt.checkpw(encoded, password_hash.encode("utf-8"))
        except ValueError as e:
            logger.error("password_hash_unreadable", error=str(e))
            raise CorruptCredentialError("Stored password hash is unreadable") from e
