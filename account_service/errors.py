"""Error taxonomy for the account service.

Every failure the core can produce is one of the classes below. Each carries
the HTTP status class it maps to at the boundary and a fixed public message,
so route handlers never build error strings themselves.

Usage:
    from account_service.errors import AuthError, NotFoundError
    raise AuthError("Invalid credentials")
    raise NotFoundError()
"""

from typing import Optional


class AccountServiceError(Exception):
    """Base class for all typed account-service errors.

    Attributes:
        status_code: HTTP status the boundary responds with
        public_message: Message safe to return to the caller
    """

    status_code: int = 500
    public_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.public_message
        super().__init__(self.message)


class ValidationError(AccountServiceError):
    """400 - request payload failed shape validation.

    Args:
        message: Summary message
        errors: Field errors as ``[{"field": ..., "message": ...}, ...]``
    """

    status_code = 400
    public_message = "Validation error"

    def __init__(
        self,
        message: Optional[str] = None,
        errors: Optional[list[dict[str, str]]] = None,
    ) -> None:
        super().__init__(message)
        self.errors = errors or []

    @classmethod
    def for_field(cls, field: str, message: str) -> "ValidationError":
        """Build a ValidationError carrying a single field error."""
        return cls(message, errors=[{"field": field, "message": message}])


class ConflictError(AccountServiceError):
    """409 - a uniqueness constraint would be violated."""

    status_code = 409
    public_message = "User with email or username already exists"


class AuthError(AccountServiceError):
    """401 - bad credential or bad, stale or reused token.

    Messages stay generic so callers cannot tell which part was wrong.
    """

    status_code = 401
    public_message = "Unauthorized request"


class NotFoundError(AccountServiceError):
    """404 - the referenced account no longer exists."""

    status_code = 404
    public_message = "User not found"


class CorruptCredentialError(AccountServiceError):
    """500 - a stored password hash could not be parsed."""

    status_code = 500
    public_message = "Internal server error"


class StoreUnavailable(AccountServiceError):
    """503 - the credential store could not complete the operation."""

    status_code = 503
    public_message = "Service temporarily unavailable"


class MediaUploadError(AccountServiceError):
    """502 - the media store rejected or failed an upload."""

    status_code = 502
    public_message = "Unable to store media file"


class TokenError(AccountServiceError):
    """Base for token verification failures.

    Token errors are returned by ``TokenService.verify`` rather than raised;
    the session manager converts them to ``AuthError``.
    """

    status_code = 401
    public_message = "Invalid token"


class TokenExpired(TokenError):
    public_message = "Token has expired"


class TokenMalformed(TokenError):
    public_message = "Token is malformed"


class TokenSignatureInvalid(TokenError):
    public_message = "Token signature is invalid"
