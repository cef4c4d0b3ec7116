"""FastAPI dependencies for authentication and service wiring."""

from functools import lru_cache
from typing import Optional
from uuid import UUID

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from account_service.errors import AuthError, TokenError
from account_service.services.credential_store import create_credential_store
from account_service.services.media_store import LocalMediaStore
from account_service.services.session_manager import SessionManager
from account_service.services.token_service import TokenKind

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"

bearer_scheme = HTTPBearer(auto_error=False)


@lru_cache
def get_session_manager() -> SessionManager:
    """Build the process-wide session manager from settings."""
    return SessionManager(
        store=create_credential_store(),
        media_store=LocalMediaStore(),
    )


async def get_current_user_id(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
    manager: SessionManager = Depends(get_session_manager),
) -> UUID:
    """Resolve the caller's user id from the access token.

    The token is read from the ``accessToken`` cookie, falling back to an
    ``Authorization: Bearer`` header.

    Raises:
        AuthError: If no token is present or it fails verification
    """
    token = request.cookies.get(ACCESS_TOKEN_COOKIE)
    if not token and credentials is not None:
        token = credentials.credentials
    if not token:
        raise AuthError("Unauthorized request")

    result = manager.tokens.verify(token, TokenKind.ACCESS)
    if isinstance(result, TokenError):
        raise AuthError("Invalid or expired access token") from result
    return result.user_id
