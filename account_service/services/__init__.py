"""Services package exports."""

from account_service.services.credential_store import (
    InMemoryCredentialStore,
    PostgresCredentialStore,
    create_credential_store,
)
from account_service.services.logging_service import configure_logging, get_logger
from account_service.services.media_store import LocalMediaStore
from account_service.services.password_hasher import PasswordHasher
from account_service.services.session_manager import LoginResult, SessionManager
from account_service.services.token_service import TokenClaims, TokenKind, TokenService
from account_service.services.validator import Validator

__all__ = [
    "InMemoryCredentialStore",
    "LocalMediaStore",
    "LoginResult",
    "PasswordHasher",
    "PostgresCredentialStore",
    "SessionManager",
    "TokenClaims",
    "TokenKind",
    "TokenService",
    "Validator",
    "configure_logging",
    "create_credential_store",
    "get_logger",
]
