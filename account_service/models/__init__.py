"""Models package exports."""

from account_service.models.auth import (
    ChangePasswordRequest,
    LoginRequest,
    LoginResponse,
    MessageResponse,
    RegisterRequest,
    TokenPair,
    TokenResponse,
    UpdateDetailsRequest,
)
from account_service.models.user import PublicUser, UserAccount

__all__ = [
    "ChangePasswordRequest",
    "LoginRequest",
    "LoginResponse",
    "MessageResponse",
    "PublicUser",
    "RegisterRequest",
    "TokenPair",
    "TokenResponse",
    "UpdateDetailsRequest",
    "UserAccount",
]
