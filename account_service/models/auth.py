"""Auth request and response models with validation."""

import re
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from account_service.models.user import PublicUser

USERNAME_PATTERN = re.compile(r"^[a-zA-Z0-9_]+$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
FULL_NAME_PATTERN = re.compile(r"^[a-zA-Z\s]+$")
SPECIAL_CHARACTERS = re.compile(r"[!@#$%^&*(),.?\":{}|<>]")


def _check_password_strength(v: str) -> str:
    if not re.search(r"\d", v):
        raise ValueError("Password must contain at least one number")
    if not re.search(r"[a-z]", v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not re.search(r"[A-Z]", v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not SPECIAL_CHARACTERS.search(v):
        raise ValueError("Password must contain at least one special character")
    return v


def _normalize_email(v: str) -> str:
    v = v.strip().lower()
    if not EMAIL_PATTERN.match(v):
        raise ValueError("Invalid email format")
    return v


def _normalize_full_name(v: str) -> str:
    v = " ".join(v.split())
    if not v:
        raise ValueError("Full name is required")
    if not FULL_NAME_PATTERN.match(v):
        raise ValueError("Full name can only contain letters and spaces")
    return v


class RegisterRequest(BaseModel):
    """Registration payload.

    Attributes:
        username: 3-20 chars, letters, digits and underscores; stored lower-case
        email: Valid address; stored lower-case
        password: Min 8 chars with a digit, lower, upper and special character
        full_name: Letters and spaces
    """

    username: str = Field(..., min_length=3, max_length=20)
    email: str = Field(..., max_length=254)
    password: str = Field(..., min_length=8, max_length=72)
    full_name: str = Field(..., max_length=100)

    @field_validator("username")
    @classmethod
    def username_valid_chars(cls, v: str) -> str:
        """Ensure username contains only alphanumeric characters or underscores."""
        if not USERNAME_PATTERN.match(v):
            raise ValueError(
                "Username can only contain letters, numbers, and underscores"
            )
        return v.lower()

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: str) -> str:
        return _normalize_email(v)

    @field_validator("password")
    @classmethod
    def password_strong(cls, v: str) -> str:
        return _check_password_strength(v)

    @field_validator("full_name")
    @classmethod
    def full_name_valid(cls, v: str) -> str:
        return _normalize_full_name(v)


class LoginRequest(BaseModel):
    """Login credentials; ``identifier`` is a username or an email."""

    identifier: str = Field(..., min_length=1, max_length=254)
    password: str = Field(..., min_length=1)

    @field_validator("identifier")
    @classmethod
    def identifier_normalized(cls, v: str) -> str:
        v = v.strip().lower()
        if not v:
            raise ValueError("Username or email is required")
        return v


class ChangePasswordRequest(BaseModel):
    """Password change payload."""

    old_password: str = Field(..., min_length=1)
    new_password: str = Field(..., min_length=8, max_length=72)

    @field_validator("new_password")
    @classmethod
    def new_password_strong(cls, v: str) -> str:
        return _check_password_strength(v)


class UpdateDetailsRequest(BaseModel):
    """Profile update; at least one field must be provided."""

    full_name: Optional[str] = Field(default=None, max_length=100)
    email: Optional[str] = Field(default=None, max_length=254)

    @field_validator("email")
    @classmethod
    def email_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _normalize_email(v)

    @field_validator("full_name")
    @classmethod
    def full_name_valid(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return v
        return _normalize_full_name(v)

    @model_validator(mode="after")
    def at_least_one_field(self) -> "UpdateDetailsRequest":
        if self.full_name is None and self.email is None:
            raise ValueError("At least one of fullName or email must be provided")
        return self


class TokenPair(BaseModel):
    """Access and refresh token issued together for one account."""

    access_token: str
    refresh_token: str


class TokenResponse(TokenPair):
    """Token pair as returned to clients.

    Attributes:
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
    """

    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class LoginResponse(TokenResponse):
    """Successful login: token pair plus the public account view."""

    user: PublicUser


class MessageResponse(BaseModel):
    """Plain acknowledgement."""

    message: str
