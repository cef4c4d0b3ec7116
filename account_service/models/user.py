"""User account models."""

from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class PublicUser(BaseModel):
    """Account view safe to return to callers.

    Never carries the password hash or the refresh token.
    """

    id: UUID
    username: str
    email: str
    full_name: str
    avatar_ref: Optional[str] = None
    cover_ref: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class UserAccount(PublicUser):
    """Stored identity and credential record for one user."""

    password_hash: str
    refresh_token: Optional[str] = None

    def public(self) -> PublicUser:
        """Return this account with credential fields stripped."""
        return PublicUser(
            **self.model_dump(exclude={"password_hash", "refresh_token"})
        )

    def __repr__(self) -> str:
        return f"UserAccount(id={self.id!s}, username={self.username!r})"

    __str__ = __repr__
