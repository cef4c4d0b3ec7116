"""Credential store: one persisted record per user account.

Two backends expose the same coroutine interface:

- ``PostgresCredentialStore`` runs each mutation as a single SQL statement
  (``UPDATE ... RETURNING``), so concurrent logins, refreshes and logouts for
  the same account never interleave into a half-updated row.
- ``InMemoryCredentialStore`` keeps accounts in a dict. Its methods never
  suspend between reading and writing a record, which makes every mutation
  atomic with respect to other tasks on the same event loop.

The refresh rotation is a compare-and-set: it only replaces the stored token
when it still equals the token the caller presented.
"""

import asyncio
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import AsyncIterator, Optional
from uuid import UUID

import asyncpg
import structlog

from account_service.config import Settings, get_settings
from account_service.database import get_pool
from account_service.errors import ConflictError, StoreUnavailable
from account_service.models.user import UserAccount

logger = structlog.get_logger(__name__)

USER_COLUMNS = (
    "id",
    "username",
    "email",
    "password_hash",
    "full_name",
    "avatar_ref",
    "cover_ref",
    "refresh_token",
    "created_at",
    "updated_at",
)
MEDIA_FIELDS = ("avatar_ref", "cover_ref")

_SELECT_COLUMNS = ", ".join(USER_COLUMNS)

_UNAVAILABLE_ERRORS = (
    asyncpg.PostgresError,
    asyncpg.exceptions.InterfaceError,
    asyncio.TimeoutError,
    OSError,
)


def _check_media_field(field: str) -> None:
    if field not in MEDIA_FIELDS:
        raise ValueError(f"Unknown media field: {field}")


class PostgresCredentialStore:
    """Credential store backed by the ``users`` table.

    Waiting for a pooled connection is bounded by ``db_command_timeout``, the
    same limit asyncpg applies to each statement.
    """

    def __init__(self, settings: Optional[Settings] = None):
        settings = settings or get_settings()
        self.acquire_timeout = settings.db_command_timeout

    @asynccontextmanager
    async def _connection(self) -> AsyncIterator[asyncpg.Connection]:
        """Acquire a pooled connection, translating store failures to typed errors."""
        pool = await get_pool()
        try:
            async with pool.acquire(timeout=self.acquire_timeout) as conn:
                yield conn
        except asyncpg.exceptions.UniqueViolationError as e:
            raise ConflictError() from e
        except _UNAVAILABLE_ERRORS as e:
            logger.error(
                "credential_store_unavailable", error_type=type(e).__name__, error=str(e)
            )
            raise StoreUnavailable() from e

    async def create(self, account: UserAccount) -> UserAccount:
        """Insert a new account.

        Raises:
            ConflictError: If the username or email is already taken
        """
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                INSERT INTO users (id, username, email, password_hash, full_name,
                                   avatar_ref, cover_ref, refresh_token, created_at, updated_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10)
                RETURNING {_SELECT_COLUMNS}
                """,
                account.id,
                account.username,
                account.email,
                account.password_hash,
                account.full_name,
                account.avatar_ref,
                account.cover_ref,
                account.refresh_token,
                account.created_at,
                account.updated_at,
            )
        return UserAccount(**dict(row))

    async def exists(self, username: str, email: str) -> bool:
        """Return True if any account already uses this username or email."""
        async with self._connection() as conn:
            found = await conn.fetchval(
                "SELECT EXISTS(SELECT 1 FROM users WHERE username = $1 OR email = $2)",
                username,
                email,
            )
        return bool(found)

    async def get_by_id(self, user_id: UUID) -> Optional[UserAccount]:
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"SELECT {_SELECT_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )
        return UserAccount(**dict(row)) if row is not None else None

    async def get_by_login(self, identifier: str) -> Optional[UserAccount]:
        """Look up an account by username or email (both stored lower-case)."""
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_SELECT_COLUMNS}
                FROM users
                WHERE username = $1 OR email = $1
                LIMIT 1
                """,
                identifier,
            )
        return UserAccount(**dict(row)) if row is not None else None

    async def set_refresh_token(self, user_id: UUID, token: Optional[str]) -> bool:
        """Unconditionally replace (or clear) the stored refresh token.

        Returns:
            False if the account does not exist
        """
        async with self._connection() as conn:
            updated = await conn.fetchval(
                """
                UPDATE users
                SET refresh_token = $2, updated_at = $3
                WHERE id = $1
                RETURNING id
                """,
                user_id,
                token,
                datetime.now(timezone.utc),
            )
        return updated is not None

    async def rotate_refresh_token(
        self, user_id: UUID, expected: str, new: str
    ) -> bool:
        """Replace the refresh token only if it still equals ``expected``.

        Returns:
            True if this call performed the rotation
        """
        async with self._connection() as conn:
            updated = await conn.fetchval(
                """
                UPDATE users
                SET refresh_token = $3, updated_at = $4
                WHERE id = $1 AND refresh_token = $2
                RETURNING id
                """,
                user_id,
                expected,
                new,
                datetime.now(timezone.utc),
            )
        return updated is not None

    async def update_password_hash(
        self, user_id: UUID, password_hash: str, clear_refresh_token: bool = False
    ) -> bool:
        """Replace the password hash, optionally ending the active session.

        Returns:
            False if the account does not exist
        """
        async with self._connection() as conn:
            updated = await conn.fetchval(
                """
                UPDATE users
                SET password_hash = $2,
                    refresh_token = CASE WHEN $3::boolean THEN NULL ELSE refresh_token END,
                    updated_at = $4
                WHERE id = $1
                RETURNING id
                """,
                user_id,
                password_hash,
                clear_refresh_token,
                datetime.now(timezone.utc),
            )
        return updated is not None

    async def update_details(
        self,
        user_id: UUID,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[UserAccount]:
        """Update profile fields that are not None.

        Raises:
            ConflictError: If the new email belongs to another account
        """
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET full_name = COALESCE($2, full_name),
                    email = COALESCE($3, email),
                    updated_at = $4
                WHERE id = $1
                RETURNING {_SELECT_COLUMNS}
                """,
                user_id,
                full_name,
                email,
                datetime.now(timezone.utc),
            )
        return UserAccount(**dict(row)) if row is not None else None

    async def swap_media(
        self, user_id: UUID, field: str, ref: str
    ) -> Optional[tuple[UserAccount, Optional[str]]]:
        """Set a media reference and return the one it replaced.

        Returns:
            (updated account, previous reference), or None if the account
            does not exist
        """
        _check_media_field(field)
        returning = ", ".join(f"users.{column}" for column in USER_COLUMNS)
        async with self._connection() as conn:
            row = await conn.fetchrow(
                f"""
                WITH previous AS (
                    SELECT {field} AS ref FROM users WHERE id = $1 FOR UPDATE
                )
                UPDATE users
                SET {field} = $2, updated_at = $3
                FROM previous
                WHERE users.id = $1
                RETURNING {returning}, previous.ref AS previous_ref
                """,
                user_id,
                ref,
                datetime.now(timezone.utc),
            )
        if row is None:
            return None
        data = dict(row)
        previous = data.pop("previous_ref")
        return UserAccount(**data), previous


class InMemoryCredentialStore:
    """Credential store held in process memory.

    No method awaits between reading and writing ``self._accounts``.
    """

    def __init__(self):
        self._accounts: dict[UUID, UserAccount] = {}

    def _find_login(self, identifier: str) -> Optional[UserAccount]:
        for account in self._accounts.values():
            if account.username == identifier or account.email == identifier:
                return account
        return None

    def _email_taken(self, email: str, exclude: Optional[UUID] = None) -> bool:
        return any(
            a.email == email and a.id != exclude for a in self._accounts.values()
        )

    def _replace(self, user_id: UUID, **changes) -> Optional[UserAccount]:
        current = self._accounts.get(user_id)
        if current is None:
            return None
        changes["updated_at"] = datetime.now(timezone.utc)
        updated = current.model_copy(update=changes)
        self._accounts[user_id] = updated
        return updated

    async def create(self, account: UserAccount) -> UserAccount:
        if account.id in self._accounts or any(
            a.username == account.username or a.email == account.email
            for a in self._accounts.values()
        ):
            raise ConflictError()
        self._accounts[account.id] = account.model_copy()
        return account.model_copy()

    async def exists(self, username: str, email: str) -> bool:
        return any(
            a.username == username or a.email == email
            for a in self._accounts.values()
        )

    async def get_by_id(self, user_id: UUID) -> Optional[UserAccount]:
        account = self._accounts.get(user_id)
        return account.model_copy() if account is not None else None

    async def get_by_login(self, identifier: str) -> Optional[UserAccount]:
        account = self._find_login(identifier)
        return account.model_copy() if account is not None else None

    async def set_refresh_token(self, user_id: UUID, token: Optional[str]) -> bool:
        return self._replace(user_id, refresh_token=token) is not None

    async def rotate_refresh_token(
        self, user_id: UUID, expected: str, new: str
    ) -> bool:
        current = self._accounts.get(user_id)
        if current is None or current.refresh_token != expected:
            return False
        self._replace(user_id, refresh_token=new)
        return True

    async def update_password_hash(
        self, user_id: UUID, password_hash: str, clear_refresh_token: bool = False
    ) -> bool:
        changes: dict = {"password_hash": password_hash}
        if clear_refresh_token:
            changes["refresh_token"] = None
        return self._replace(user_id, **changes) is not None

    async def update_details(
        self,
        user_id: UUID,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> Optional[UserAccount]:
        if email is not None and self._email_taken(email, exclude=user_id):
            raise ConflictError()
        changes = {}
        if full_name is not None:
            changes["full_name"] = full_name
        if email is not None:
            changes["email"] = email
        updated = self._replace(user_id, **changes)
        return updated.model_copy() if updated is not None else None

    async def swap_media(
        self, user_id: UUID, field: str, ref: str
    ) -> Optional[tuple[UserAccount, Optional[str]]]:
        _check_media_field(field)
        current = self._accounts.get(user_id)
        if current is None:
            return None
        previous = getattr(current, field)
        updated = self._replace(user_id, **{field: ref})
        return updated.model_copy(), previous


def create_credential_store(settings: Optional[Settings] = None):
    """Build the credential store selected by ``settings.store_backend``."""
    settings = settings or get_settings()
    if settings.store_backend == "memory":
        logger.warning("credential_store_in_memory", note="Accounts are not persisted")
        return InMemoryCredentialStore()
    return PostgresCredentialStore(settings)
