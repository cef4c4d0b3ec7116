"""Session manager: login, logout, refresh rotation and credential changes.

This is the only component that talks to both the credential store and the
token service. Each account holds at most one valid refresh token; issuing a
new one (login or refresh) or logging out invalidates the previous one.
Every operation takes the acting user's id explicitly and re-reads the
account from the store, so no state is kept between calls.
"""

import hmac
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from account_service.config import get_settings
from account_service.errors import (
    AuthError,
    ConflictError,
    NotFoundError,
    TokenError,
    ValidationError,
)
from account_service.models.auth import TokenPair
from account_service.models.user import PublicUser, UserAccount
from account_service.services.password_hasher import PasswordHasher
from account_service.services.token_service import TokenKind, TokenService
from account_service.services.validator import Validator

logger = structlog.get_logger(__name__)

INVALID_CREDENTIALS = "Invalid credentials"
INVALID_REFRESH_TOKEN = "Invalid refresh token"
SAME_PASSWORD = "new password and old password cannot be same"


@dataclass(frozen=True)
class LoginResult:
    """Public account view plus the freshly issued token pair."""

    user: PublicUser
    tokens: TokenPair


class SessionManager:
    """Orchestrates the credential and session-token lifecycle."""

    def __init__(
        self,
        store,
        hasher: Optional[PasswordHasher] = None,
        tokens: Optional[TokenService] = None,
        validator: Optional[Validator] = None,
        media_store=None,
        revoke_sessions_on_password_change: Optional[bool] = None,
    ):
        self.store = store
        self.hasher = hasher or PasswordHasher()
        self.tokens = tokens or TokenService()
        self.validator = validator or Validator()
        self.media_store = media_store
        if revoke_sessions_on_password_change is None:
            revoke_sessions_on_password_change = (
                get_settings().revoke_sessions_on_password_change
            )
        self.revoke_sessions_on_password_change = revoke_sessions_on_password_change
        self._dummy_hash: Optional[str] = None

    def _verify_unknown_account(self, password: str) -> None:
        # Spend the same hashing cost as a real verify so response timing
        # does not reveal whether the account exists.
        if self._dummy_hash is None:
            self._dummy_hash = self.hasher.hash(uuid4().hex)
        self.hasher.verify(password, self._dummy_hash)

    async def _require_account(self, user_id: UUID) -> UserAccount:
        account = await self.store.get_by_id(user_id)
        if account is None:
            raise NotFoundError()
        return account

    async def register(
        self,
        username: Optional[str],
        email: Optional[str],
        password: Optional[str],
        full_name: Optional[str],
    ) -> PublicUser:
        """Create a new account.

        Returns:
            Public view of the created account

        Raises:
            ValidationError: If a field is missing or ill-shaped
            ConflictError: If the username or email is already registered
        """
        data = self.validator.validate(
            "register",
            {
                "username": username,
                "email": email,
                "password": password,
                "full_name": full_name,
            },
        )

        if await self.store.exists(data.username, data.email):
            logger.info("registration_conflict", username=data.username)
            raise ConflictError()

        now = datetime.now(timezone.utc)
        account = UserAccount(
            id=uuid4(),
            username=data.username,
            email=data.email,
            password_hash=self.hasher.hash(data.password),
            full_name=data.full_name,
            created_at=now,
            updated_at=now,
        )
        created = await self.store.create(account)

        logger.info("user_registered", user_id=str(created.id), username=created.username)
        return created.public()

    async def login(self, identifier: Optional[str], password: Optional[str]) -> LoginResult:
        """Authenticate by username or email and start a new session.

        Any refresh token issued by an earlier login stops being valid.

        Raises:
            ValidationError: If the identifier or password is missing
            AuthError: If the account is unknown or the password is wrong
        """
        data = self.validator.validate(
            "login", {"identifier": identifier, "password": password}
        )

        account = await self.store.get_by_login(data.identifier)
        if account is None:
            self._verify_unknown_account(data.password)
            logger.info("login_failed", reason="unknown_account")
            raise AuthError(INVALID_CREDENTIALS)

        if not self.hasher.verify(data.password, account.password_hash):
            logger.info("login_failed", reason="wrong_password", user_id=str(account.id))
            raise AuthError(INVALID_CREDENTIALS)

        tokens = self.tokens.issue_pair(account)
        if not await self.store.set_refresh_token(account.id, tokens.refresh_token):
            raise NotFoundError()

        logger.info("user_logged_in", user_id=str(account.id), username=account.username)
        return LoginResult(user=account.public(), tokens=tokens)

    async def refresh(self, presented: Optional[str]) -> TokenPair:
        """Exchange the current refresh token for a new token pair.

        The presented token is invalid afterwards whether or not the call
        succeeds. Presenting a token that was already rotated away fails.

        Raises:
            AuthError: If the token is missing, invalid, expired or not current
            NotFoundError: If the token's account no longer exists
        """
        if not presented:
            raise AuthError("Unauthorized request - refresh token required")

        result = self.tokens.verify(presented, TokenKind.REFRESH)
        if isinstance(result, TokenError):
            logger.info("refresh_token_rejected", reason=type(result).__name__)
            raise AuthError(INVALID_REFRESH_TOKEN) from result

        account = await self._require_account(result.user_id)

        current = account.refresh_token
        if current is None or not hmac.compare_digest(
            presented.encode("utf-8"), current.encode("utf-8")
        ):
            logger.warning("refresh_token_reuse_detected", user_id=str(account.id))
            raise AuthError(INVALID_REFRESH_TOKEN)

        tokens = self.tokens.issue_pair(account)
        rotated = await self.store.rotate_refresh_token(
            account.id, expected=presented, new=tokens.refresh_token
        )
        if not rotated:
            # A concurrent refresh or logout replaced the token first
            logger.warning("refresh_token_rotation_lost", user_id=str(account.id))
            raise AuthError(INVALID_REFRESH_TOKEN)

        logger.info("refresh_token_rotated", user_id=str(account.id))
        return tokens

    async def logout(self, user_id: UUID) -> None:
        """End the user's session. Logging out twice is not an error.

        Raises:
            NotFoundError: If the account no longer exists
        """
        if not await self.store.set_refresh_token(user_id, None):
            raise NotFoundError()
        logger.info("user_logged_out", user_id=str(user_id))

    async def change_password(
        self,
        user_id: UUID,
        old_password: Optional[str],
        new_password: Optional[str],
    ) -> None:
        """Replace the password after checking the current one.

        The active refresh token is kept unless
        ``revoke_sessions_on_password_change`` is set.

        Raises:
            ValidationError: If a field is missing, weak, or both are equal
            AuthError: If ``old_password`` does not match
            NotFoundError: If the account no longer exists
        """
        data = self.validator.validate(
            "change_password",
            {"old_password": old_password, "new_password": new_password},
        )
        if data.old_password == data.new_password:
            raise ValidationError.for_field("new_password", SAME_PASSWORD)

        account = await self._require_account(user_id)
        if not self.hasher.verify(data.old_password, account.password_hash):
            logger.info("password_change_rejected", user_id=str(user_id))
            raise AuthError("Invalid password")

        updated = await self.store.update_password_hash(
            user_id,
            self.hasher.hash(data.new_password),
            clear_refresh_token=self.revoke_sessions_on_password_change,
        )
        if not updated:
            raise NotFoundError()

        logger.info(
            "password_changed",
            user_id=str(user_id),
            sessions_revoked=self.revoke_sessions_on_password_change,
        )

    async def get_user(self, user_id: UUID) -> PublicUser:
        """Return the public view of an account."""
        account = await self._require_account(user_id)
        return account.public()

    async def update_details(
        self,
        user_id: UUID,
        full_name: Optional[str] = None,
        email: Optional[str] = None,
    ) -> PublicUser:
        """Update display name and/or email.

        Raises:
            ValidationError: If neither field is given or one is ill-shaped
            ConflictError: If the email belongs to another account
            NotFoundError: If the account no longer exists
        """
        data = self.validator.validate(
            "update_details", {"full_name": full_name, "email": email}
        )
        account = await self.store.update_details(
            user_id, full_name=data.full_name, email=data.email
        )
        if account is None:
            raise NotFoundError()
        logger.info("user_details_updated", user_id=str(user_id))
        return account.public()

    async def update_avatar(self, user_id: UUID, local_path: Optional[str]) -> PublicUser:
        """Upload a new avatar and delete the one it replaces."""
        return await self._replace_media(user_id, "avatar_ref", local_path, "avatar")

    async def update_cover(self, user_id: UUID, local_path: Optional[str]) -> PublicUser:
        """Upload a new cover image and delete the one it replaces."""
        return await self._replace_media(user_id, "cover_ref", local_path, "coverImage")

    async def _replace_media(
        self, user_id: UUID, field: str, local_path: Optional[str], label: str
    ) -> PublicUser:
        if self.media_store is None:
            raise RuntimeError("No media store configured")
        if not local_path:
            raise ValidationError.for_field(label, f"{label} file is required")

        await self._require_account(user_id)
        url = await self.media_store.upload(local_path)

        swapped = await self.store.swap_media(user_id, field, url)
        if swapped is None:
            await self.media_store.delete(url)
            raise NotFoundError()

        account, previous = swapped
        if previous and previous != url:
            await self.media_store.delete(previous)

        logger.info("user_media_updated", user_id=str(user_id), field=field)
        return account.public()
