"""JWT access/refresh token minting and verification."""

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union
from uuid import UUID, uuid4

import jwt
import structlog

from account_service.config import Settings, get_settings
from account_service.errors import (
    TokenError,
    TokenExpired,
    TokenMalformed,
    TokenSignatureInvalid,
)
from account_service.models.auth import TokenPair
from account_service.models.user import UserAccount

logger = structlog.get_logger(__name__)

REQUIRED_CLAIMS = ["sub", "typ", "jti", "iat", "exp"]


class TokenKind(str, Enum):
    """The two token kinds, each signed with its own secret."""

    ACCESS = "access"
    REFRESH = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a token."""

    user_id: UUID
    kind: TokenKind
    token_id: str
    issued_at: datetime
    expires_at: datetime
    username: Optional[str] = None
    email: Optional[str] = None
    full_name: Optional[str] = None


VerifyResult = Union[TokenClaims, TokenError]


class TokenService:
    """Mint and verify signed access and refresh tokens.

    Tokens are self-contained; the only server-side state is the refresh
    token value stored on the account, which the session manager checks.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.access_ttl = timedelta(minutes=self.settings.access_token_expire_minutes)
        self.refresh_ttl = timedelta(days=self.settings.refresh_token_expire_days)

    def _secret(self, kind: TokenKind) -> str:
        if kind is TokenKind.ACCESS:
            return self.settings.access_token_secret
        return self.settings.refresh_token_secret

    def _encode(self, kind: TokenKind, user_id: UUID, ttl: timedelta, **claims) -> str:
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "typ": kind.value,
            "jti": uuid4().hex,
            "iat": now,
            "exp": now + ttl,
            **claims,
        }
        return jwt.encode(
            payload, self._secret(kind), algorithm=self.settings.jwt_algorithm
        )

    @property
    def access_token_expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self.access_ttl.total_seconds())

    def issue_access_token(self, account: UserAccount) -> str:
        """Create a short-lived access token carrying minimal identity claims.

        Args:
            account: Account the token is issued for

        Returns:
            Encoded JWT string
        """
        token = self._encode(
            TokenKind.ACCESS,
            account.id,
            self.access_ttl,
            username=account.username,
            email=account.email,
            full_name=account.full_name,
        )
        logger.debug(
            "access_token_created",
            user_id=str(account.id),
            expires_minutes=self.settings.access_token_expire_minutes,
        )
        return token

    def issue_refresh_token(self, user_id: UUID) -> str:
        """Create a long-lived refresh token.

        Args:
            user_id: Account the token is issued for

        Returns:
            Encoded JWT string
        """
        token = self._encode(TokenKind.REFRESH, user_id, self.refresh_ttl)
        logger.debug(
            "refresh_token_created",
            user_id=str(user_id),
            expires_days=self.settings.refresh_token_expire_days,
        )
        return token

    def issue_pair(self, account: UserAccount) -> TokenPair:
        """Issue an access token and a refresh token together."""
        return TokenPair(
            access_token=self.issue_access_token(account),
            refresh_token=self.issue_refresh_token(account.id),
        )

    def verify(self, token: str, kind: TokenKind) -> VerifyResult:
        """Decode and validate a token of the given kind.

        Failures are returned, not raised, so callers handle each kind
        explicitly.

        Args:
            token: Encoded JWT string
            kind: Which secret and ``typ`` claim to check against

        Returns:
            TokenClaims on success; TokenExpired, TokenMalformed or
            TokenSignatureInvalid on failure
        """
        if not token:
            return TokenMalformed("Token is empty")
        try:
            payload = jwt.decode(
                token,
                self._secret(kind),
                algorithms=[self.settings.jwt_algorithm],
                leeway=self.settings.jwt_leeway_seconds,
                options={"require": REQUIRED_CLAIMS},
            )
        except jwt.ExpiredSignatureError:
            return TokenExpired()
        except jwt.InvalidSignatureError:
            return TokenSignatureInvalid()
        except jwt.InvalidTokenError as e:
            return TokenMalformed(f"Token is malformed: {e}")

        if payload.get("typ") != kind.value:
            return TokenMalformed("Token kind mismatch")
        try:
            user_id = UUID(str(payload["sub"]))
        except ValueError:
            return TokenMalformed("Token subject is not a user id")

        return TokenClaims(
            user_id=user_id,
            kind=kind,
            token_id=str(payload["jti"]),
            issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
            expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            username=payload.get("username"),
            email=payload.get("email"),
            full_name=payload.get("full_name"),
        )
