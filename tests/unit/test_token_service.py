"""Unit tests for TokenService.

Tests JWT access/refresh issuance, the two-secret boundary, and the
typed verification results (expired, malformed, signature invalid).
"""

from datetime import datetime, timedelta, timezone
from uuid import uuid4

import jwt
import pytest

from account_service.errors import (
    TokenExpired,
    TokenMalformed,
    TokenSignatureInvalid,
)
from account_service.models.user import UserAccount
from account_service.services.token_service import TokenClaims, TokenKind

from tests.conftest import ACCESS_SECRET, REFRESH_SECRET


def _make_account(**overrides) -> UserAccount:
    now = datetime.now(timezone.utc)
    fields = dict(
        id=uuid4(),
        username="alice",
        email="alice@example.com",
        full_name="Alice Liddell",
        password_hash="$2b$04$placeholderplaceholderplaceholderplaceholderplacehold",
        created_at=now,
        updated_at=now,
    )
    fields.update(overrides)
    return UserAccount(**fields)


def _craft(secret: str, **claims) -> str:
    now = datetime.now(timezone.utc)
    payload = {
        "sub": str(uuid4()),
        "typ": "refresh",
        "jti": uuid4().hex,
        "iat": now,
        "exp": now + timedelta(minutes=5),
    }
    payload.update(claims)
    return jwt.encode(payload, secret, algorithm="HS256")


class TestAccessToken:
    """Tests for access token issuance and verification."""

    def test_round_trip_carries_identity_claims(self, token_service):
        account = _make_account()
        token = token_service.issue_access_token(account)

        claims = token_service.verify(token, TokenKind.ACCESS)

        assert isinstance(claims, TokenClaims)
        assert claims.user_id == account.id
        assert claims.kind is TokenKind.ACCESS
        assert claims.username == "alice"
        assert claims.email == "alice@example.com"
        assert claims.full_name == "Alice Liddell"

    def test_signed_with_access_secret(self, token_service):
        token = token_service.issue_access_token(_make_account())
        payload = jwt.decode(token, ACCESS_SECRET, algorithms=["HS256"])
        assert payload["typ"] == "access"

    def test_ttl_is_minutes(self, token_service):
        token = token_service.issue_access_token(_make_account())
        payload = jwt.decode(token, ACCESS_SECRET, algorithms=["HS256"])
        assert payload["exp"] - payload["iat"] == 15 * 60
        assert token_service.access_token_expires_in == 15 * 60

    def test_never_carries_password_hash(self, token_service):
        token = token_service.issue_access_token(_make_account())
        payload = jwt.decode(token, ACCESS_SECRET, algorithms=["HS256"])
        assert "password_hash" not in payload
        assert "refresh_token" not in payload


class TestRefreshToken:
    """Tests for refresh token issuance and verification."""

    def test_round_trip(self, token_service):
        user_id = uuid4()
        token = token_service.issue_refresh_token(user_id)

        claims = token_service.verify(token, TokenKind.REFRESH)

        assert isinstance(claims, TokenClaims)
        assert claims.user_id == user_id
        assert claims.username is None

    def test_signed_with_refresh_secret(self, token_service):
        token = token_service.issue_refresh_token(uuid4())
        payload = jwt.decode(token, REFRESH_SECRET, algorithms=["HS256"])
        assert payload["typ"] == "refresh"

    def test_ttl_is_days(self, token_service):
        token = token_service.issue_refresh_token(uuid4())
        payload = jwt.decode(token, REFRESH_SECRET, algorithms=["HS256"])
        assert payload["exp"] - payload["iat"] == 10 * 24 * 3600

    def test_tokens_minted_together_differ(self, token_service):
        user_id = uuid4()
        t1 = token_service.issue_refresh_token(user_id)
        t2 = token_service.issue_refresh_token(user_id)
        assert t1 != t2

    def test_issue_pair(self, token_service):
        account = _make_account()
        pair = token_service.issue_pair(account)
        assert isinstance(token_service.verify(pair.access_token, TokenKind.ACCESS), TokenClaims)
        assert isinstance(token_service.verify(pair.refresh_token, TokenKind.REFRESH), TokenClaims)


class TestVerifyFailures:
    """Failures are returned as typed values, never raised."""

    def test_access_token_rejected_as_refresh(self, token_service):
        token = token_service.issue_access_token(_make_account())
        assert isinstance(token_service.verify(token, TokenKind.REFRESH), TokenSignatureInvalid)

    def test_refresh_token_rejected_as_access(self, token_service):
        token = token_service.issue_refresh_token(uuid4())
        assert isinstance(token_service.verify(token, TokenKind.ACCESS), TokenSignatureInvalid)

    def test_expired(self, token_service):
        now = datetime.now(timezone.utc)
        token = _craft(
            REFRESH_SECRET,
            iat=now - timedelta(days=11),
            exp=now - timedelta(minutes=1),
        )
        assert isinstance(token_service.verify(token, TokenKind.REFRESH), TokenExpired)

    def test_tampered_signature(self, token_service):
        token = _craft("some-other-secret")
        assert isinstance(token_service.verify(token, TokenKind.REFRESH), TokenSignatureInvalid)

    @pytest.mark.parametrize("garbage", ["not.a.jwt.token", "garbage", ""])
    def test_garbage_is_malformed(self, token_service, garbage):
        assert isinstance(token_service.verify(garbage, TokenKind.REFRESH), TokenMalformed)

    def test_kind_claim_mismatch_is_malformed(self, token_service):
        token = _craft(REFRESH_SECRET, typ="access")
        assert isinstance(token_service.verify(token, TokenKind.REFRESH), TokenMalformed)

    def test_missing_jti_is_malformed(self, token_service):
        now = datetime.now(timezone.utc)
        token = jwt.encode(
            {"sub": str(uuid4()), "typ": "refresh", "iat": now, "exp": now + timedelta(minutes=5)},
            REFRESH_SECRET,
            algorithm="HS256",
        )
        assert isinstance(token_service.verify(token, TokenKind.REFRESH), TokenMalformed)

    def test_non_uuid_subject_is_malformed(self, token_service):
        token = _craft(REFRESH_SECRET, sub="not-a-uuid")
        assert isinstance(token_service.verify(token, TokenKind.REFRESH), TokenMalformed)
