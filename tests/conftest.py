"""Pytest configuration and fixtures."""

import os

import pytest

# Set test environment variables before importing the app
os.environ.setdefault("STORE_BACKEND", "memory")
os.environ.setdefault("BCRYPT_ROUNDS", "4")
os.environ.setdefault("COOKIE_SECURE", "false")
os.environ.setdefault("ACCESS_TOKEN_SECRET", "test-access-secret-for-unit-tests")
os.environ.setdefault("REFRESH_TOKEN_SECRET", "test-refresh-secret-for-unit-tests")

from account_service.config import Settings
from account_service.services.credential_store import InMemoryCredentialStore
from account_service.services.media_store import LocalMediaStore
from account_service.services.password_hasher import PasswordHasher
from account_service.services.session_manager import SessionManager
from account_service.services.token_service import TokenService
from account_service.services.validator import Validator

ACCESS_SECRET = "test-access-secret-for-unit-tests"
REFRESH_SECRET = "test-refresh-secret-for-unit-tests"
STRONG_PASSWORD = "Secret#123"
OTHER_STRONG_PASSWORD = "Another$456"


@pytest.fixture
def settings() -> Settings:
    """Deterministic settings independent of the environment."""
    return Settings(
        access_token_secret=ACCESS_SECRET,
        refresh_token_secret=REFRESH_SECRET,
        access_token_expire_minutes=15,
        refresh_token_expire_days=10,
        bcrypt_rounds=4,
        store_backend="memory",
        cookie_secure=False,
    )


@pytest.fixture
def token_service(settings) -> TokenService:
    return TokenService(settings)


@pytest.fixture
def hasher() -> PasswordHasher:
    """Hasher at the minimum work factor so tests stay fast."""
    return PasswordHasher(rounds=4)


@pytest.fixture
def store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def media_store(tmp_path) -> LocalMediaStore:
    return LocalMediaStore(root=str(tmp_path / "media"), base_url="/media")


@pytest.fixture
def manager(store, hasher, token_service, media_store) -> SessionManager:
    """Session manager over an empty in-memory store."""
    return SessionManager(
        store=store,
        hasher=hasher,
        tokens=token_service,
        validator=Validator(),
        media_store=media_store,
        revoke_sessions_on_password_change=False,
    )


@pytest.fixture
async def alice(manager):
    """A registered account: alice / alice@example.com / STRONG_PASSWORD."""
    return await manager.register(
        username="Alice",
        email="Alice@Example.com",
        password=STRONG_PASSWORD,
        full_name="Alice Liddell",
    )
