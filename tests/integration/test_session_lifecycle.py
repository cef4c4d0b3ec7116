"""Integration tests for the full session lifecycle.

Exercises SessionManager end to end over the in-memory store with real
bcrypt hashing and real JWT signing: register, login, refresh rotation,
replay, logout and concurrent refresh races.
"""

import asyncio

import pytest

from account_service.errors import AuthError
from account_service.services.credential_store import InMemoryCredentialStore
from account_service.services.session_manager import SessionManager
from account_service.services.token_service import TokenKind

from tests.conftest import OTHER_STRONG_PASSWORD, STRONG_PASSWORD


class InterleavingStore(InMemoryCredentialStore):
    """In-memory store that yields to the event loop on every read.

    Lets two refreshes both read the same current token before either
    reaches the compare-and-set.
    """

    async def get_by_id(self, user_id):
        account = await super().get_by_id(user_id)
        await asyncio.sleep(0)
        return account


@pytest.fixture
def racing_manager(hasher, token_service):
    return SessionManager(
        store=InterleavingStore(),
        hasher=hasher,
        tokens=token_service,
        revoke_sessions_on_password_change=False,
    )


async def test_full_lifecycle(manager, store, token_service):
    user = await manager.register("carol", "carol@example.com", STRONG_PASSWORD, "Carol")

    login = await manager.login("carol", STRONG_PASSWORD)
    claims = token_service.verify(login.tokens.access_token, TokenKind.ACCESS)
    assert claims.user_id == user.id

    refreshed = await manager.refresh(login.tokens.refresh_token)
    assert (await store.get_by_id(user.id)).refresh_token == refreshed.refresh_token

    with pytest.raises(AuthError):
        await manager.refresh(login.tokens.refresh_token)

    await manager.logout(user.id)
    with pytest.raises(AuthError):
        await manager.refresh(refreshed.refresh_token)

    relogin = await manager.login("carol@example.com", STRONG_PASSWORD)
    assert await manager.refresh(relogin.tokens.refresh_token)


async def test_replay_after_rotation_does_not_disturb_current_session(manager, store, alice):
    login = await manager.login("alice", STRONG_PASSWORD)
    current = await manager.refresh(login.tokens.refresh_token)

    with pytest.raises(AuthError):
        await manager.refresh(login.tokens.refresh_token)

    assert (await store.get_by_id(alice.id)).refresh_token == current.refresh_token
    assert await manager.refresh(current.refresh_token)


async def test_concurrent_refresh_exactly_one_wins(racing_manager):
    user = await racing_manager.register(
        "dave", "dave@example.com", STRONG_PASSWORD, "Dave"
    )
    login = await racing_manager.login("dave", STRONG_PASSWORD)
    presented = login.tokens.refresh_token

    results = await asyncio.gather(
        racing_manager.refresh(presented),
        racing_manager.refresh(presented),
        return_exceptions=True,
    )

    winners = [r for r in results if not isinstance(r, Exception)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], AuthError)

    stored = await racing_manager.store.get_by_id(user.id)
    assert stored.refresh_token == winners[0].refresh_token


async def test_concurrent_refresh_and_logout(racing_manager):
    user = await racing_manager.register(
        "erin", "erin@example.com", STRONG_PASSWORD, "Erin"
    )
    login = await racing_manager.login("erin", STRONG_PASSWORD)

    results = await asyncio.gather(
        racing_manager.refresh(login.tokens.refresh_token),
        racing_manager.logout(user.id),
        return_exceptions=True,
    )

    stored = await racing_manager.store.get_by_id(user.id)
    refresh_result = results[0]
    if isinstance(refresh_result, Exception):
        assert isinstance(refresh_result, AuthError)
        assert stored.refresh_token is None
    else:
        # Refresh landed before the logout cleared it
        assert stored.refresh_token is None or stored.refresh_token == refresh_result.refresh_token


async def test_login_during_refresh_leaves_one_valid_token(racing_manager):
    await racing_manager.register("frank", "frank@example.com", STRONG_PASSWORD, "Frank")
    first = await racing_manager.login("frank", STRONG_PASSWORD)

    refreshed, relogin = await asyncio.gather(
        racing_manager.refresh(first.tokens.refresh_token),
        racing_manager.login("frank", STRONG_PASSWORD),
        return_exceptions=True,
    )

    stored = await racing_manager.store.get_by_id(relogin.user.id)
    candidates = [relogin.tokens.refresh_token]
    if not isinstance(refreshed, Exception):
        candidates.append(refreshed.refresh_token)
    assert stored.refresh_token in candidates


async def test_password_change_then_login(manager, alice):
    await manager.login("alice", STRONG_PASSWORD)
    await manager.change_password(alice.id, STRONG_PASSWORD, OTHER_STRONG_PASSWORD)

    with pytest.raises(AuthError):
        await manager.login("alice", STRONG_PASSWORD)
    assert (await manager.login("alice", OTHER_STRONG_PASSWORD)).user.id == alice.id


async def test_tokens_are_unique_across_rapid_issuance(manager, alice):
    login = await manager.login("alice", STRONG_PASSWORD)
    seen = {login.tokens.refresh_token}
    presented = login.tokens.refresh_token
    for _ in range(5):
        pair = await manager.refresh(presented)
        assert pair.refresh_token not in seen
        seen.add(pair.refresh_token)
        presented = pair.refresh_token
