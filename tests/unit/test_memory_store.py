"""Tests for the in-memory credential store."""

import asyncio
from datetime import timedelta

import pytest

from sessionauth.core.errors import EmailAlreadyRegistered, StoreUnavailable
from sessionauth.models.refresh_token import RefreshTokens
from sessionauth.models.user import Users
from sessionauth.store.memory import InMemoryCredentialStore
from sessionauth.utils.clock import utc_now


def _grant(user_id: int, token: str, session_id: str = "s1", **kwargs) -> RefreshTokens:
    return RefreshTokens(
        user_id=user_id,
        token=token,
        session_id=session_id,
        expires_at=kwargs.pop("expires_at", utc_now() + timedelta(days=1)),
        **kwargs,
    )


@pytest.fixture
async def user(memory_store: InMemoryCredentialStore) -> Users:
    return await memory_store.create_user(Users(email="alice@example.com", password_hash="x"))


@pytest.mark.unit
class TestUsers:
    async def test_create_assigns_ids(self, memory_store: InMemoryCredentialStore, user: Users):
        other = await memory_store.create_user(Users(email="bob@example.com", password_hash="x"))

        assert user.id == 1
        assert other.id == 2
        assert await memory_store.find_user_by_email("bob@example.com") is other
        assert await memory_store.find_user_by_id(1) is user

    async def test_duplicate_email(self, memory_store: InMemoryCredentialStore, user: Users):
        with pytest.raises(EmailAlreadyRegistered):
            await memory_store.create_user(Users(email="alice@example.com", password_hash="y"))

    async def test_mark_verified(self, memory_store: InMemoryCredentialStore, user: Users):
        updated = await memory_store.mark_user_verified(user.id)

        assert updated is not None and updated.is_verified
        assert await memory_store.mark_user_verified(999) is None


@pytest.mark.unit
class TestRefreshTokens:
    async def test_find_active_ignores_revoked_and_expired(
        self, memory_store: InMemoryCredentialStore, user: Users
    ):
        await memory_store.insert_refresh_token(_grant(user.id, "live"))
        await memory_store.insert_refresh_token(
            _grant(user.id, "old", expires_at=utc_now() - timedelta(seconds=1))
        )
        revoked = await memory_store.insert_refresh_token(_grant(user.id, "gone"))
        await memory_store.revoke_refresh_token(revoked.id)

        assert await memory_store.find_active_refresh_token("live") is not None
        assert await memory_store.find_active_refresh_token("old") is None
        assert await memory_store.find_active_refresh_token("gone") is None
        assert await memory_store.find_refresh_token("gone") is revoked

    async def test_revoke_flips_once(self, memory_store: InMemoryCredentialStore, user: Users):
        record = await memory_store.insert_refresh_token(_grant(user.id, "t"))

        assert await memory_store.revoke_refresh_token(record.id) is True
        assert await memory_store.revoke_refresh_token(record.id) is False
        assert record.revoked_at is not None

    async def test_concurrent_revoke_single_winner(
        self, memory_store: InMemoryCredentialStore, user: Users
    ):
        record = await memory_store.insert_refresh_token(_grant(user.id, "t"))

        results = await asyncio.gather(
            *(memory_store.revoke_refresh_token(record.id) for _ in range(10))
        )

        assert results.count(True) == 1

    async def test_duplicate_token_value_rejected(
        self, memory_store: InMemoryCredentialStore, user: Users
    ):
        await memory_store.insert_refresh_token(_grant(user.id, "same"))

        with pytest.raises(StoreUnavailable):
            await memory_store.insert_refresh_token(_grant(user.id, "same"))

    async def test_revoke_session_and_all(
        self, memory_store: InMemoryCredentialStore, user: Users
    ):
        await memory_store.insert_refresh_token(_grant(user.id, "a", session_id="s1"))
        await memory_store.insert_refresh_token(_grant(user.id, "b", session_id="s2"))
        await memory_store.insert_refresh_token(_grant(user.id, "c", session_id="s3"))

        assert await memory_store.revoke_session("s1") == 1
        assert await memory_store.revoke_all_by_user(user.id) == 2
        assert await memory_store.list_active_refresh_tokens(user.id) == []

    async def test_delete_user_cascades(self, memory_store: InMemoryCredentialStore, user: Users):
        await memory_store.insert_refresh_token(_grant(user.id, "t"))

        await memory_store.delete_user(user.id)

        assert await memory_store.find_user_by_id(user.id) is None
        assert await memory_store.find_refresh_token("t") is None


@pytest.mark.unit
async def test_unavailable_store_raises(memory_store: InMemoryCredentialStore):
    memory_store.available = False

    with pytest.raises(StoreUnavailable) as exc_info:
        await memory_store.find_user_by_email("alice@example.com")

    assert exc_info.value.operation == "find_user_by_email"
