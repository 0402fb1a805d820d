"""Fixtures for unit tests. Nothing here touches a database or Redis."""

from collections.abc import Awaitable, Callable
from datetime import timedelta

import pytest

from sessionauth.config import UserRole
from sessionauth.core.security import get_password_hash
from sessionauth.core.tokens import TokenCodec
from sessionauth.models.user import Users
from sessionauth.services.registration import RegistrationService
from sessionauth.services.session import SessionService
from sessionauth.store.memory import InMemoryCredentialStore

UNIT_PASSWORD = "UnitPassword123!"


@pytest.fixture
def codec() -> TokenCodec:
    return TokenCodec(
        "unit-access-secret-0123456789abcdefgh",
        "unit-refresh-secret-0123456789abcdefgh",
        access_ttl=timedelta(minutes=15),
        refresh_ttl=timedelta(days=30),
    )


@pytest.fixture
def memory_store() -> InMemoryCredentialStore:
    return InMemoryCredentialStore()


@pytest.fixture
def session_service(memory_store: InMemoryCredentialStore, codec: TokenCodec) -> SessionService:
    return SessionService(memory_store, codec)


@pytest.fixture
def registration_service(memory_store: InMemoryCredentialStore) -> RegistrationService:
    return RegistrationService(memory_store, verification_ttl=timedelta(hours=24))


@pytest.fixture
def make_user(memory_store: InMemoryCredentialStore) -> Callable[..., Awaitable[Users]]:
    """Factory for users in the in-memory store (password: UNIT_PASSWORD)."""

    async def _make(
        email: str = "alice@example.com",
        *,
        is_verified: bool = True,
        role: str = UserRole.USER,
    ) -> Users:
        return await memory_store.create_user(
            Users(
                email=email,
                password_hash=get_password_hash(UNIT_PASSWORD, rounds=4),
                first_name="Alice",
                role=role,
                is_verified=is_verified,
            )
        )

    return _make
