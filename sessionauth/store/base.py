"""Credential store interface consumed by the session service."""

from typing import Protocol

from sessionauth.models.email_verification import EmailVerifications
from sessionauth.models.refresh_token import RefreshTokens
from sessionauth.models.user import Users


class CredentialStore(Protocol):
    """
    Persistence for users, refresh-token grants and verification tokens.

    All timestamps are naive UTC. Any failure of the underlying storage is
    raised as ``StoreUnavailable``; implementations never retry on their own
    behalf of the caller.
    """

    # Users
    async def find_user_by_email(self, email: str) -> Users | None: ...

    async def find_user_by_id(self, user_id: int) -> Users | None: ...

    async def create_user(self, user: Users) -> Users:
        """Insert a user. Raises ``EmailAlreadyRegistered`` on a duplicate email."""
        ...

    async def mark_user_verified(self, user_id: int) -> Users | None: ...

    # Refresh tokens
    async def insert_refresh_token(self, record: RefreshTokens) -> RefreshTokens: ...

    async def find_active_refresh_token(self, token: str) -> RefreshTokens | None:
        """Record matching ``token`` that is neither revoked nor expired."""
        ...

    async def find_refresh_token(self, token: str) -> RefreshTokens | None:
        """Record matching ``token`` in any state."""
        ...

    async def revoke_refresh_token(self, record_id: int) -> bool:
        """
        Mark one record revoked.

        Returns True only if this call performed the false -> true flip, so
        two concurrent rotations of the same record cannot both succeed.
        """
        ...

    async def revoke_refresh_token_value(self, token: str) -> bool: ...

    async def revoke_all_by_user(self, user_id: int) -> int:
        """Revoke every unrevoked record owned by the user; returns the count."""
        ...

    async def revoke_session(self, session_id: str) -> int:
        """Revoke every unrevoked record in one rotation chain."""
        ...

    async def list_active_refresh_tokens(self, user_id: int) -> list[RefreshTokens]: ...

    # Email verification
    async def insert_email_verification(
        self, record: EmailVerifications
    ) -> EmailVerifications: ...

    async def find_active_email_verification(self, token: str) -> EmailVerifications | None: ...

    async def mark_email_verifications_used(
        self, user_id: int, verification_id: int | None = None
    ) -> None:
        """Mark one verification (``verification_id``) or all of a user's as used."""
        ...
