"""
In-memory credential store.

Holds users, refresh-token grants and verification tokens in dictionaries
guarded by a single ``asyncio.Lock``. Each operation takes the lock for its
whole read-modify-write, which gives the same "only one revocation wins"
guarantee the SQL store gets from its conditional UPDATE.

Used by the test suite and for running the API without a database. Setting
``available = False`` makes every call raise ``StoreUnavailable``.
"""

import asyncio
import itertools

from sessionauth.core.errors import EmailAlreadyRegistered, StoreUnavailable
from sessionauth.models.email_verification import EmailVerifications
from sessionauth.models.refresh_token import RefreshTokens
from sessionauth.models.user import Users
from sessionauth.utils.clock import utc_now


class InMemoryCredentialStore:
    def __init__(self) -> None:
        self.available = True
        self._lock = asyncio.Lock()
        self._users: dict[int, Users] = {}
        self._tokens: dict[int, RefreshTokens] = {}
        self._tokens_by_value: dict[str, int] = {}
        self._verifications: dict[int, EmailVerifications] = {}
        self._user_ids = itertools.count(1)
        self._token_ids = itertools.count(1)
        self._verification_ids = itertools.count(1)

    def _check(self, operation: str) -> None:
        if not self.available:
            raise StoreUnavailable(operation)

    # Users

    async def find_user_by_email(self, email: str) -> Users | None:
        async with self._lock:
            self._check("find_user_by_email")
            return next((u for u in self._users.values() if u.email == email), None)

    async def find_user_by_id(self, user_id: int) -> Users | None:
        async with self._lock:
            self._check("find_user_by_id")
            return self._users.get(user_id)

    async def create_user(self, user: Users) -> Users:
        async with self._lock:
            self._check("create_user")
            if any(u.email == user.email for u in self._users.values()):
                raise EmailAlreadyRegistered()
            user.id = next(self._user_ids)
            self._users[user.id] = user
            return user

    async def mark_user_verified(self, user_id: int) -> Users | None:
        async with self._lock:
            self._check("mark_user_verified")
            user = self._users.get(user_id)
            if user is not None:
                user.is_verified = True
                user.updated_at = utc_now()
            return user

    async def delete_user(self, user_id: int) -> None:
        """Remove a user and cascade to their grants, like the FK does."""
        async with self._lock:
            self._check("delete_user")
            self._users.pop(user_id, None)
            for record_id in [r.id for r in self._tokens.values() if r.user_id == user_id]:
                record = self._tokens.pop(record_id)  # type: ignore[arg-type]
                self._tokens_by_value.pop(record.token, None)

    # Refresh tokens

    async def insert_refresh_token(self, record: RefreshTokens) -> RefreshTokens:
        async with self._lock:
            self._check("insert_refresh_token")
            if record.token in self._tokens_by_value:
                raise StoreUnavailable("insert_refresh_token")
            record.id = next(self._token_ids)
            self._tokens[record.id] = record
            self._tokens_by_value[record.token] = record.id
            return record

    async def find_active_refresh_token(self, token: str) -> RefreshTokens | None:
        async with self._lock:
            self._check("find_active_refresh_token")
            record = self._lookup(token)
            if record is not None and record.is_active():
                return record
            return None

    async def find_refresh_token(self, token: str) -> RefreshTokens | None:
        async with self._lock:
            self._check("find_refresh_token")
            return self._lookup(token)

    async def revoke_refresh_token(self, record_id: int) -> bool:
        async with self._lock:
            self._check("revoke_refresh_token")
            record = self._tokens.get(record_id)
            return self._revoke(record)

    async def revoke_refresh_token_value(self, token: str) -> bool:
        async with self._lock:
            self._check("revoke_refresh_token_value")
            return self._revoke(self._lookup(token))

    async def revoke_all_by_user(self, user_id: int) -> int:
        async with self._lock:
            self._check("revoke_all_by_user")
            return sum(self._revoke(r) for r in self._tokens.values() if r.user_id == user_id)

    async def revoke_session(self, session_id: str) -> int:
        async with self._lock:
            self._check("revoke_session")
            return sum(
                self._revoke(r) for r in self._tokens.values() if r.session_id == session_id
            )

    async def list_active_refresh_tokens(self, user_id: int) -> list[RefreshTokens]:
        async with self._lock:
            self._check("list_active_refresh_tokens")
            now = utc_now()
            return sorted(
                (r for r in self._tokens.values() if r.user_id == user_id and r.is_active(now)),
                key=lambda r: r.created_at,
            )

    def _lookup(self, token: str) -> RefreshTokens | None:
        record_id = self._tokens_by_value.get(token)
        return self._tokens.get(record_id) if record_id is not None else None

    @staticmethod
    def _revoke(record: RefreshTokens | None) -> bool:
        if record is None or record.revoked:
            return False
        record.revoked = True
        record.revoked_at = utc_now()
        return True

    # Email verification

    async def insert_email_verification(self, record: EmailVerifications) -> EmailVerifications:
        async with self._lock:
            self._check("insert_email_verification")
            record.id = next(self._verification_ids)
            self._verifications[record.id] = record
            return record

    async def find_active_email_verification(self, token: str) -> EmailVerifications | None:
        async with self._lock:
            self._check("find_active_email_verification")
            now = utc_now()
            return next(
                (
                    v
                    for v in self._verifications.values()
                    if v.token == token and not v.is_used and v.expires_at > now
                ),
                None,
            )

    async def mark_email_verifications_used(
        self, user_id: int, verification_id: int | None = None
    ) -> None:
        async with self._lock:
            self._check("mark_email_verifications_used")
            for v in self._verifications.values():
                if v.user_id == user_id and verification_id in (None, v.id):
                    v.is_used = True
