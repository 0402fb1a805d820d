"""
Session lifecycle: login, refresh with rotation, logout, validation.

States of one login session:

    Anonymous -> Authenticated(access valid)
              -> Authenticated(access expired, refresh valid)
              -> Revoked / Expired

The credential store is the single authority. Nothing here keeps session
state in process memory, so every method is an independent async unit of
work and the store's own consistency (unique token values, conditional
revocation) is what serializes concurrent callers.

Errors:
- ``InvalidCredentials`` / ``InvalidOrExpiredToken`` / ``EmailNotVerified``
  are user-facing and safe to render.
- ``StoreUnavailable`` propagates unchanged. It is never retried here,
  since a blind retry of a half-finished rotation could double-issue tokens.
"""

import asyncio
import secrets
from dataclasses import dataclass
from datetime import datetime

from sessionauth.config import settings
from sessionauth.core.errors import (
    EmailNotVerified,
    InvalidCredentials,
    InvalidOrExpiredToken,
    TokenReuseDetected,
)
from sessionauth.core.logging import get_logger
from sessionauth.core.security import burn_password_check, verify_password
from sessionauth.core.tokens import Fingerprint, TokenCodec
from sessionauth.models.refresh_token import RefreshTokens
from sessionauth.models.user import Users
from sessionauth.store.base import CredentialStore
from sessionauth.utils.clock import from_epoch_ms

logger = get_logger(__name__)


@dataclass(frozen=True)
class SessionTokens:
    """Everything a caller needs after a successful login or refresh."""

    user: Users
    access_token: str
    refresh_token: str
    access_expires_at_ms: int
    refresh_expires_at_ms: int
    session_id: str

    @property
    def access_expires_at(self) -> datetime:
        return from_epoch_ms(self.access_expires_at_ms)

    @property
    def refresh_expires_at(self) -> datetime:
        return from_epoch_ms(self.refresh_expires_at_ms)


def new_session_id() -> str:
    return secrets.token_urlsafe(24)


def fingerprint_of(record: RefreshTokens) -> Fingerprint:
    """Request context stored with a grant, carried over on rotation."""
    return Fingerprint(
        user_agent=record.user_agent or "",
        ip_address=record.ip_address or "",
        family=record.family or "",
    )


class SessionService:
    """
    Orchestrates the credential store and the token codec.

    Args:
        store: Credential store for users and refresh-token records
        codec: Token signer/verifier
        revoke_session_on_reuse: When a rotated refresh token is replayed,
            also revoke the live token of that login session. Off by default:
            the replay is rejected like any other invalid token.
    """

    def __init__(
        self,
        store: CredentialStore,
        codec: TokenCodec,
        *,
        revoke_session_on_reuse: bool = False,
    ) -> None:
        self.store = store
        self.codec = codec
        self.revoke_session_on_reuse = revoke_session_on_reuse

    async def login(
        self,
        email: str,
        password: str,
        metadata: Fingerprint | None = None,
    ) -> SessionTokens:
        """
        Authenticate with email and password and open a new login session.

        Unknown email and wrong password raise the same ``InvalidCredentials``.
        A correct password on an unverified account raises ``EmailNotVerified``.
        """
        user = await self.store.find_user_by_email(email)

        if user is None:
            await asyncio.to_thread(burn_password_check, password)
            logger.info("login_failed", reason="unknown_email")
            raise InvalidCredentials()

        password_valid = await asyncio.to_thread(verify_password, password, user.password_hash)
        if not password_valid:
            logger.info("login_failed", reason="wrong_password", user_id=user.id)
            raise InvalidCredentials()

        if not user.is_verified:
            logger.info("login_blocked_unverified", user_id=user.id)
            raise EmailNotVerified(user.email)

        metadata = metadata or Fingerprint()
        tokens = await self._open_session(user, metadata)
        logger.info(
            "login_success",
            user_id=user.id,
            session_id=tokens.session_id,
            family=metadata.family,
        )
        return tokens

    async def create_tokens_for_user(
        self, user: Users, metadata: Fingerprint | None = None
    ) -> SessionTokens:
        """
        Open a login session without checking a password.

        Only for identities already proven out of band (OAuth callback).
        Never wire this to anything that accepts user-supplied identity.
        """
        tokens = await self._open_session(user, metadata or Fingerprint())
        logger.info("external_login_success", user_id=user.id, session_id=tokens.session_id)
        return tokens

    async def refresh_token(self, old_token: str) -> SessionTokens:
        """
        Exchange a refresh token for a new access/refresh pair (rotation).

        The presented token's record is revoked before the new pair is
        minted. Replaying an already rotated token fails with
        ``TokenReuseDetected``, which callers treat as
        ``InvalidOrExpiredToken``.
        """
        payload = self.codec.verify_refresh_token(old_token)
        if payload is None:
            logger.info("refresh_rejected", reason="bad_signature_or_expired")
            raise InvalidOrExpiredToken()

        record = await self.store.find_active_refresh_token(old_token)
        if record is None:
            stale = await self.store.find_refresh_token(old_token)
            if stale is not None and stale.revoked:
                await self._handle_reuse(stale)
            logger.info("refresh_rejected", reason="no_active_record", subject=payload.sub)
            raise InvalidOrExpiredToken()

        if record.user_id != payload.user_id:
            logger.warning(
                "refresh_rejected",
                reason="subject_mismatch",
                record_user_id=record.user_id,
                subject=payload.sub,
            )
            raise InvalidOrExpiredToken()

        user = await self.store.find_user_by_id(record.user_id)
        if user is None:
            await self.store.revoke_refresh_token(record.id)  # type: ignore[arg-type]
            logger.info("refresh_rejected", reason="user_missing", user_id=record.user_id)
            raise InvalidOrExpiredToken()

        # Rotation: only the caller that flips revoked false -> true may mint
        if not await self.store.revoke_refresh_token(record.id):  # type: ignore[arg-type]
            await self._handle_reuse(record)

        tokens = await self._mint(
            user,
            fingerprint_of(record),
            session_id=record.session_id,
            parent_token_id=record.id,
        )
        logger.info(
            "refresh_rotated",
            user_id=user.id,
            session_id=record.session_id,
            parent_token_id=record.id,
        )
        return tokens

    async def validate_access_token(self, token: str) -> Users | None:
        """
        Resolve an access token to its user, or None.

        The user is re-read on every call so role and verification changes
        apply before the token expires. Access tokens themselves are not
        individually revocable.
        """
        payload = self.codec.verify_access_token(token)
        if payload is None or payload.user_id is None:
            return None
        return await self.store.find_user_by_id(payload.user_id)

    async def get_user_from_refresh_token(self, token: str) -> Users | None:
        """Identify the owner of a live refresh token without rotating it."""
        payload = self.codec.verify_refresh_token(token)
        if payload is None:
            return None
        record = await self.store.find_active_refresh_token(token)
        if record is None:
            return None
        return await self.store.find_user_by_id(record.user_id)

    async def revoke_refresh_token(self, token: str) -> None:
        """Revoke one grant. Unknown or already revoked tokens are a no-op."""
        if await self.store.revoke_refresh_token_value(token):
            logger.info("refresh_token_revoked")

    async def revoke_all_user_refresh_tokens(self, user_id: int) -> int:
        """Revoke every grant of a user (logout from all devices)."""
        count = await self.store.revoke_all_by_user(user_id)
        logger.info("refresh_tokens_revoked_all", user_id=user_id, count=count)
        return count

    async def _handle_reuse(self, record: RefreshTokens) -> None:
        logger.warning(
            "refresh_token_reuse_detected",
            user_id=record.user_id,
            session_id=record.session_id,
            escalated=self.revoke_session_on_reuse,
        )
        if self.revoke_session_on_reuse:
            await self.store.revoke_session(record.session_id)
        raise TokenReuseDetected(user_id=record.user_id, session_id=record.session_id)

    async def _open_session(self, user: Users, metadata: Fingerprint) -> SessionTokens:
        return await self._mint(user, metadata, session_id=new_session_id(), parent_token_id=None)

    async def _mint(
        self,
        user: Users,
        metadata: Fingerprint,
        *,
        session_id: str,
        parent_token_id: int | None,
    ) -> SessionTokens:
        access = self.codec.issue_access_token(user, metadata)
        refresh = self.codec.issue_refresh_token(user)

        await self.store.insert_refresh_token(
            RefreshTokens(
                user_id=user.id,  # type: ignore[arg-type]
                token=refresh.token,
                session_id=session_id,
                parent_token_id=parent_token_id,
                expires_at=from_epoch_ms(refresh.expires_at_ms),
                user_agent=metadata.user_agent or None,
                ip_address=metadata.ip_address or None,
                family=metadata.family or None,
            )
        )

        return SessionTokens(
            user=user,
            access_token=access.token,
            refresh_token=refresh.token,
            access_expires_at_ms=access.expires_at_ms,
            refresh_expires_at_ms=refresh.expires_at_ms,
            session_id=session_id,
        )


def build_session_service(store: CredentialStore) -> SessionService:
    """Session service wired with the configured codec and reuse policy."""
    return SessionService(
        store,
        TokenCodec.from_settings(settings),
        revoke_session_on_reuse=settings.REVOKE_SESSION_ON_REUSE,
    )
