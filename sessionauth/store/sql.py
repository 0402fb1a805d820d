"""
Credential store backed by an async SQLAlchemy session.

Revocation is a conditional UPDATE (``... WHERE revoked = false``) and the
row count tells the caller whether it won. That is what makes concurrent
rotation of one refresh token safe without any in-process locking: the
database serializes the two UPDATEs and only one of them matches a row.

Every write commits immediately. Driver errors are wrapped in
``StoreUnavailable`` and propagated; nothing here retries.
"""

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from sessionauth.core.errors import EmailAlreadyRegistered, StoreUnavailable
from sessionauth.core.logging import get_logger
from sessionauth.models.email_verification import EmailVerifications
from sessionauth.models.refresh_token import RefreshTokens
from sessionauth.models.user import Users
from sessionauth.utils.clock import utc_now

logger = get_logger(__name__)


class SQLCredentialStore:
    """Credential store bound to one ``AsyncSession`` (one request)."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    @asynccontextmanager
    async def _guard(self, operation: str) -> AsyncIterator[None]:
        try:
            yield
        except (EmailAlreadyRegistered, StoreUnavailable):
            raise
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "credential_store_error",
                operation=operation,
                error=str(e),
                error_type=type(e).__name__,
            )
            raise StoreUnavailable(operation, e) from e

    # Users

    async def find_user_by_email(self, email: str) -> Users | None:
        async with self._guard("find_user_by_email"):
            result = await self.db.execute(
                select(Users)
                .execution_options(populate_existing=True)
                .where(Users.email == email)  # type: ignore[arg-type]
            )
            return result.scalar_one_or_none()

    async def find_user_by_id(self, user_id: int) -> Users | None:
        async with self._guard("find_user_by_id"):
            result = await self.db.execute(
                select(Users)
                .execution_options(populate_existing=True)
                .where(Users.id == user_id)  # type: ignore[arg-type]
            )
            return result.scalar_one_or_none()

    async def create_user(self, user: Users) -> Users:
        async with self._guard("create_user"):
            self.db.add(user)
            try:
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                raise EmailAlreadyRegistered() from e
            await self.db.refresh(user)
            return user

    async def mark_user_verified(self, user_id: int) -> Users | None:
        async with self._guard("mark_user_verified"):
            await self.db.execute(
                update(Users)
                .where(Users.id == user_id)  # type: ignore[arg-type]
                .values(is_verified=True, updated_at=utc_now())
            )
            await self.db.commit()
        return await self.find_user_by_id(user_id)

    # Refresh tokens

    async def insert_refresh_token(self, record: RefreshTokens) -> RefreshTokens:
        async with self._guard("insert_refresh_token"):
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
            return record

    async def find_active_refresh_token(self, token: str) -> RefreshTokens | None:
        async with self._guard("find_active_refresh_token"):
            result = await self.db.execute(
                select(RefreshTokens)
                .execution_options(populate_existing=True)
                .where(
                    RefreshTokens.token == token,  # type: ignore[arg-type]
                    RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                    RefreshTokens.expires_at > utc_now(),  # type: ignore[arg-type]
                )
            )
            return result.scalar_one_or_none()

    async def find_refresh_token(self, token: str) -> RefreshTokens | None:
        async with self._guard("find_refresh_token"):
            result = await self.db.execute(
                select(RefreshTokens)
                .execution_options(populate_existing=True)
                .where(RefreshTokens.token == token)  # type: ignore[arg-type]
            )
            return result.scalar_one_or_none()

    async def revoke_refresh_token(self, record_id: int) -> bool:
        async with self._guard("revoke_refresh_token"):
            result = await self.db.execute(
                update(RefreshTokens)
                .where(
                    RefreshTokens.id == record_id,  # type: ignore[arg-type]
                    RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                )
                .values(revoked=True, revoked_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return bool(result.rowcount)  # type: ignore[attr-defined]

    async def revoke_refresh_token_value(self, token: str) -> bool:
        async with self._guard("revoke_refresh_token_value"):
            result = await self.db.execute(
                update(RefreshTokens)
                .where(
                    RefreshTokens.token == token,  # type: ignore[arg-type]
                    RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                )
                .values(revoked=True, revoked_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return bool(result.rowcount)  # type: ignore[attr-defined]

    async def revoke_all_by_user(self, user_id: int) -> int:
        async with self._guard("revoke_all_by_user"):
            result = await self.db.execute(
                update(RefreshTokens)
                .where(
                    RefreshTokens.user_id == user_id,  # type: ignore[arg-type]
                    RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                )
                .values(revoked=True, revoked_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return int(result.rowcount)  # type: ignore[attr-defined]

    async def revoke_session(self, session_id: str) -> int:
        async with self._guard("revoke_session"):
            result = await self.db.execute(
                update(RefreshTokens)
                .where(
                    RefreshTokens.session_id == session_id,  # type: ignore[arg-type]
                    RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                )
                .values(revoked=True, revoked_at=utc_now())
                .execution_options(synchronize_session=False)
            )
            await self.db.commit()
            return int(result.rowcount)  # type: ignore[attr-defined]

    async def list_active_refresh_tokens(self, user_id: int) -> list[RefreshTokens]:
        async with self._guard("list_active_refresh_tokens"):
            result = await self.db.execute(
                select(RefreshTokens)
                .execution_options(populate_existing=True)
                .where(
                    RefreshTokens.user_id == user_id,  # type: ignore[arg-type]
                    RefreshTokens.revoked == False,  # type: ignore[arg-type]  # noqa: E712
                    RefreshTokens.expires_at > utc_now(),  # type: ignore[arg-type]
                )
                .order_by(RefreshTokens.created_at)  # type: ignore[arg-type]
            )
            return list(result.scalars().all())

    # Email verification

    async def insert_email_verification(self, record: EmailVerifications) -> EmailVerifications:
        async with self._guard("insert_email_verification"):
            self.db.add(record)
            await self.db.commit()
            await self.db.refresh(record)
            return record

    async def find_active_email_verification(self, token: str) -> EmailVerifications | None:
        async with self._guard("find_active_email_verification"):
            result = await self.db.execute(
                select(EmailVerifications).where(
                    EmailVerifications.token == token,  # type: ignore[arg-type]
                    EmailVerifications.is_used == False,  # type: ignore[arg-type]  # noqa: E712
                    EmailVerifications.expires_at > utc_now(),  # type: ignore[arg-type]
                )
            )
            return result.scalar_one_or_none()

    async def mark_email_verifications_used(
        self, user_id: int, verification_id: int | None = None
    ) -> None:
        async with self._guard("mark_email_verifications_used"):
            stmt = update(EmailVerifications).where(
                EmailVerifications.user_id == user_id  # type: ignore[arg-type]
            )
            if verification_id is not None:
                stmt = stmt.where(EmailVerifications.id == verification_id)  # type: ignore[arg-type]
            await self.db.execute(
                stmt.values(is_used=True).execution_options(synchronize_session=False)
            )
            await self.db.commit()
