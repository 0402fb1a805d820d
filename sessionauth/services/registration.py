"""
Account registration and email verification.

New accounts start unverified and cannot log in until the one-time token
mailed to them is redeemed. Issuing a token invalidates every earlier token
of the same user, so only the most recent email link works.

Mail delivery is not done here: callers receive the raw token and hand it to
the background queue.
"""

import asyncio
from datetime import timedelta

from sessionauth.config import UserRole, settings
from sessionauth.core.errors import InvalidVerificationToken
from sessionauth.core.logging import get_logger
from sessionauth.core.security import generate_verification_token, get_password_hash
from sessionauth.models.email_verification import EmailVerifications
from sessionauth.models.user import Users
from sessionauth.store.base import CredentialStore
from sessionauth.utils.clock import utc_now

logger = get_logger(__name__)


class RegistrationService:
    def __init__(
        self,
        store: CredentialStore,
        verification_ttl: timedelta | None = None,
    ) -> None:
        self.store = store
        self.verification_ttl = verification_ttl or timedelta(
            hours=settings.EMAIL_VERIFICATION_EXPIRE_HOURS
        )

    async def register(
        self,
        email: str,
        password: str,
        first_name: str | None = None,
        last_name: str | None = None,
    ) -> tuple[Users, str]:
        """
        Create an unverified user and a verification token.

        Returns:
            The created user and the raw verification token

        Raises:
            EmailAlreadyRegistered: The email already has an account
        """
        password_hash = await asyncio.to_thread(get_password_hash, password)
        user = await self.store.create_user(
            Users(
                email=email,
                password_hash=password_hash,
                first_name=first_name,
                last_name=last_name,
                role=UserRole.USER,
                is_verified=False,
            )
        )
        token = await self._issue_verification(user)
        logger.info("user_registered", user_id=user.id)
        return user, token

    async def verify_email(self, token: str) -> Users:
        """
        Redeem a verification token and mark its user verified.

        Raises:
            InvalidVerificationToken: Token unknown, already used, or expired
        """
        if not token:
            raise InvalidVerificationToken("No verification token provided")

        verification = await self.store.find_active_email_verification(token)
        if verification is None:
            logger.info("email_verification_rejected")
            raise InvalidVerificationToken()

        await self.store.mark_email_verifications_used(
            verification.user_id, verification_id=verification.id
        )
        user = await self.store.mark_user_verified(verification.user_id)
        if user is None:
            raise InvalidVerificationToken("User not found")

        logger.info("email_verified", user_id=user.id)
        return user

    async def resend_verification(self, email: str) -> tuple[Users, str] | None:
        """
        Issue a fresh verification token for an unverified account.

        Returns None when there is nothing to send (unknown email or already
        verified). Callers answer identically in every case.
        """
        user = await self.store.find_user_by_email(email)
        if user is None or user.is_verified:
            logger.info("verification_resend_skipped", found=user is not None)
            return None

        token = await self._issue_verification(user)
        logger.info("verification_resent", user_id=user.id)
        return user, token

    async def is_verified(self, email: str) -> bool:
        """Verification status; unknown emails report False."""
        user = await self.store.find_user_by_email(email)
        return bool(user and user.is_verified)

    async def _issue_verification(self, user: Users) -> str:
        await self.store.mark_email_verifications_used(user.id)  # type: ignore[arg-type]
        token = generate_verification_token()
        await self.store.insert_email_verification(
            EmailVerifications(
                user_id=user.id,  # type: ignore[arg-type]
                token=token,
                expires_at=utc_now() + self.verification_ttl,
            )
        )
        return token
