"""Email background jobs for the arq worker."""

from typing import Any

from arq import Retry

from sessionauth.core.database import get_async_session
from sessionauth.core.errors import StoreUnavailable
from sessionauth.core.logging import bind_context, get_logger
from sessionauth.services.email import send_verification_email
from sessionauth.store.sql import SQLCredentialStore

logger = get_logger(__name__)


async def send_verification_email_job(ctx: dict[str, Any], user_id: int, token: str) -> None:
    """
    Send the verification link for ``token`` to the user.

    Skips silently when the user is gone or already verified. Failed sends
    and store outages are retried with a linear backoff.

    Raises:
        Retry: When delivery or the user lookup failed
    """
    bind_context(task="send_verification_email", user_id=user_id)

    try:
        async with get_async_session() as db:
            user = await SQLCredentialStore(db).find_user_by_id(user_id)
    except StoreUnavailable as e:
        logger.error("verification_email_store_error", user_id=user_id, error=str(e))
        raise Retry(defer=ctx["job_try"] * 5) from e

    if user is None:
        logger.warning("verification_email_user_not_found", user_id=user_id)
        return

    if user.is_verified:
        logger.info("verification_email_skipped", user_id=user_id, reason="already_verified")
        return

    if await send_verification_email(user=user, token=token):
        logger.info("verification_email_sent", user_id=user_id)
        return

    logger.error("verification_email_failed", user_id=user_id)
    raise Retry(defer=ctx["job_try"] * 5)
