"""Verification email delivery over SMTP."""

import asyncio
import html as html_escape
from email.message import EmailMessage
from urllib.parse import quote

import aiosmtplib
from aiosmtplib.errors import (
    SMTPAuthenticationError,
    SMTPConnectError,
    SMTPConnectTimeoutError,
    SMTPException,
    SMTPReadTimeoutError,
)

from sessionauth.config import settings
from sessionauth.core.logging import get_logger
from sessionauth.models.user import Users

logger = get_logger(__name__)

MAX_SEND_ATTEMPTS = 3


def build_message(to: str, subject: str, body: str, html: str | None = None) -> EmailMessage:
    message = EmailMessage()
    message["From"] = f"{settings.SMTP_FROM_NAME} <{settings.SMTP_FROM_EMAIL}>"
    message["To"] = to
    message["Subject"] = subject
    message.set_content(body)
    if html:
        message.add_alternative(html, subtype="html")
    return message


async def send_email(to: str, subject: str, body: str, html: str | None = None) -> bool:
    """
    Send one email, retrying only when the connection was never established.

    Returns True on success. Failures are logged and reported as False; this
    never raises, so a mail outage cannot fail registration or login.
    """
    if not settings.SMTP_HOST:
        logger.warning("email_not_configured", to=to, subject=subject)
        return False

    message = build_message(to, subject, body, html)

    for attempt in range(1, MAX_SEND_ATTEMPTS + 1):
        try:
            await aiosmtplib.send(
                message,
                hostname=settings.SMTP_HOST,
                port=settings.SMTP_PORT,
                username=settings.SMTP_USER or None,
                password=settings.SMTP_PASSWORD or None,
                use_tls=settings.SMTP_TLS,
                start_tls=settings.SMTP_STARTTLS,
                timeout=30,
            )
        except (SMTPConnectError, SMTPConnectTimeoutError) as e:
            # Nothing was sent yet
            logger.warning(
                "email_connection_failed",
                to=to,
                attempt=attempt,
                error=str(e),
                error_type=type(e).__name__,
            )
            if attempt == MAX_SEND_ATTEMPTS:
                logger.error("email_connection_failed_all_retries", to=to, subject=subject)
                return False
            await asyncio.sleep(2 ** (attempt - 1))
        except SMTPReadTimeoutError as e:
            # The server may already have queued it
            logger.error("email_send_timeout_after_data", to=to, error=str(e))
            return False
        except SMTPAuthenticationError as e:
            logger.error("email_auth_failed", to=to, error=str(e))
            return False
        except SMTPException as e:
            logger.error(
                "email_smtp_error",
                to=to,
                subject=subject,
                error=str(e),
                error_type=type(e).__name__,
            )
            return False
        except OSError as e:
            logger.error("email_send_os_error", to=to, error=str(e), error_type=type(e).__name__)
            return False
        else:
            logger.info("email_sent_success", to=to, subject=subject, attempt=attempt)
            return True

    return False


def verification_url(token: str) -> str:
    return f"{settings.FRONTEND_URL}/verify-email?token={quote(token)}"


async def send_verification_email(user: Users, token: str) -> bool:
    """
    Send the email-verification link for a freshly issued token.

    Args:
        user: Recipient
        token: Raw verification token

    Returns:
        True if the email was handed to the SMTP server
    """
    url = verification_url(token)
    name = user.first_name or user.email
    hours = settings.EMAIL_VERIFICATION_EXPIRE_HOURS

    subject = "Verify your email address"
    body = f"""Hi {name},

Thanks for signing up. Please confirm your email address:

{url}

This link expires in {hours} hours. If you did not create an account, ignore this email.
"""

    safe_name = html_escape.escape(name)
    html = f"""<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; line-height: 1.6;">
    <div style="max-width: 600px; margin: 0 auto; padding: 20px;">
        <h2>Hi {safe_name},</h2>
        <p>Thanks for signing up. Please confirm your email address.</p>
        <p><a href="{url}">Verify Email Address</a></p>
        <p>Or copy this link into your browser:</p>
        <p><code>{url}</code></p>
        <p><small>This link expires in {hours} hours.</small></p>
    </div>
</body>
</html>
"""

    return await send_email(to=user.email, subject=subject, body=body, html=html)
