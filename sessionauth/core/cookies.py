"""
Auth cookie handling.

``access_token`` and ``refresh_token`` are HTTP-only cookies whose values are
signed with ``COOKIE_SECRET`` (``<value>.<urlsafe-b64 HMAC-SHA256>``). A
cookie whose signature does not verify is treated as absent.

``auth_status=authenticated`` is a plain, script-readable marker with the
access-token lifetime. It carries no credential; clients use it only to
decide whether their cached session is worth keeping.
"""

import base64
import hashlib
import hmac
import time

from fastapi import Request, Response

from sessionauth.config import settings
from sessionauth.services.session import SessionTokens

ACCESS_COOKIE = "access_token"
REFRESH_COOKIE = "refresh_token"
AUTH_STATUS_VALUE = "authenticated"

# Logout asks the browser to drop everything it holds for this origin
CLEAR_SITE_DATA = '"cache", "cookies", "storage"'


def _signature(value: str, secret: str) -> str:
    digest = hmac.new(secret.encode("utf-8"), value.encode("utf-8"), hashlib.sha256).digest()
    return base64.urlsafe_b64encode(digest).rstrip(b"=").decode("ascii")


def sign_value(value: str, secret: str | None = None) -> str:
    return f"{value}.{_signature(value, secret or settings.COOKIE_SECRET)}"


def unsign_value(signed: str | None, secret: str | None = None) -> str | None:
    """Return the original value, or None if missing or tampered with."""
    if not signed or "." not in signed:
        return None
    value, _, signature = signed.rpartition(".")
    expected = _signature(value, secret or settings.COOKIE_SECRET)
    if not hmac.compare_digest(signature, expected):
        return None
    return value


def read_signed_cookie(request: Request, name: str) -> str | None:
    return unsign_value(request.cookies.get(name))


def _seconds_until(expires_at_ms: int) -> int:
    return max(0, (expires_at_ms - int(time.time() * 1000)) // 1000)


def set_auth_cookies(response: Response, tokens: SessionTokens) -> None:
    """Set both signed token cookies and the auth_status marker."""
    access_max_age = _seconds_until(tokens.access_expires_at_ms)

    response.set_cookie(
        key=ACCESS_COOKIE,
        value=sign_value(tokens.access_token),
        max_age=access_max_age,
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )
    response.set_cookie(
        key=REFRESH_COOKIE,
        value=sign_value(tokens.refresh_token),
        max_age=_seconds_until(tokens.refresh_expires_at_ms),
        path="/",
        httponly=True,
        secure=settings.secure_cookies,
        samesite="lax",
    )
    response.set_cookie(
        key=settings.AUTH_STATUS_COOKIE,
        value=AUTH_STATUS_VALUE,
        max_age=access_max_age,
        path="/",
        httponly=False,
        secure=settings.secure_cookies,
        samesite="lax",
    )


def clear_auth_cookies(response: Response) -> None:
    """Expire every auth cookie. Attributes must match the ones used to set them."""
    for key in (ACCESS_COOKIE, REFRESH_COOKIE):
        response.delete_cookie(
            key=key,
            path="/",
            httponly=True,
            secure=settings.secure_cookies,
            samesite="lax",
        )
    response.delete_cookie(
        key=settings.AUTH_STATUS_COOKIE,
        path="/",
        httponly=False,
        secure=settings.secure_cookies,
        samesite="lax",
    )
