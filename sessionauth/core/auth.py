"""
Authentication dependencies for FastAPI route protection.

This module provides dependency functions for:
- Building the credential store and services for a request
- Extracting request metadata (IP, user agent, browser family)
- Resolving the current user from the signed access cookie or a Bearer token
- Rate limiting the credential endpoints
"""

import json
from typing import Annotated

from fastapi import Depends, Request, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from sessionauth.core.cookies import ACCESS_COOKIE, read_signed_cookie
from sessionauth.core.database import get_db
from sessionauth.core.errors import AuthError, Forbidden, RateLimitExceeded
from sessionauth.core.logging import get_logger, set_user_context
from sessionauth.core.tokens import Fingerprint
from sessionauth.models.user import Users
from sessionauth.services.rate_limit import RateLimiter, rate_limit_exempt
from sessionauth.services.registration import RegistrationService
from sessionauth.services.session import SessionService, build_session_service
from sessionauth.store.base import CredentialStore
from sessionauth.store.sql import SQLCredentialStore
from sessionauth.utils.user_agent import detect_browser_family

logger = get_logger(__name__)

bearer_scheme = HTTPBearer(auto_error=False)


def get_credential_store(db: Annotated[AsyncSession, Depends(get_db)]) -> CredentialStore:
    """Credential store bound to the request's database session."""
    return SQLCredentialStore(db)


def get_session_service(
    store: Annotated[CredentialStore, Depends(get_credential_store)],
) -> SessionService:
    return build_session_service(store)


def get_registration_service(
    store: Annotated[CredentialStore, Depends(get_credential_store)],
) -> RegistrationService:
    return RegistrationService(store)


def get_client_ip(request: Request) -> str:
    """
    Extract client IP address from request.

    Proxy headers are checked first (Cloudflare, X-Forwarded-For, X-Real-IP),
    falling back to the socket peer.
    """
    cf_ip = request.headers.get("CF-Connecting-IP")
    if cf_ip:
        return cf_ip.strip()
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        # X-Forwarded-For can contain multiple IPs, take the first (client)
        return forwarded.split(",")[0].strip()
    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return request.client.host if request.client else "unknown"


def get_user_agent(request: Request) -> str:
    return request.headers.get("User-Agent", "")


def get_request_fingerprint(request: Request) -> Fingerprint:
    """User agent, client IP and browser family of the current request."""
    user_agent = get_user_agent(request)
    return Fingerprint(
        user_agent=user_agent,
        ip_address=get_client_ip(request),
        family=detect_browser_family(user_agent),
    )


def get_access_token(
    request: Request,
    credentials: Annotated[HTTPAuthorizationCredentials | None, Depends(bearer_scheme)] = None,
) -> str | None:
    """Signed ``access_token`` cookie first, then an ``Authorization: Bearer`` header."""
    token = read_signed_cookie(request, ACCESS_COOKIE)
    if token:
        return token
    if credentials is not None and credentials.credentials:
        return credentials.credentials
    return None


async def get_optional_current_user(
    token: Annotated[str | None, Depends(get_access_token)],
    service: Annotated[SessionService, Depends(get_session_service)],
) -> Users | None:
    """Current user if the request carries a valid access token, otherwise None."""
    if not token:
        return None
    user = await service.validate_access_token(token)
    if user is not None:
        set_user_context(user.id)  # type: ignore[arg-type]
    return user


async def get_current_user(
    user: Annotated[Users | None, Depends(get_optional_current_user)],
) -> Users:
    """
    Require an authenticated user.

    Raises:
        AuthError: 401 if the token is missing, invalid, expired, or its
            user no longer exists
    """
    if user is None:
        raise AuthError("Not authenticated")
    return user


async def require_verified_email(
    current_user: Annotated[Users, Depends(get_current_user)],
) -> Users:
    if not current_user.is_verified:
        raise Forbidden("Email verification required")
    return current_user


async def require_admin(
    current_user: Annotated[Users, Depends(get_current_user)],
) -> Users:
    """
    Require current user to be an admin or super admin.

    Raises:
        Forbidden: 403 if user is not an admin
    """
    if not current_user.is_admin:
        raise Forbidden("Admin privileges required")
    return current_user


def get_rate_limiter(request: Request) -> RateLimiter:
    return request.app.state.rate_limiter  # type: ignore[no-any-return]


async def _rate_limit_key(request: Request) -> str:
    ip = get_client_ip(request)
    body = await request.body()
    if body:
        try:
            payload = json.loads(body)
        except ValueError:
            payload = None
        if isinstance(payload, dict) and isinstance(payload.get("email"), str):
            return f"auth:{ip}:{payload['email'].lower()}"
    return f"auth:{ip}"


async def enforce_auth_rate_limit(
    request: Request,
    response: Response,
    limiter: Annotated[RateLimiter, Depends(get_rate_limiter)],
) -> None:
    """
    Count one attempt against the client IP and submitted email.

    Adds ``X-RateLimit-*`` headers to the response.

    Raises:
        RateLimitExceeded: 429 once the limit for the window is used up
    """
    if rate_limit_exempt():
        return

    key = await _rate_limit_key(request)
    result = await limiter.hit(key)
    headers = result.headers()

    if result.exceeded:
        logger.warning("auth_rate_limit_exceeded", key=key, count=result.count, limit=result.limit)
        raise RateLimitExceeded(result.retry_after(), headers=headers)

    response.headers.update(headers)


async def reset_auth_rate_limit(request: Request, limiter: RateLimiter) -> None:
    """Forget earlier failed attempts for this client and email after a successful login."""
    if rate_limit_exempt():
        return
    await limiter.reset(await _rate_limit_key(request))


# Type aliases for dependency injection
CurrentUser = Annotated[Users, Depends(get_current_user)]
VerifiedUser = Annotated[Users, Depends(require_verified_email)]
AdminUser = Annotated[Users, Depends(require_admin)]
SessionServiceDep = Annotated[SessionService, Depends(get_session_service)]
RegistrationServiceDep = Annotated[RegistrationService, Depends(get_registration_service)]
RequestFingerprint = Annotated[Fingerprint, Depends(get_request_fingerprint)]
AuthRateLimiter = Annotated[RateLimiter, Depends(get_rate_limiter)]
