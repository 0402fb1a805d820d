"""
Authentication API endpoints.

This module provides endpoints for:
- Login (signed access/refresh cookies + auth_status marker)
- Token refresh (with rotation)
- Logout (this device / all devices)
- Current user and active sessions
- Registration and email verification

Every response carries ``Cache-Control: no-store``. Error responses are
produced by the exception handlers in ``sessionauth.main``.
"""

from typing import Annotated

from fastapi import APIRouter, Depends, Query, Request, Response, status

from sessionauth.core.auth import (
    AdminUser,
    AuthRateLimiter,
    CurrentUser,
    RegistrationServiceDep,
    RequestFingerprint,
    SessionServiceDep,
    VerifiedUser,
    enforce_auth_rate_limit,
    get_access_token,
    reset_auth_rate_limit,
)
from sessionauth.core.cookies import (
    CLEAR_SITE_DATA,
    REFRESH_COOKIE,
    clear_auth_cookies,
    read_signed_cookie,
    set_auth_cookies,
)
from sessionauth.core.errors import InvalidOrExpiredToken
from sessionauth.core.logging import get_logger, set_user_context
from sessionauth.schemas.auth import (
    ActiveSession,
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    SessionListResponse,
    SessionResponse,
    SessionUser,
)
from sessionauth.services.session import SessionTokens
from sessionauth.tasks.queue import enqueue_job
from sessionauth.utils.clock import from_epoch_ms, isoformat_z

logger = get_logger(__name__)


def no_store(response: Response) -> None:
    response.headers["Cache-Control"] = "no-store"


router = APIRouter(prefix="/auth", tags=["Authentication"], dependencies=[Depends(no_store)])

RateLimited = [Depends(enforce_auth_rate_limit)]

VERIFICATION_SENT_MESSAGE = "If your email is registered, a verification link will be sent"


def _session_response(tokens: SessionTokens, message: str) -> SessionResponse:
    return SessionResponse(
        success=True,
        user=SessionUser.from_user(tokens.user),
        expires_at=isoformat_z(tokens.access_expires_at),
        message=message,
    )


@router.post(
    "/login",
    response_model=SessionResponse,
    response_model_exclude_none=True,
    dependencies=RateLimited,
)
async def login(
    credentials: LoginRequest,
    request: Request,
    response: Response,
    service: SessionServiceDep,
    fingerprint: RequestFingerprint,
    limiter: AuthRateLimiter,
) -> SessionResponse:
    """
    Authenticate with email and password.

    Sets the signed ``access_token`` and ``refresh_token`` cookies and the
    ``auth_status`` marker. Unknown email and wrong password get the same
    401. A correct password on an unverified account gets 403 with
    ``requiresVerification``.

    A successful login clears the attempt count for this client and email.
    """
    tokens = await service.login(credentials.email, credentials.password, fingerprint)
    set_user_context(tokens.user.id, tokens.session_id)  # type: ignore[arg-type]
    await reset_auth_rate_limit(request, limiter)
    set_auth_cookies(response, tokens)
    return _session_response(tokens, "Login successful")


@router.post("/refresh", response_model=SessionResponse, response_model_exclude_none=True)
async def refresh(
    request: Request,
    response: Response,
    service: SessionServiceDep,
) -> SessionResponse:
    """
    Rotate the refresh token from the signed cookie.

    On any failure all auth cookies are cleared so the browser does not keep
    retrying a dead grant.
    """
    old_token = read_signed_cookie(request, REFRESH_COOKIE)
    try:
        if not old_token:
            raise InvalidOrExpiredToken("Refresh token missing")
        tokens = await service.refresh_token(old_token)
    except InvalidOrExpiredToken as e:
        clear_auth_cookies(response)
        response.status_code = status.HTTP_401_UNAUTHORIZED
        return SessionResponse(success=False, message=e.message)

    set_user_context(tokens.user.id, tokens.session_id)  # type: ignore[arg-type]
    set_auth_cookies(response, tokens)
    return _session_response(tokens, "Token refreshed")


@router.post(
    "/logout",
    response_model=SessionResponse,
    response_model_exclude_none=True,
    dependencies=RateLimited,
)
async def logout(
    request: Request,
    response: Response,
    service: SessionServiceDep,
) -> SessionResponse:
    """Revoke this device's refresh token (if any) and clear every auth cookie."""
    token = read_signed_cookie(request, REFRESH_COOKIE)
    if token:
        user = await service.get_user_from_refresh_token(token)
        await service.revoke_refresh_token(token)
        logger.info("logout", user_id=user.id if user else None)

    clear_auth_cookies(response)
    response.headers["Clear-Site-Data"] = CLEAR_SITE_DATA
    return SessionResponse(success=True, message="Logged out successfully")


@router.post("/logout-all", response_model=SessionResponse, response_model_exclude_none=True)
async def logout_all(
    current_user: CurrentUser,
    response: Response,
    service: SessionServiceDep,
) -> SessionResponse:
    """Revoke every refresh token of the current user (all devices)."""
    count = await service.revoke_all_user_refresh_tokens(current_user.id)  # type: ignore[arg-type]
    clear_auth_cookies(response)
    response.headers["Clear-Site-Data"] = CLEAR_SITE_DATA
    return SessionResponse(success=True, message=f"Logged out from {count} session(s)")


@router.get("/me", response_model=SessionResponse, response_model_exclude_none=True)
async def me(
    current_user: CurrentUser,
    service: SessionServiceDep,
    token: Annotated[str | None, Depends(get_access_token)],
) -> SessionResponse:
    """Current user and the expiry of the access token used for this request."""
    payload = service.codec.verify_access_token(token) if token else None
    expires_at = isoformat_z(from_epoch_ms(payload.exp * 1000)) if payload else None
    return SessionResponse(
        success=True,
        user=SessionUser.from_user(current_user),
        expires_at=expires_at,
    )


@router.get("/sessions", response_model=SessionListResponse)
async def list_sessions(
    current_user: VerifiedUser,
    service: SessionServiceDep,
) -> SessionListResponse:
    """Live login sessions of the current user, oldest first."""
    records = await service.store.list_active_refresh_tokens(current_user.id)  # type: ignore[arg-type]
    return SessionListResponse(sessions=[ActiveSession.from_record(r) for r in records])


@router.post(
    "/users/{user_id}/logout-all",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def force_logout_user(
    user_id: int,
    admin: AdminUser,
    service: SessionServiceDep,
) -> SessionResponse:
    """Revoke every refresh token of another user (admin only)."""
    count = await service.revoke_all_user_refresh_tokens(user_id)
    logger.info("admin_force_logout", admin_id=admin.id, user_id=user_id, count=count)
    return SessionResponse(success=True, message=f"Revoked {count} session(s)")


@router.post(
    "/register",
    response_model=SessionResponse,
    response_model_exclude_none=True,
    status_code=status.HTTP_201_CREATED,
    dependencies=RateLimited,
)
async def register(
    payload: RegisterRequest,
    registration: RegistrationServiceDep,
) -> SessionResponse:
    """
    Create an unverified account and queue the verification email.

    Email delivery happens in the background worker; a queue outage does not
    fail registration.
    """
    user, token = await registration.register(
        payload.email, payload.password, payload.first_name, payload.last_name
    )
    await enqueue_job("send_verification_email_job", user_id=user.id, token=token)
    return SessionResponse(
        success=True,
        user=SessionUser.from_user(user),
        message="Registration successful. Please check your email to verify your account",
        requires_verification=True,
    )


@router.get(
    "/verify-email",
    response_model=SessionResponse,
    response_model_exclude_none=True,
    dependencies=RateLimited,
)
async def verify_email(
    registration: RegistrationServiceDep,
    token: Annotated[str, Query()] = "",
) -> SessionResponse:
    """Redeem an email verification token."""
    user = await registration.verify_email(token)
    return SessionResponse(
        success=True,
        user=SessionUser.from_user(user),
        message="Email successfully verified",
    )


@router.post(
    "/resend-verification",
    response_model=SessionResponse,
    response_model_exclude_none=True,
    dependencies=RateLimited,
)
async def resend_verification(
    payload: EmailRequest,
    registration: RegistrationServiceDep,
) -> SessionResponse:
    """Issue a new verification link. The answer never reveals whether the email exists."""
    issued = await registration.resend_verification(payload.email)
    if issued is not None:
        user, token = issued
        await enqueue_job("send_verification_email_job", user_id=user.id, token=token)
    return SessionResponse(success=True, message=VERIFICATION_SENT_MESSAGE)


@router.post(
    "/check-verification",
    response_model=SessionResponse,
    response_model_exclude_none=True,
)
async def check_verification(
    payload: EmailRequest,
    registration: RegistrationServiceDep,
) -> SessionResponse:
    """Whether the email is verified; unknown emails report false."""
    return SessionResponse(
        success=True, is_verified=await registration.is_verified(payload.email)
    )
