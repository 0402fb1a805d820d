"""
Async HTTP client for the auth endpoints.

Wraps an ``httpx.AsyncClient`` whose cookie jar holds the signed token
cookies and the ``auth_status`` marker. Every call returns an ``Ok`` or
``Err``; transport failures become ``Err(NETWORK)`` instead of raising.
"""

from typing import Any

import httpx
import structlog
from pydantic import ValidationError

from sessionauth.client.results import AuthResult, Err, ErrorKind, Ok, UserSnapshot
from sessionauth.utils.clock import parse_iso

logger = structlog.get_logger(__name__)

DEFAULT_PREFIX = "/api/v1/auth"

_KIND_BY_STATUS = {
    401: ErrorKind.UNAUTHORIZED,
    403: ErrorKind.FORBIDDEN,
    409: ErrorKind.VALIDATION,
    422: ErrorKind.VALIDATION,
    429: ErrorKind.RATE_LIMITED,
}


class AuthApiClient:
    def __init__(
        self,
        http: httpx.AsyncClient,
        *,
        prefix: str = DEFAULT_PREFIX,
        marker_cookie: str = "auth_status",
    ) -> None:
        self.http = http
        self.prefix = prefix.rstrip("/")
        self.marker_cookie = marker_cookie

    def marker_present(self) -> bool:
        """Whether the server-set ``auth_status`` marker is in the cookie jar."""
        return self.http.cookies.get(self.marker_cookie) is not None

    async def login(self, email: str, password: str) -> AuthResult:
        result = await self._call("POST", "/login", json={"email": email, "password": password})
        if isinstance(result, Err) and result.kind is ErrorKind.UNAUTHORIZED:
            return Err(ErrorKind.INVALID_CREDENTIALS, result.message)
        return result

    async def refresh(self) -> AuthResult:
        return await self._call("POST", "/refresh")

    async def logout(self) -> AuthResult:
        return await self._call("POST", "/logout")

    async def logout_all(self) -> AuthResult:
        return await self._call("POST", "/logout-all")

    async def me(self) -> AuthResult:
        return await self._call("GET", "/me")

    async def _call(self, method: str, path: str, **kwargs: Any) -> AuthResult:
        try:
            response = await self.http.request(method, f"{self.prefix}{path}", **kwargs)
        except httpx.HTTPError as e:
            logger.warning("auth_request_failed", path=path, error_type=type(e).__name__)
            return Err(ErrorKind.NETWORK, str(e) or type(e).__name__)

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = str(body.get("message") or response.reason_phrase or "")

        if response.is_success and body.get("success", True):
            return self._ok(body, message)

        if body.get("requiresVerification"):
            return Err(ErrorKind.EMAIL_NOT_VERIFIED, message, email=body.get("email"))

        kind = _KIND_BY_STATUS.get(response.status_code, ErrorKind.SERVER)
        return Err(kind, message, errors=body.get("errors") or {})

    @staticmethod
    def _ok(body: dict[str, Any], message: str) -> AuthResult:
        user = None
        if body.get("user"):
            try:
                user = UserSnapshot.model_validate(body["user"])
            except ValidationError as e:
                logger.warning("auth_response_malformed", error=str(e))
                return Err(ErrorKind.SERVER, "Malformed user in response")
        expires_at = parse_iso(body["expiresAt"]) if body.get("expiresAt") else None
        return Ok(user=user, expires_at=expires_at, message=message or None)
