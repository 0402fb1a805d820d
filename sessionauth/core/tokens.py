"""
JWT signing and verification for access and refresh tokens.

Access tokens are short-lived (15 minutes) and carry the user's identity,
role and an optional request fingerprint. Refresh tokens are long-lived and
are only honoured while a matching, non-revoked database record exists; the
signature alone is necessary but not sufficient.

Both kinds share one payload shape and are distinguished by a ``type`` claim
and by being signed with different secrets. Verification never raises for a
bad token: it returns ``None`` and the caller treats that as
"unauthenticated".
"""

import secrets
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Protocol

import jwt

from sessionauth.config import Settings, settings
from sessionauth.core.errors import TokenConfigurationError

ACCESS = "access"
REFRESH = "refresh"


class TokenSubject(Protocol):
    """Anything with the identity fields a token needs."""

    id: int | None
    email: str
    role: str


@dataclass(frozen=True)
class Fingerprint:
    """Request context recorded alongside a grant for audit purposes."""

    user_agent: str = ""
    ip_address: str = ""
    family: str = ""

    def as_claim(self) -> dict[str, str]:
        return {
            "user_agent": self.user_agent,
            "ip_address": self.ip_address,
            "family": self.family,
        }


@dataclass(frozen=True)
class IssuedToken:
    token: str
    expires_at_ms: int
    jti: str

    @property
    def expires_at(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at_ms / 1000, tz=UTC)


@dataclass(frozen=True)
class TokenPayload:
    sub: str
    email: str
    role: str
    jti: str
    type: str
    exp: int
    fingerprint: Fingerprint | None = None

    @property
    def user_id(self) -> int | None:
        try:
            return int(self.sub)
        except ValueError:
            return None


def generate_jti() -> str:
    """Fresh token identifier; 128 bits of randomness."""
    return secrets.token_urlsafe(16)


class TokenCodec:
    """Stateless signer/verifier configured with two secrets."""

    def __init__(
        self,
        access_secret: str,
        refresh_secret: str,
        *,
        algorithm: str = "HS256",
        audience: str = "app-users",
        issuer: str = "auth-service",
        access_ttl: timedelta = timedelta(minutes=15),
        refresh_ttl: timedelta = timedelta(days=30),
    ) -> None:
        self.access_secret = access_secret
        self.refresh_secret = refresh_secret
        self.algorithm = algorithm
        self.audience = audience
        self.issuer = issuer
        self.access_ttl = access_ttl
        self.refresh_ttl = refresh_ttl

    @classmethod
    def from_settings(cls, config: Settings = settings) -> "TokenCodec":
        return cls(
            config.ACCESS_TOKEN_SECRET,
            config.REFRESH_TOKEN_SECRET,
            algorithm=config.JWT_ALGORITHM,
            audience=config.JWT_AUDIENCE,
            issuer=config.JWT_ISSUER,
            access_ttl=timedelta(minutes=config.ACCESS_TOKEN_EXPIRE_MINUTES),
            refresh_ttl=timedelta(days=config.REFRESH_TOKEN_EXPIRE_DAYS),
        )

    def issue_access_token(
        self, user: TokenSubject, fingerprint: Fingerprint | None = None
    ) -> IssuedToken:
        """Sign a 15-minute access token, optionally carrying a fingerprint."""
        extra: dict[str, Any] = {}
        if fingerprint is not None:
            extra["fingerprint"] = fingerprint.as_claim()
        return self._issue(user, ACCESS, self.access_secret, self.access_ttl, extra)

    def issue_refresh_token(self, user: TokenSubject) -> IssuedToken:
        """Sign a refresh token. Must be persisted by the caller to be usable."""
        return self._issue(user, REFRESH, self.refresh_secret, self.refresh_ttl, {})

    def verify_access_token(self, token: str) -> TokenPayload | None:
        return self._verify(token, ACCESS, self.access_secret)

    def verify_refresh_token(self, token: str) -> TokenPayload | None:
        return self._verify(token, REFRESH, self.refresh_secret)

    def _issue(
        self,
        user: TokenSubject,
        token_type: str,
        secret: str,
        ttl: timedelta,
        extra: dict[str, Any],
    ) -> IssuedToken:
        if not secret:
            raise TokenConfigurationError(f"{token_type} token secret is not configured")
        if user.id is None:
            raise ValueError("User ID cannot be None")

        now = datetime.now(UTC)
        expire = now + ttl
        jti = generate_jti()
        payload: dict[str, Any] = {
            "sub": str(user.id),
            "email": user.email,
            "role": user.role,
            "jti": jti,
            "type": token_type,
            "iat": now,
            "nbf": now,
            "exp": expire,
            "aud": self.audience,
            "iss": self.issuer,
            **extra,
        }

        try:
            token = jwt.encode(payload, secret, algorithm=self.algorithm)
        except (jwt.InvalidKeyError, NotImplementedError) as e:
            raise TokenConfigurationError(str(e)) from e

        # JWT "exp" is whole seconds; report the same instant the token carries
        return IssuedToken(token=token, expires_at_ms=int(expire.timestamp()) * 1000, jti=jti)

    def _verify(self, token: str, token_type: str, secret: str) -> TokenPayload | None:
        if not token or not secret:
            return None
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                audience=self.audience,
                issuer=self.issuer,
                options={
                    "verify_signature": True,
                    "verify_exp": True,
                    "require": ["exp", "sub", "jti"],
                },
            )
        except jwt.PyJWTError:
            return None

        if claims.get("type") != token_type:
            return None

        fingerprint = None
        raw_fingerprint = claims.get("fingerprint")
        if isinstance(raw_fingerprint, dict):
            fingerprint = Fingerprint(
                user_agent=str(raw_fingerprint.get("user_agent", "")),
                ip_address=str(raw_fingerprint.get("ip_address", "")),
                family=str(raw_fingerprint.get("family", "")),
            )

        try:
            return TokenPayload(
                sub=str(claims["sub"]),
                email=str(claims.get("email", "")),
                role=str(claims.get("role", "")),
                jti=str(claims["jti"]),
                type=token_type,
                exp=int(claims["exp"]),
                fingerprint=fingerprint,
            )
        except (TypeError, ValueError):
            return None
