"""
Authentication schemas for request/response validation.

This module defines Pydantic models for the auth API:
- Login credentials and registration
- Email verification requests
- The session response shared by login, refresh and /me

Response fields are camelCase on the wire (``expiresAt``, ``isVerified``)
and snake_case in Python.
"""

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator
from pydantic.alias_generators import to_camel

from sessionauth.core.security import validate_password_strength
from sessionauth.models.refresh_token import RefreshTokens
from sessionauth.models.user import Users
from sessionauth.utils.clock import isoformat_z


class CamelModel(BaseModel):
    """Base for wire models: camelCase aliases, snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class LoginRequest(BaseModel):
    """Request schema for user login."""

    email: EmailStr
    password: str = Field(..., min_length=1, max_length=255)


class RegisterRequest(CamelModel):
    """Request schema for user registration. Role is always ``user``."""

    email: EmailStr
    password: str = Field(..., min_length=8, max_length=255)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        """Validate password strength."""
        is_valid, error_message = validate_password_strength(v)
        if not is_valid:
            raise ValueError(error_message)
        return v


class EmailRequest(BaseModel):
    """Request schema carrying just an email (resend / check verification)."""

    email: EmailStr


class SessionUser(CamelModel):
    """Public view of a user as returned by the auth endpoints."""

    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: str
    is_verified: bool

    @classmethod
    def from_user(cls, user: Users) -> "SessionUser":
        return cls(
            id=user.id,  # type: ignore[arg-type]
            email=user.email,
            first_name=user.first_name,
            last_name=user.last_name,
            role=user.role,
            is_verified=user.is_verified,
        )


class SessionResponse(CamelModel):
    """
    Response envelope for every auth endpoint.

    ``expires_at`` is the access token expiry, ISO 8601 UTC with a ``Z``
    suffix. ``errors`` maps field names to messages on validation failure.
    """

    success: bool
    user: SessionUser | None = None
    expires_at: str | None = None
    message: str | None = None
    errors: dict[str, list[str]] | None = None
    requires_verification: bool | None = None
    email: str | None = None
    is_verified: bool | None = None


class ActiveSession(CamelModel):
    """One live login session (the current refresh grant of its chain)."""

    id: int
    session_id: str
    family: str | None = None
    ip_address: str | None = None
    user_agent: str | None = None
    created_at: str
    expires_at: str

    @classmethod
    def from_record(cls, record: RefreshTokens) -> "ActiveSession":
        return cls(
            id=record.id,  # type: ignore[arg-type]
            session_id=record.session_id,
            family=record.family,
            ip_address=record.ip_address,
            user_agent=record.user_agent,
            created_at=isoformat_z(record.created_at),
            expires_at=isoformat_z(record.expires_at),
        )


class SessionListResponse(CamelModel):
    success: bool = True
    sessions: list[ActiveSession]
