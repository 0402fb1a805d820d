"""
Tagged results returned by the client API.

A call either produced a session (``Ok``) or did not (``Err``). ``Err.kind``
says why, so callers branch on the kind instead of on optional fields.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import StrEnum

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class UserSnapshot(BaseModel):
    """User as reported by the server. Read-only copy, never authoritative."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    id: int
    email: str
    first_name: str | None = None
    last_name: str | None = None
    role: str
    is_verified: bool


class ErrorKind(StrEnum):
    INVALID_CREDENTIALS = "invalid_credentials"
    EMAIL_NOT_VERIFIED = "email_not_verified"
    UNAUTHORIZED = "unauthorized"
    FORBIDDEN = "forbidden"
    RATE_LIMITED = "rate_limited"
    VALIDATION = "validation"
    SERVER = "server"
    NETWORK = "network"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Ok:
    user: UserSnapshot | None
    expires_at: datetime | None = None
    message: str | None = None


@dataclass(frozen=True)
class Err:
    kind: ErrorKind
    message: str
    email: str | None = None
    errors: dict[str, list[str]] = field(default_factory=dict)

    @property
    def is_rejection(self) -> bool:
        """The server answered and refused (as opposed to not answering)."""
        return self.kind not in (ErrorKind.NETWORK, ErrorKind.SERVER, ErrorKind.CANCELLED)


AuthResult = Ok | Err
