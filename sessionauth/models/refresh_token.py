"""
SQLModel-based RefreshToken model.

One row per refresh-token grant. Rows are never deleted by rotation: the
superseded row is marked revoked and the new row points back at it through
``parent_token_id``. All rows minted from one login share a ``session_id``,
and at most one row per ``session_id`` is unrevoked at any time.

Security features:
- Unique token value (the serialization boundary for concurrent rotation)
- Monotonic revoked flag with revoked_at timestamp
- User agent, IP and browser family recorded for auditing
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index, Text
from sqlmodel import Field, SQLModel

from sessionauth.utils.clock import utc_now


class RefreshTokens(SQLModel, table=True):
    """Database table for refresh token grants."""

    __tablename__ = "refresh_tokens"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            ondelete="CASCADE",
            name="fk_refresh_tokens_user_id",
        ),
        Index("idx_refresh_tokens_user_id", "user_id"),
        Index("idx_refresh_tokens_token", "token", unique=True, mysql_length=255),
        Index("idx_refresh_tokens_session_id", "session_id"),
    )

    id: int | None = Field(default=None, primary_key=True)

    user_id: int

    # Signed refresh JWT as issued to the client
    token: str = Field(sa_type=Text)

    # Rotation chain: every token minted from one login shares session_id
    session_id: str = Field(max_length=64)
    parent_token_id: int | None = Field(default=None)

    expires_at: datetime
    created_at: datetime = Field(default_factory=utc_now)

    # Revocation (monotonic false -> true)
    revoked: bool = Field(default=False)
    revoked_at: datetime | None = Field(default=None)

    # Binding metadata
    user_agent: str | None = Field(default=None, sa_type=Text)
    ip_address: str | None = Field(default=None, max_length=45)  # Supports IPv6
    family: str | None = Field(default=None, max_length=50)

    def is_active(self, now: datetime | None = None) -> bool:
        return not self.revoked and self.expires_at > (now or utc_now())
