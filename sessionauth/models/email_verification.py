"""
SQLModel-based EmailVerification model.

One-time tokens sent by email after registration. Issuing a new token marks
all earlier tokens for the user as used.
"""

from datetime import datetime

from sqlalchemy import ForeignKeyConstraint, Index
from sqlmodel import Field, SQLModel

from sessionauth.utils.clock import utc_now


class EmailVerifications(SQLModel, table=True):
    """Database table for email verification tokens."""

    __tablename__ = "email_verifications"

    __table_args__ = (
        ForeignKeyConstraint(
            ["user_id"],
            ["users.id"],
            ondelete="CASCADE",
            name="fk_email_verifications_user_id",
        ),
        Index("idx_email_verifications_token", "token", unique=True),
    )

    id: int | None = Field(default=None, primary_key=True)
    user_id: int
    token: str = Field(max_length=255)
    expires_at: datetime
    is_used: bool = Field(default=False)
    created_at: datetime = Field(default_factory=utc_now)
