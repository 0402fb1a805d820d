"""
SQLModel-based User models with inheritance for security

UserBase (shared public fields)
    ├─> Users (database table, adds password hash and timestamps)
    └─> SessionUser (API schema, defined in sessionauth/schemas)

Users are created by registration and mutated only by verification and
role management. The session lifecycle reads them; it never writes them.
"""

from datetime import datetime

from sqlalchemy import Index
from sqlmodel import Field, SQLModel

from sessionauth.config import UserRole
from sessionauth.utils.clock import utc_now


class UserBase(SQLModel):
    """
    Base model with shared public fields for Users.

    These fields are safe to expose via the API.
    """

    email: str = Field(max_length=255)
    first_name: str | None = Field(default=None, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    role: str = Field(default=UserRole.USER, max_length=20)
    is_verified: bool = Field(default=False)


class Users(UserBase, table=True):
    """
    Database table for users.

    Internal/sensitive fields (should NOT be exposed via public API):
    - password_hash: bcrypt hash (highly sensitive)
    """

    __tablename__ = "users"

    __table_args__ = (Index("idx_users_email", "email", unique=True),)

    id: int | None = Field(default=None, primary_key=True)

    # Authentication (highly sensitive - never expose)
    password_hash: str = Field(max_length=255)

    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @property
    def is_admin(self) -> bool:
        return self.role in UserRole.ADMINS
