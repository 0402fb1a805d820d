"""
SQLModel table models.

Importing this package registers every table with ``SQLModel.metadata``.
"""

from sessionauth.models.email_verification import EmailVerifications
from sessionauth.models.refresh_token import RefreshTokens
from sessionauth.models.user import Users

__all__ = [
    "EmailVerifications",
    "RefreshTokens",
    "Users",
]
