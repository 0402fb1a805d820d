"""
Pydantic schemas for API responses and requests
"""
from sessionauth.models.user import UserBase  # Re-export from models
from sessionauth.schemas.auth import (
    ActiveSession,
    EmailRequest,
    LoginRequest,
    RegisterRequest,
    SessionListResponse,
    SessionResponse,
    SessionUser,
)

__all__ = [
    "ActiveSession",
    "UserBase",
    "EmailRequest",
    "LoginRequest",
    "RegisterRequest",
    "SessionListResponse",
    "SessionResponse",
    "SessionUser",
]
