"""
Error taxonomy for the session lifecycle.

Credential and token errors are recoverable, user-facing failures that the
API layer turns into structured responses. ``StoreUnavailable`` is fatal for
the current call and is propagated unchanged; the session logic never
retries it.
"""


class AuthError(Exception):
    """Base class for auth errors mapped to HTTP responses."""

    status_code: int = 401
    error_code: str = "unauthorized"
    default_message: str = "Authentication required"
    # Request field the error is reported against, if any
    field: str | None = None

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidCredentials(AuthError):
    """Wrong email or password. One message for both cases."""

    default_message = "Invalid email or password"


class InvalidOrExpiredToken(AuthError):
    """Bad signature, expired, or no active record backing the token."""

    error_code = "invalid_token"
    default_message = "Invalid or expired refresh token"


class TokenReuseDetected(InvalidOrExpiredToken):
    """
    A rotated refresh token was presented again.

    Shares the externally visible message of ``InvalidOrExpiredToken`` so
    callers cannot tell the two apart. Carries the owner and session chain so
    a handler can escalate if needed.
    """

    def __init__(self, user_id: int | None = None, session_id: str | None = None) -> None:
        super().__init__()
        self.user_id = user_id
        self.session_id = session_id


class Forbidden(AuthError):
    """Authenticated but not allowed."""

    status_code = 403
    error_code = "forbidden"
    default_message = "Forbidden"


class EmailNotVerified(Forbidden):
    """Credentials are correct but the email address is not verified yet."""

    error_code = "email_not_verified"
    default_message = "Email not verified. Please check your email for the verification link."

    def __init__(self, email: str, message: str | None = None) -> None:
        super().__init__(message)
        self.email = email


class EmailAlreadyRegistered(AuthError):
    """Registration attempted with an email that already has an account."""

    status_code = 409
    error_code = "conflict"
    field = "email"
    default_message = "Email already exists"


class InvalidVerificationToken(AuthError):
    """Email verification token unknown, used, or expired."""

    status_code = 400
    error_code = "invalid_verification_token"
    field = "token"
    default_message = "Verification token has expired"


class StoreUnavailable(Exception):
    """The credential store could not complete an operation."""

    status_code = 503

    def __init__(self, operation: str, cause: Exception | None = None) -> None:
        super().__init__(f"Credential store unavailable during {operation}")
        self.operation = operation
        self.cause = cause


class TokenConfigurationError(RuntimeError):
    """Signing keys are missing or unusable. Not recoverable at runtime."""


class RateLimitExceeded(AuthError):
    """Too many attempts for one client/email pair within the window."""

    status_code = 429
    error_code = "rate_limit_exceeded"
    default_message = "Too many attempts, please try again later."

    def __init__(self, retry_after: int, headers: dict[str, str] | None = None) -> None:
        super().__init__()
        self.retry_after = retry_after
        self.headers = {**(headers or {}), "Retry-After": str(retry_after)}
