"""
Application Configuration
Uses Pydantic Settings for environment-based configuration
"""

from dotenv import load_dotenv
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    # Application
    PROJECT_NAME: str = "Session Auth API"
    VERSION: str = "1.0.0"
    ENVIRONMENT: str = Field(default="development", pattern="^(development|staging|production)$")
    DEBUG: bool = Field(default=False)
    API_V1_STR: str = "/api/v1"

    # Token signing
    ACCESS_TOKEN_SECRET: str
    REFRESH_TOKEN_SECRET: str
    JWT_ALGORITHM: str = "HS256"
    JWT_AUDIENCE: str = "app-users"
    JWT_ISSUER: str = "auth-service"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 15
    REFRESH_TOKEN_EXPIRE_DAYS: int = 30
    REVOKE_SESSION_ON_REUSE: bool = False

    # Cookie signing
    COOKIE_SECRET: str
    AUTH_STATUS_COOKIE: str = "auth_status"

    # Password hashing
    BCRYPT_ROUNDS: int = Field(default=12, ge=4, le=31)

    # Email verification
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24

    # CORS
    # Allow str because it can be a comma-separated string in .env
    CORS_ORIGINS: str | list[str] = Field(
        default=["http://localhost:5173", "http://localhost:3000"]
    )

    # Database
    DATABASE_URL: str
    DB_POOL_SIZE: int = 20
    DB_MAX_OVERFLOW: int = 10
    DB_ECHO: bool = False
    DB_AUTO_CREATE: bool = False

    # Redis
    REDIS_URL: str = Field(default="redis://localhost:6379/0")

    # Background jobs (arq)
    ARQ_REDIS_URL: str = Field(default="redis://localhost:6379/1")
    ARQ_MAX_TRIES: int = 3
    ARQ_KEEP_RESULT: int = 3600

    # Rate Limiting
    RATE_LIMIT_BACKEND: str = Field(default="memory", pattern="^(memory|redis)$")
    AUTH_RATE_LIMIT: int = 5
    AUTH_RATE_WINDOW_SECONDS: int = 15 * 60
    RATE_LIMIT_SWEEP_SECONDS: int = 60
    RATE_LIMIT_IDLE_SECONDS: int = 60 * 60
    ENABLE_DEV_RATE_LIMIT: bool = False

    # Email (for verification links)
    SMTP_HOST: str | None = None
    SMTP_PORT: int = 587
    SMTP_USER: str | None = None
    SMTP_PASSWORD: str | None = None
    SMTP_TLS: bool = False
    SMTP_STARTTLS: bool = True
    SMTP_FROM_EMAIL: str = "noreply@example.com"
    SMTP_FROM_NAME: str = "Todo App"

    # Logging
    LOG_LEVEL: str = "INFO"

    # Frontend URL (for email links)
    FRONTEND_URL: str = "http://localhost:5173"

    @field_validator("CORS_ORIGINS", mode="before")
    @classmethod
    def parse_cors_origins(cls, v: str | list[str]) -> list[str]:
        """Parse CORS origins from comma-separated string"""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    @property
    def secure_cookies(self) -> bool:
        return self.ENVIRONMENT == "production"


# Create global settings instance

load_dotenv()
settings = Settings()  # type: ignore[call-arg]


class UserRole:
    """User role constants"""

    USER = "user"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    ALL = (USER, ADMIN, SUPER_ADMIN)
    ADMINS = (ADMIN, SUPER_ADMIN)
