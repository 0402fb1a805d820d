"""Tests for settings parsing and config constants."""

import pytest
from pydantic import ValidationError

from sessionauth.config import Settings, UserRole

REQUIRED = {
    "ACCESS_TOKEN_SECRET": "a" * 32,
    "REFRESH_TOKEN_SECRET": "b" * 32,
    "COOKIE_SECRET": "c" * 32,
    "DATABASE_URL": "mysql+aiomysql://u:p@localhost/db",
}


class TestSettings:
    def test_defaults(self) -> None:
        config = Settings(**REQUIRED)

        assert config.ACCESS_TOKEN_EXPIRE_MINUTES == 15
        assert config.REFRESH_TOKEN_EXPIRE_DAYS == 30
        assert config.REVOKE_SESSION_ON_REUSE is False
        assert config.AUTH_RATE_LIMIT == 5
        assert config.AUTH_RATE_WINDOW_SECONDS == 900

    def test_cors_origins_from_comma_separated_string(self) -> None:
        config = Settings(**REQUIRED, CORS_ORIGINS="https://a.example, https://b.example")

        assert config.CORS_ORIGINS == ["https://a.example", "https://b.example"]

    @pytest.mark.parametrize(
        ("environment", "secure"),
        [("development", False), ("staging", False), ("production", True)],
    )
    def test_secure_cookies_only_in_production(self, environment: str, secure: bool) -> None:
        assert Settings(**REQUIRED, ENVIRONMENT=environment).secure_cookies is secure

    def test_unknown_environment_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Settings(**REQUIRED, ENVIRONMENT="qa")

    def test_bcrypt_rounds_bounds(self) -> None:
        with pytest.raises(ValidationError):
            Settings(**REQUIRED, BCRYPT_ROUNDS=3)


class TestUserRole:
    def test_admins(self) -> None:
        assert UserRole.ADMINS == ("admin", "super_admin")
        assert UserRole.USER not in UserRole.ADMINS
        assert set(UserRole.ALL) == {"user", "admin", "super_admin"}
