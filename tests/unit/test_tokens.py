"""Tests for access/refresh token signing and verification."""

import time
from datetime import UTC, datetime, timedelta

import jwt
import pytest

from sessionauth.core.errors import TokenConfigurationError
from sessionauth.core.tokens import ACCESS, REFRESH, Fingerprint, TokenCodec
from sessionauth.models.user import Users


@pytest.fixture
def user() -> Users:
    return Users(id=42, email="alice@example.com", role="user", password_hash="x")


@pytest.mark.unit
class TestIssue:
    """Tests for issue_access_token / issue_refresh_token."""

    def test_access_token_round_trip(self, codec: TokenCodec, user: Users):
        """A freshly issued access token verifies and carries the user's identity."""
        issued = codec.issue_access_token(user)
        payload = codec.verify_access_token(issued.token)

        assert payload is not None
        assert payload.user_id == 42
        assert payload.email == "alice@example.com"
        assert payload.role == "user"
        assert payload.type == ACCESS
        assert payload.jti == issued.jti
        assert payload.fingerprint is None

    def test_access_token_expires_in_fifteen_minutes(self, codec: TokenCodec, user: Users):
        """Reported expiry is ~15 minutes out and matches the exp claim."""
        before = int(time.time() * 1000)
        issued = codec.issue_access_token(user)
        payload = codec.verify_access_token(issued.token)

        assert payload is not None
        assert payload.exp * 1000 == issued.expires_at_ms
        delta = issued.expires_at_ms - before
        assert 14 * 60 * 1000 <= delta <= 15 * 60 * 1000 + 1000

    def test_access_token_carries_fingerprint(self, codec: TokenCodec, user: Users):
        fingerprint = Fingerprint(
            user_agent="Mozilla/5.0 Firefox/120", ip_address="10.0.0.1", family="Firefox"
        )
        issued = codec.issue_access_token(user, fingerprint)
        payload = codec.verify_access_token(issued.token)

        assert payload is not None
        assert payload.fingerprint == fingerprint

    def test_refresh_token_uses_configured_lifetime(self, codec: TokenCodec, user: Users):
        issued = codec.issue_refresh_token(user)
        payload = codec.verify_refresh_token(issued.token)

        assert payload is not None
        assert payload.type == REFRESH
        remaining = issued.expires_at - datetime.now(UTC)
        assert timedelta(days=29, hours=23) < remaining <= timedelta(days=30)

    def test_consecutive_tokens_differ(self, codec: TokenCodec, user: Users):
        """Two tokens minted in the same second are still distinct."""
        first = codec.issue_refresh_token(user)
        second = codec.issue_refresh_token(user)

        assert first.jti != second.jti
        assert first.token != second.token

    def test_user_without_id_rejected(self, codec: TokenCodec):
        with pytest.raises(ValueError):
            codec.issue_access_token(Users(email="x@example.com", password_hash="x"))

    def test_missing_secret_raises_configuration_error(self, user: Users):
        codec = TokenCodec("", "refresh-secret-0123456789abcdef0123")

        with pytest.raises(TokenConfigurationError):
            codec.issue_access_token(user)


@pytest.mark.unit
class TestVerify:
    """Tests for verify_access_token / verify_refresh_token."""

    def test_access_token_rejected_as_refresh(self, codec: TokenCodec, user: Users):
        """Different secrets mean one kind never verifies as the other."""
        access = codec.issue_access_token(user)
        refresh = codec.issue_refresh_token(user)

        assert codec.verify_refresh_token(access.token) is None
        assert codec.verify_access_token(refresh.token) is None

    def test_type_claim_checked_even_with_shared_secret(self, user: Users):
        shared = "shared-secret-0123456789abcdef0123456"
        codec = TokenCodec(shared, shared)

        refresh = codec.issue_refresh_token(user)

        assert codec.verify_access_token(refresh.token) is None
        assert codec.verify_refresh_token(refresh.token) is not None

    def test_expired_token_rejected(self, user: Users):
        codec = TokenCodec(
            "access-secret-0123456789abcdef01234",
            "refresh-secret-0123456789abcdef0123",
            access_ttl=timedelta(seconds=-1),
        )
        issued = codec.issue_access_token(user)

        assert codec.verify_access_token(issued.token) is None

    def test_tampered_token_rejected(self, codec: TokenCodec, user: Users):
        issued = codec.issue_access_token(user)
        header, payload, signature = issued.token.split(".")
        tampered = f"{header}.{payload}.{signature[:-2]}xx"

        assert codec.verify_access_token(tampered) is None

    def test_wrong_audience_rejected(self, codec: TokenCodec, user: Users):
        other = TokenCodec(
            codec.access_secret, codec.refresh_secret, audience="someone-else"
        )
        issued = other.issue_access_token(user)

        assert codec.verify_access_token(issued.token) is None

    def test_missing_jti_rejected(self, codec: TokenCodec):
        token = jwt.encode(
            {
                "sub": "1",
                "type": ACCESS,
                "exp": datetime.now(UTC) + timedelta(minutes=5),
                "aud": codec.audience,
                "iss": codec.issuer,
            },
            codec.access_secret,
            algorithm="HS256",
        )

        assert codec.verify_access_token(token) is None

    def test_garbage_and_empty_rejected(self, codec: TokenCodec):
        assert codec.verify_access_token("") is None
        assert codec.verify_access_token("not-a-jwt") is None
        assert codec.verify_refresh_token("a.b.c") is None
