"""Tests for the client-side session cache and its reconciliation rules."""

import json
from datetime import datetime, timedelta

import pytest

from sessionauth.client.cache import (
    ACCESS_TOKEN_LIFETIME,
    CacheSource,
    FileSessionCache,
    MemorySessionCache,
    SessionCacheEntry,
    estimate_expiry,
    reconcile,
)
from sessionauth.client.results import UserSnapshot

NOW = datetime(2024, 5, 1, 12, 0, 0)


@pytest.fixture
def user() -> UserSnapshot:
    return UserSnapshot(
        id=7,
        email="alice@example.com",
        first_name="Alice",
        role="user",
        is_verified=True,
    )


def _entry(user: UserSnapshot, expires_in: timedelta, **kwargs) -> SessionCacheEntry:
    return SessionCacheEntry(user=user, expires_at=NOW + expires_in, **kwargs)


@pytest.mark.unit
class TestReconcile:
    def test_nothing_cached(self):
        assert reconcile(None, marker_present=True, now=NOW) is None

    def test_marker_missing_discards(self, user: UserSnapshot):
        entry = _entry(user, timedelta(minutes=10))

        assert reconcile(entry, marker_present=False, now=NOW) is None

    def test_far_future_without_marker_discarded(self, user: UserSnapshot):
        """Without the marker an implausible expiry is dropped, not corrected."""
        entry = _entry(user, timedelta(minutes=25))

        assert reconcile(entry, marker_present=False, now=NOW) is None

    def test_plausible_entry_kept(self, user: UserSnapshot):
        entry = _entry(user, timedelta(minutes=10))

        assert reconcile(entry, marker_present=True, now=NOW) is entry

    def test_exactly_twenty_minutes_is_plausible(self, user: UserSnapshot):
        entry = _entry(user, timedelta(minutes=20))

        assert reconcile(entry, marker_present=True, now=NOW) is entry

    def test_far_future_expiry_corrected(self, user: UserSnapshot):
        """An expiry more than 20 minutes out cannot belong to a 15-minute token."""
        entry = _entry(user, timedelta(minutes=20, seconds=1))

        corrected = reconcile(entry, marker_present=True, now=NOW)

        assert corrected is not None
        assert corrected.expires_at == NOW + ACCESS_TOKEN_LIFETIME
        assert corrected.user == user

    def test_past_expiry_with_marker_corrected(self, user: UserSnapshot):
        entry = _entry(user, timedelta(minutes=-5))

        corrected = reconcile(entry, marker_present=True, now=NOW)

        assert corrected is not None
        assert corrected.expires_at == NOW + ACCESS_TOKEN_LIFETIME

    def test_recent_refresh_anchors_estimate(self, user: UserSnapshot):
        """A refresh two minutes ago means the token expires 13 minutes from now."""
        entry = _entry(
            user,
            timedelta(hours=2),
            last_successful_refresh=NOW - timedelta(minutes=2),
        )

        corrected = reconcile(entry, marker_present=True, now=NOW)

        assert corrected is not None
        assert corrected.expires_at == NOW + timedelta(minutes=13)


@pytest.mark.unit
class TestEstimateExpiry:
    def test_old_refresh_ignored(self, user: UserSnapshot):
        entry = _entry(user, timedelta(0), last_successful_refresh=NOW - timedelta(minutes=6))

        assert estimate_expiry(entry, NOW) == NOW + ACCESS_TOKEN_LIFETIME

    def test_future_refresh_ignored(self, user: UserSnapshot):
        entry = _entry(user, timedelta(0), last_successful_refresh=NOW + timedelta(minutes=1))

        assert estimate_expiry(entry, NOW) == NOW + ACCESS_TOKEN_LIFETIME


@pytest.mark.unit
class TestSerialization:
    def test_camel_case_wire_format(self, user: UserSnapshot):
        entry = _entry(user, timedelta(minutes=15), source=CacheSource.API)

        data = entry.to_dict()

        assert data["expiresAt"] == "2024-05-01T12:15:00.000Z"
        assert data["source"] == "api"
        assert data["user"]["isVerified"] is True
        assert data["user"]["firstName"] == "Alice"
        assert data["lastSuccessfulRefresh"] is None

    def test_from_dict_inverts_to_dict(self, user: UserSnapshot):
        entry = _entry(
            user,
            timedelta(minutes=15),
            source=CacheSource.SERVER,
            last_successful_refresh=NOW,
        )

        assert SessionCacheEntry.from_dict(entry.to_dict()) == entry

    def test_from_dict_requires_expiry(self, user: UserSnapshot):
        with pytest.raises(ValueError):
            SessionCacheEntry.from_dict({"user": user.model_dump(by_alias=True)})


@pytest.mark.unit
class TestStores:
    def test_memory(self, user: UserSnapshot):
        cache = MemorySessionCache()
        entry = _entry(user, timedelta(minutes=5))

        cache.save(entry)
        assert cache.load() is entry
        cache.clear()
        assert cache.load() is None

    def test_file_round_trip(self, tmp_path, user: UserSnapshot):
        cache = FileSessionCache(tmp_path / "state" / "session.json")
        entry = _entry(user, timedelta(minutes=5), last_successful_refresh=NOW)

        cache.save(entry)

        assert FileSessionCache(tmp_path / "state" / "session.json").load() == entry
        assert not (tmp_path / "state" / "session.json.tmp").exists()

    def test_file_missing(self, tmp_path):
        assert FileSessionCache(tmp_path / "absent.json").load() is None

    def test_file_clear_is_idempotent(self, tmp_path, user: UserSnapshot):
        cache = FileSessionCache(tmp_path / "session.json")
        cache.save(_entry(user, timedelta(minutes=5)))

        cache.clear()
        cache.clear()

        assert cache.load() is None

    @pytest.mark.parametrize(
        "content",
        [
            "not json",
            json.dumps({"expiresAt": "2024-05-01T12:15:00.000Z"}),
            json.dumps({"user": {"id": 1}, "expiresAt": "2024-05-01T12:15:00.000Z"}),
            json.dumps([1, 2, 3]),
        ],
    )
    def test_corrupt_file_treated_as_empty(self, tmp_path, content: str):
        path = tmp_path / "session.json"
        path.write_text(content, encoding="utf-8")

        assert FileSessionCache(path).load() is None
        assert not path.exists()
