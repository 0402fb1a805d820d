"""
Local session cache for clients.

The cache mirrors ``{user, expires_at, source}`` so a client can show who is
logged in without a round trip. It is a hint, never the truth: the real
tokens live in HTTP-only cookies the client cannot read, and the
``auth_status`` marker cookie decides whether a cached session is still
plausible.

``reconcile`` applies that rule on load:

- marker absent -> cached session is discarded
- cached expiry more than 20 minutes ahead, or already past while the marker
  says authenticated -> expiry is replaced by a conservative estimate
"""

import json
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from enum import StrEnum
from pathlib import Path
from typing import Any, Protocol

import structlog

from sessionauth.client.results import UserSnapshot
from sessionauth.utils.clock import isoformat_z, parse_iso, utc_now

logger = structlog.get_logger(__name__)

ACCESS_TOKEN_LIFETIME = timedelta(minutes=15)
MAX_PLAUSIBLE_EXPIRY = timedelta(minutes=20)
RECENT_REFRESH_WINDOW = timedelta(minutes=5)


class CacheSource(StrEnum):
    """Where a cached session snapshot came from."""

    SERVER = "server"
    CLIENT = "client"
    API = "api"


@dataclass(frozen=True)
class SessionCacheEntry:
    user: UserSnapshot
    expires_at: datetime
    source: CacheSource = CacheSource.CLIENT
    last_successful_refresh: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "user": self.user.model_dump(by_alias=True),
            "expiresAt": isoformat_z(self.expires_at),
            "source": self.source.value,
            "lastSuccessfulRefresh": (
                isoformat_z(self.last_successful_refresh)
                if self.last_successful_refresh
                else None
            ),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "SessionCacheEntry":
        """
        Rebuild an entry from ``to_dict`` output.

        Raises:
            ValueError: Missing or malformed fields
        """
        if not isinstance(data, dict):
            raise ValueError("cached session is not an object")
        expires_at = parse_iso(str(data.get("expiresAt", "")))
        if expires_at is None:
            raise ValueError("cached session has no usable expiresAt")
        last_refresh = data.get("lastSuccessfulRefresh")
        return cls(
            user=UserSnapshot.model_validate(data["user"]),
            expires_at=expires_at,
            source=CacheSource(data.get("source", CacheSource.CLIENT)),
            last_successful_refresh=parse_iso(last_refresh) if last_refresh else None,
        )


def estimate_expiry(entry: SessionCacheEntry, now: datetime) -> datetime:
    """
    Conservative access-token expiry when the cached one cannot be trusted.

    A refresh within the last five minutes means the token expires one
    lifetime after it; otherwise assume one lifetime from now.
    """
    last = entry.last_successful_refresh
    if last is not None and timedelta(0) <= now - last < RECENT_REFRESH_WINDOW:
        return last + ACCESS_TOKEN_LIFETIME
    return now + ACCESS_TOKEN_LIFETIME


def reconcile(
    entry: SessionCacheEntry | None,
    marker_present: bool,
    now: datetime | None = None,
) -> SessionCacheEntry | None:
    """Apply the marker-cookie and plausibility rules to a restored entry."""
    if entry is None:
        return None
    if not marker_present:
        logger.info("session_cache_discarded", reason="marker_missing")
        return None

    now = now or utc_now()
    if entry.expires_at > now + MAX_PLAUSIBLE_EXPIRY or entry.expires_at <= now:
        corrected = replace(entry, expires_at=estimate_expiry(entry, now))
        logger.info(
            "session_cache_expiry_corrected",
            cached=isoformat_z(entry.expires_at),
            corrected=isoformat_z(corrected.expires_at),
        )
        return corrected
    return entry


class SessionCacheStore(Protocol):
    def load(self) -> SessionCacheEntry | None: ...

    def save(self, entry: SessionCacheEntry) -> None: ...

    def clear(self) -> None: ...


class MemorySessionCache:
    def __init__(self, entry: SessionCacheEntry | None = None) -> None:
        self.entry = entry

    def load(self) -> SessionCacheEntry | None:
        return self.entry

    def save(self, entry: SessionCacheEntry) -> None:
        self.entry = entry

    def clear(self) -> None:
        self.entry = None


class FileSessionCache:
    """JSON file cache. An unreadable or corrupt file counts as empty."""

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    def load(self) -> SessionCacheEntry | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return SessionCacheEntry.from_dict(json.loads(raw))
        except (ValueError, KeyError, TypeError) as e:
            logger.warning("session_cache_corrupt", path=str(self.path), error=str(e))
            self.clear()
            return None

    def save(self, entry: SessionCacheEntry) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(json.dumps(entry.to_dict()), encoding="utf-8")
        tmp.replace(self.path)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
