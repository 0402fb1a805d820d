"""
Client-side session synchronisation.

``SessionSync`` is the single writer of client auth state. It owns one
``SyncState`` value and the local cache entry; everything else reads them
or subscribes to changes.

    ANONYMOUS --login--> AUTHENTICATED --refresh--> REFRESHING
        ^                    |   ^                      |
        |                    |   +------- ok -----------+
        +---- logout / rejected refresh -----------------+
                             |
                         LOGGING_OUT (cache already cleared; nothing
                         may move the state back to AUTHENTICATED)

Refresh is proactive: a periodic check (every 30 seconds) starts one when
the cached expiry is within 3 minutes, at most once a minute, and only one
refresh runs at a time.
"""

import asyncio
import contextlib
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta
from enum import StrEnum

import structlog

from sessionauth.client.api import AuthApiClient
from sessionauth.client.cache import (
    ACCESS_TOKEN_LIFETIME,
    CacheSource,
    SessionCacheEntry,
    SessionCacheStore,
    reconcile,
)
from sessionauth.client.results import AuthResult, Err, ErrorKind, Ok
from sessionauth.utils.clock import utc_now

logger = structlog.get_logger(__name__)

REFRESH_THRESHOLD = timedelta(minutes=3)
MIN_REFRESH_INTERVAL = timedelta(seconds=60)
CHECK_INTERVAL_SECONDS = 30.0


class SyncState(StrEnum):
    ANONYMOUS = "anonymous"
    AUTHENTICATED = "authenticated"
    REFRESHING = "refreshing"
    LOGGING_OUT = "logging_out"


Listener = Callable[[SyncState, SessionCacheEntry | None], None]


class SessionSync:
    """
    Args:
        api: Auth endpoint client (its cookie jar holds the real tokens)
        cache: Local, non-authoritative session cache
        clock: Returns naive UTC now
        check_interval: Seconds between periodic checks in ``run``
    """

    def __init__(
        self,
        api: AuthApiClient,
        cache: SessionCacheStore,
        *,
        clock: Callable[[], datetime] = utc_now,
        check_interval: float = CHECK_INTERVAL_SECONDS,
        refresh_threshold: timedelta = REFRESH_THRESHOLD,
        min_refresh_interval: timedelta = MIN_REFRESH_INTERVAL,
    ) -> None:
        self.api = api
        self.cache = cache
        self.clock = clock
        self.check_interval = check_interval
        self.refresh_threshold = refresh_threshold
        self.min_refresh_interval = min_refresh_interval

        self._state = SyncState.ANONYMOUS
        self._entry: SessionCacheEntry | None = None
        self._last_refresh_attempt: datetime | None = None
        # Bumped by every logout; answers started under an older value are stale
        self._logout_generation = 0
        self._refresh_task: asyncio.Task[AuthResult] | None = None
        self._runner: asyncio.Task[None] | None = None
        self._listeners: list[Listener] = []

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def session(self) -> SessionCacheEntry | None:
        return self._entry

    @property
    def is_authenticated(self) -> bool:
        return self._state in (SyncState.AUTHENTICATED, SyncState.REFRESHING)

    @property
    def refresh_in_flight(self) -> bool:
        return self._refresh_task is not None and not self._refresh_task.done()

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a read-only listener. Returns a function that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(listener)

        return unsubscribe

    def _transition(self, state: SyncState, entry: SessionCacheEntry | None) -> None:
        previous = self._state
        self._state = state
        self._entry = entry
        if entry is None:
            self.cache.clear()
        else:
            self.cache.save(entry)
        if previous != state:
            logger.debug("session_state_changed", previous=previous.value, state=state.value)
        for listener in list(self._listeners):
            try:
                listener(state, entry)
            except Exception:
                logger.exception("session_listener_failed")

    def _clear(self) -> None:
        self._transition(SyncState.ANONYMOUS, None)

    def _logged_out_since(self, generation: int) -> bool:
        return (
            self._state is SyncState.LOGGING_OUT or self._logout_generation != generation
        )

    def load(self) -> SessionCacheEntry | None:
        """Restore the cached session, discarding or correcting it as needed."""
        restored = self.cache.load()
        entry = reconcile(restored, self.api.marker_present(), self.clock())
        if entry is None:
            if restored is not None:
                self._clear()
            return None
        self._transition(SyncState.AUTHENTICATED, entry)
        return entry

    async def login(self, email: str, password: str) -> AuthResult:
        result = await self.api.login(email, password)
        if isinstance(result, Ok) and result.user is not None:
            now = self.clock()
            self._transition(
                SyncState.AUTHENTICATED,
                SessionCacheEntry(
                    user=result.user,
                    expires_at=result.expires_at or now + ACCESS_TOKEN_LIFETIME,
                    source=CacheSource.API,
                    last_successful_refresh=now,
                ),
            )
            return result
        self._clear()
        return result if isinstance(result, Err) else Err(ErrorKind.SERVER, "No user in response")

    async def fetch_me(self) -> AuthResult:
        """Ask the server who we are and mirror the answer into the cache."""
        generation = self._logout_generation
        result = await self.api.me()
        if self._logged_out_since(generation):
            return Err(ErrorKind.CANCELLED, "Logout in progress")
        if isinstance(result, Ok) and result.user is not None:
            now = self.clock()
            current = self._entry
            expires_at = result.expires_at or (
                current.expires_at if current else now + ACCESS_TOKEN_LIFETIME
            )
            self._transition(
                SyncState.AUTHENTICATED,
                SessionCacheEntry(
                    user=result.user,
                    expires_at=expires_at,
                    source=CacheSource.SERVER,
                    last_successful_refresh=current.last_successful_refresh if current else None,
                ),
            )
        elif isinstance(result, Err) and result.kind is ErrorKind.UNAUTHORIZED:
            self._clear()
        return result

    def should_refresh(self, now: datetime | None = None) -> bool:
        now = now or self.clock()
        entry = self._entry
        if self._state is not SyncState.AUTHENTICATED or entry is None:
            return False
        if self.refresh_in_flight:
            return False
        if entry.expires_at <= now or entry.expires_at - now > self.refresh_threshold:
            return False
        if (
            self._last_refresh_attempt is not None
            and now - self._last_refresh_attempt < self.min_refresh_interval
        ):
            return False
        return True

    async def refresh(self) -> AuthResult:
        """
        Rotate the session. Concurrent callers share the in-flight attempt.

        A rejected refresh clears the local session; a transport failure
        leaves it as it was. Results arriving after logout started are
        discarded.
        """
        if self._state is SyncState.LOGGING_OUT:
            return Err(ErrorKind.CANCELLED, "Logout in progress")
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_once())
        return await asyncio.shield(self._refresh_task)

    async def _refresh_once(self) -> AuthResult:
        self._last_refresh_attempt = self.clock()
        generation = self._logout_generation
        resume_state = self._state
        if resume_state is SyncState.AUTHENTICATED:
            self._transition(SyncState.REFRESHING, self._entry)

        result = await self.api.refresh()

        # Logout may have started or finished while the request was out
        if self._logged_out_since(generation):
            logger.info("refresh_result_discarded", reason="logout_in_progress")
            return Err(ErrorKind.CANCELLED, "Logout in progress")

        if isinstance(result, Ok):
            now = self.clock()
            entry = self._entry
            user = result.user or (entry.user if entry else None)
            if user is None:
                self._clear()
                return Err(ErrorKind.SERVER, "No user in refresh response")
            base = entry or SessionCacheEntry(user=user, expires_at=now)
            self._transition(
                SyncState.AUTHENTICATED,
                replace(
                    base,
                    user=user,
                    expires_at=result.expires_at or now + ACCESS_TOKEN_LIFETIME,
                    last_successful_refresh=now,
                ),
            )
            logger.info("session_refreshed")
            return result

        if result.is_rejection:
            logger.info("session_refresh_rejected", kind=result.kind.value)
            self._clear()
        elif resume_state is SyncState.AUTHENTICATED:
            logger.warning("session_refresh_failed", kind=result.kind.value)
            self._transition(SyncState.AUTHENTICATED, self._entry)
        return result

    async def logout(self) -> AuthResult:
        """
        Clear local state first, then revoke on the server.

        Local state ends up anonymous whatever the server answers.
        """
        self._logout_generation += 1
        self._transition(SyncState.LOGGING_OUT, None)
        try:
            if self._refresh_task is not None and not self._refresh_task.done():
                # Let it finish so the server sees the newest refresh cookie
                await asyncio.wait({self._refresh_task})
            result = await self.api.logout()
            if isinstance(result, Err):
                logger.warning("server_logout_failed", kind=result.kind.value)
            return result
        finally:
            self._last_refresh_attempt = None
            self._clear()

    async def check(self, now: datetime | None = None) -> bool:
        """
        One periodic tick. Returns True if a refresh was attempted.

        A vanished marker cookie ends the local session without a request.
        """
        if self._state is SyncState.AUTHENTICATED and not self.api.marker_present():
            logger.info("session_marker_missing")
            self._clear()
            return False
        if not self.should_refresh(now):
            return False
        await self.refresh()
        return True

    async def run(self) -> None:
        # Runs in its own task, so the binding stays local to the loop
        structlog.contextvars.bind_contextvars(component="session_sync")
        while True:
            await self.check()
            await asyncio.sleep(self.check_interval)

    def start(self) -> None:
        if self._runner is None or self._runner.done():
            self._runner = asyncio.create_task(self.run(), name="session-sync")

    async def stop(self) -> None:
        if self._runner is None:
            return
        self._runner.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._runner
        self._runner = None
