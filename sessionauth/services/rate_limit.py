"""
Rate limiting for the auth endpoints.

Two interchangeable limiters:

- ``SlidingWindowRateLimiter`` keeps per-key hit timestamps in process
  memory. A sweep task, started and stopped by the application lifespan,
  drops keys that have been idle for an hour.
- ``RedisRateLimiter`` is a fixed-window counter (INCR + EXPIRE) shared by
  every worker. If Redis is unreachable it lets requests through.

Both answer ``hit(key)`` with a ``RateLimitResult``; the caller decides
what to do when ``exceeded`` is set.
"""

import asyncio
import contextlib
import math
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Protocol

import redis.asyncio as redis
from redis.exceptions import RedisError

from sessionauth.config import settings
from sessionauth.core.logging import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class RateLimitResult:
    count: int
    limit: int
    reset_at: float  # epoch seconds

    @property
    def remaining(self) -> int:
        return max(0, self.limit - self.count)

    @property
    def exceeded(self) -> bool:
        return self.count > self.limit

    def retry_after(self, now: float | None = None) -> int:
        now = time.time() if now is None else now
        return max(1, math.ceil(self.reset_at - now))

    def headers(self) -> dict[str, str]:
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(self.reset_at)),
        }


class RateLimiter(Protocol):
    limit: int
    window_seconds: float

    async def hit(self, key: str) -> RateLimitResult: ...

    async def reset(self, key: str) -> None: ...

    def start(self) -> None: ...

    async def stop(self) -> None: ...


@dataclass
class _Entry:
    timestamps: list[float] = field(default_factory=list)
    last_updated: float = 0.0


class SlidingWindowRateLimiter:
    """
    In-memory sliding window limiter.

    Args:
        limit: Hits allowed per window
        window_seconds: Window length
        idle_seconds: Keys untouched this long are dropped by ``sweep``
        sweep_interval: Seconds between background sweeps
        clock: Time source returning epoch seconds
    """

    def __init__(
        self,
        limit: int,
        window_seconds: float,
        *,
        idle_seconds: float = 3600,
        sweep_interval: float = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.limit = limit
        self.window_seconds = window_seconds
        self.idle_seconds = idle_seconds
        self.sweep_interval = sweep_interval
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._task: asyncio.Task[None] | None = None

    def __len__(self) -> int:
        return len(self._entries)

    def _result(self, timestamps: list[float], now: float) -> RateLimitResult:
        oldest = min(timestamps) if timestamps else now
        return RateLimitResult(
            count=len(timestamps), limit=self.limit, reset_at=oldest + self.window_seconds
        )

    async def hit(self, key: str) -> RateLimitResult:
        now = self._clock()
        entry = self._entries.setdefault(key, _Entry(last_updated=now))
        window_start = now - self.window_seconds
        entry.timestamps = [t for t in entry.timestamps if t > window_start]
        # Rejected hits beyond the first do not extend the block
        if len(entry.timestamps) <= self.limit:
            entry.timestamps.append(now)
        entry.last_updated = now
        return self._result(entry.timestamps, now)

    async def reset(self, key: str) -> None:
        self._entries.pop(key, None)

    def sweep(self) -> int:
        """Drop idle keys. Returns how many were removed."""
        cutoff = self._clock() - self.idle_seconds
        expired = [key for key, entry in self._entries.items() if entry.last_updated < cutoff]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("rate_limit_sweep", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            self.sweep()

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self._sweep_loop(), name="rate-limit-sweep")

    async def stop(self) -> None:
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None


class RedisRateLimiter:
    """
    Fixed-window limiter backed by Redis.

    Counts expire with the window, so no sweep is needed. Redis failures
    are logged and the request is allowed.
    """

    def __init__(
        self,
        client: redis.Redis,  # type: ignore[type-arg]
        limit: int,
        window_seconds: int,
        *,
        prefix: str = "auth_rate",
    ) -> None:
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}:{key}"

    def _allowed(self, now: float) -> RateLimitResult:
        return RateLimitResult(count=0, limit=self.limit, reset_at=now + self.window_seconds)

    async def hit(self, key: str) -> RateLimitResult:
        now = time.time()
        redis_key = self._key(key)
        try:
            pipe = self.client.pipeline()
            pipe.incr(redis_key)
            pipe.ttl(redis_key)
            count, ttl = await pipe.execute()
            if ttl is None or ttl < 0:
                # First hit in this window
                await self.client.expire(redis_key, self.window_seconds)
                ttl = self.window_seconds
        except RedisError:
            logger.warning("rate_limit_redis_error", key=redis_key, exc_info=True)
            return self._allowed(now)
        return RateLimitResult(count=int(count), limit=self.limit, reset_at=now + int(ttl))

    async def reset(self, key: str) -> None:
        try:
            await self.client.delete(self._key(key))
        except RedisError:
            logger.warning("rate_limit_redis_error", key=self._key(key), exc_info=True)

    def start(self) -> None:
        pass

    async def stop(self) -> None:
        await self.client.aclose()


def build_rate_limiter() -> RateLimiter:
    """Create the limiter selected by ``RATE_LIMIT_BACKEND``."""
    if settings.RATE_LIMIT_BACKEND == "redis":
        client = redis.from_url(str(settings.REDIS_URL), encoding="utf-8", decode_responses=True)
        return RedisRateLimiter(
            client, settings.AUTH_RATE_LIMIT, settings.AUTH_RATE_WINDOW_SECONDS
        )
    return SlidingWindowRateLimiter(
        settings.AUTH_RATE_LIMIT,
        settings.AUTH_RATE_WINDOW_SECONDS,
        idle_seconds=settings.RATE_LIMIT_IDLE_SECONDS,
        sweep_interval=settings.RATE_LIMIT_SWEEP_SECONDS,
    )


def rate_limit_exempt() -> bool:
    """Development servers skip limiting unless ENABLE_DEV_RATE_LIMIT is set."""
    return settings.ENVIRONMENT == "development" and not settings.ENABLE_DEV_RATE_LIMIT
