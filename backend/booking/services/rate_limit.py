"""
Fixed-window rate limiting for reservation submissions.

``allow`` is the pure decision function. ``InMemoryRateLimiter`` keeps windows
per process; ``RedisRateLimiter`` shares them across instances when REDIS_URL
is configured and fails open on Redis errors.
"""

import logging
import math
import time
from collections.abc import Callable, MutableMapping
from dataclasses import dataclass

from redis.exceptions import RedisError

from backend.booking.core import redis_client as redis_module
from backend.booking.core.config import settings


logger = logging.getLogger(__name__)


@dataclass
class RateLimitWindow:
    count: int
    window_start: int  # ms


def rate_limit_key(identity: str, action: str = "reservation") -> str:
    return f"{action}:{identity}"


def allow(
    store: MutableMapping[str, RateLimitWindow],
    key: str,
    limit: int,
    window_ms: int,
    now_ms: int,
) -> bool:
    """
    Count one hit against ``key``; True if it fits in the current window.

    The window resets once more than ``window_ms`` has elapsed since its
    first hit. A denied hit does not extend the window.
    """
    window = store.get(key)
    if window is None or now_ms - window.window_start > window_ms:
        store[key] = RateLimitWindow(count=1, window_start=now_ms)
        return True
    if window.count >= limit:
        return False
    window.count += 1
    return True


class InMemoryRateLimiter:
    """
    Per-process fixed windows. Expired windows are swept on the first hit
    after every ``sweep_seconds``, so idle keys do not accumulate.
    """

    def __init__(
        self,
        limit: int,
        window_seconds: int,
        clock: Callable[[], float] = time.monotonic,
        sweep_seconds: int = 300,
    ) -> None:
        self.limit = limit
        self.window_ms = window_seconds * 1000
        self.sweep_ms = sweep_seconds * 1000
        self._clock = clock
        self._windows: dict[str, RateLimitWindow] = {}
        self._last_sweep_ms: int | None = None

    def _now_ms(self) -> int:
        return int(self._clock() * 1000)

    def _sweep(self, now_ms: int) -> None:
        if self._last_sweep_ms is None:
            self._last_sweep_ms = now_ms
            return
        if now_ms - self._last_sweep_ms < self.sweep_ms:
            return
        expired = [key for key, window in self._windows.items() if now_ms - window.window_start > self.window_ms]
        for key in expired:
            del self._windows[key]
        self._last_sweep_ms = now_ms
        if expired:
            logger.debug("Pruned %d expired rate limit windows", len(expired))

    async def hit(self, key: str) -> tuple[bool, int | None]:
        """Return (allowed, retry_after_seconds)."""
        now_ms = self._now_ms()
        self._sweep(now_ms)
        if allow(self._windows, key, self.limit, self.window_ms, now_ms):
            return True, None
        window = self._windows[key]
        retry_after = math.ceil((window.window_start + self.window_ms - now_ms) / 1000)
        return False, max(1, retry_after)

    def reset(self, key: str) -> None:
        self._windows.pop(key, None)

    def clear(self) -> None:
        self._windows.clear()
        self._last_sweep_ms = None


class RedisRateLimiter:
    """INCR + EXPIRE fixed window shared by every instance."""

    def __init__(self, client, limit: int, window_seconds: int) -> None:
        self.client = client
        self.limit = limit
        self.window_seconds = window_seconds

    async def hit(self, key: str) -> tuple[bool, int | None]:
        redis_key = f"rl:{key}"
        try:
            pipe = self.client.pipeline()
            pipe.incr(redis_key)
            pipe.ttl(redis_key)
            count, ttl = await pipe.execute()

            if ttl == -1:
                await self.client.expire(redis_key, self.window_seconds)
                ttl = self.window_seconds
        except RedisError:
            logger.warning("Rate limit check failed; allowing request", exc_info=True)
            return True, None  # fail open

        if count > self.limit:
            return False, max(1, ttl)
        return True, None


reservation_limiter = InMemoryRateLimiter(
    settings.RESERVATION_RATE_LIMIT,
    settings.RESERVATION_RATE_WINDOW_SECONDS,
)


def get_rate_limiter() -> InMemoryRateLimiter | RedisRateLimiter:
    """Redis-backed limiter when Redis is up, the per-process one otherwise."""
    if redis_module.redis_client is not None:
        return RedisRateLimiter(
            redis_module.redis_client,
            settings.RESERVATION_RATE_LIMIT,
            settings.RESERVATION_RATE_WINDOW_SECONDS,
        )
    return reservation_limiter
