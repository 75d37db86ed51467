"""
Process-local TTL caches.

Expiry is a passive compare on read; there is no sweeper. Each server
instance holds its own copy, so the staleness bound is the TTL or the next
``clear_cache()`` on this instance, whichever comes first.
"""

import logging
import time
from collections.abc import Callable, Hashable
from typing import Any

from backend.booking.core.config import settings


logger = logging.getLogger(__name__)


class TTLCache:
    """Single entry per key, fixed time-to-live."""

    def __init__(self, ttl_seconds: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: dict[Hashable, tuple[float, Any]] = {}

    def get(self, key: Hashable) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at > self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: Hashable, value: Any) -> None:
        self._entries[key] = (self._clock(), value)

    def invalidate(self, key: Hashable) -> None:
        self._entries.pop(key, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


# (date, area) -> availability payload
availability_cache = TTLCache(settings.AVAILABILITY_CACHE_TTL_SECONDS)
# single key -> normalized OpeningHoursConfig
opening_hours_cache = TTLCache(settings.OPENING_HOURS_CACHE_TTL_SECONDS)


def clear_cache() -> None:
    """Drop every cached availability list and the cached opening hours."""
    availability_cache.clear()
    opening_hours_cache.clear()
    logger.info("Cleared availability and opening-hours caches")
