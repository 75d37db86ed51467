"""
Per-slot commit guard.

Serializes the capacity re-check and insert for one (date, area, time) so two
concurrent submissions cannot both pass the check. With Redis the guard is a
``SET NX PX`` lock shared by all instances; without it, an asyncio.Lock per
key in this process.
"""

import asyncio
import logging
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from uuid import uuid4

from redis.exceptions import RedisError

from backend.booking.core import redis_client as redis_module
from backend.booking.core.config import settings
from backend.booking.core.errors import SlotBusyError


logger = logging.getLogger(__name__)

_RETRY_DELAY_SECONDS = 0.05

# Delete only if we still own the lock.
_RELEASE_SCRIPT = """
if redis.call("get", KEYS[1]) == ARGV[1] then
    return redis.call("del", KEYS[1])
end
return 0
"""

_local_locks: "weakref.WeakValueDictionary[str, asyncio.Lock]" = weakref.WeakValueDictionary()


def slot_lock_key(date: str, area: str, time: str) -> str:
    return f"slot:{date}:{area}:{time}"


@asynccontextmanager
async def _local_guard(key: str, wait_seconds: float) -> AsyncIterator[None]:
    lock = _local_locks.get(key)
    if lock is None:
        lock = asyncio.Lock()
        _local_locks[key] = lock
    try:
        await asyncio.wait_for(lock.acquire(), timeout=wait_seconds)
    except asyncio.TimeoutError as exc:
        raise SlotBusyError("Slot is being booked by another request") from exc
    try:
        yield
    finally:
        lock.release()


async def _acquire_redis(client, key: str, token: str, wait_seconds: float) -> bool:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + wait_seconds
    while True:
        if await client.set(key, token, nx=True, px=settings.SLOT_LOCK_TTL_MS):
            return True
        if loop.time() >= deadline:
            return False
        await asyncio.sleep(_RETRY_DELAY_SECONDS)


@asynccontextmanager
async def slot_guard(date: str, area: str, time: str) -> AsyncIterator[None]:
    """Hold the commit guard for one slot; raises ``SlotBusyError`` on timeout."""
    key = slot_lock_key(date, area, time)
    wait_seconds = settings.SLOT_LOCK_WAIT_SECONDS
    client = redis_module.redis_client

    if client is not None:
        token = uuid4().hex
        try:
            acquired = await _acquire_redis(client, key, token, wait_seconds)
        except RedisError:
            logger.warning("Slot lock unavailable in Redis; using in-process lock", exc_info=True)
        else:
            if not acquired:
                raise SlotBusyError("Slot is being booked by another request")
            try:
                yield
            finally:
                try:
                    await client.eval(_RELEASE_SCRIPT, 1, key, token)
                except RedisError:
                    # Expires after SLOT_LOCK_TTL_MS anyway.
                    logger.warning("Could not release slot lock %s", key, exc_info=True)
            return

    async with _local_guard(key, wait_seconds):
        yield
