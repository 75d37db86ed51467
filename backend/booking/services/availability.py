import logging
from datetime import datetime
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.services.cache import availability_cache
from backend.booking.services.capacity import reserved_by_time
from backend.booking.services.opening_hours import load_opening_hours
from backend.booking.services.slots import booking_window_violation, generate_slot_times


logger = logging.getLogger(__name__)


async def get_availability(
    session: AsyncSession,
    date: str,
    area: str,
    now: datetime | None = None,
) -> dict[str, Any]:
    """
    Bookable slots with remaining seats for one date and area.

    Results are cached per (date, area); callers must treat the returned
    payload as read-only.
    """
    cache_key = (date, area)
    cached = availability_cache.get(cache_key)
    if cached is not None:
        return cached

    config = await load_opening_hours(session)

    if not config.reservations_enabled or booking_window_violation(config, date, now):
        closed, times = True, []
    else:
        closed, times = generate_slot_times(config, date, area, now)

    slots: list[dict[str, Any]] = []
    degraded = False
    if times:
        capacity = config.areas[area].capacity
        try:
            reserved = await reserved_by_time(session, date, area)
        except SQLAlchemyError:
            logger.exception("Capacity lookup failed for %s %s; reporting no seats", date, area)
            await session.rollback()
            reserved = {time: capacity for time in times}
            degraded = True
        slots = [{"time": time, "remaining": max(0, capacity - reserved.get(time, 0))} for time in times]

    payload = {"closed": closed, "slots": slots, "date": date, "area": area}
    if not degraded:
        availability_cache.set(cache_key, payload)
    return payload
