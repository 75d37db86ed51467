import logging

from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.core.errors import StoreUnavailableError


logger = logging.getLogger(__name__)


async def reserved_people(session: AsyncSession, date: str, area: str, time: str) -> int:
    """Seats held by active reservations for one (date, area, time)."""
    result = await session.execute(
        text(
            """
            SELECT COALESCE(SUM(people), 0) AS reserved
            FROM reservation
            WHERE "date" = :date
              AND area = :area
              AND "time" = :time
              AND status IN ('pending', 'accepted')
            """
        ),
        {"date": date, "area": area, "time": time},
    )
    return int(result.scalar_one())


async def reserved_by_time(session: AsyncSession, date: str, area: str) -> dict[str, int]:
    """Seats held per time for a whole day, in one query."""
    result = await session.execute(
        text(
            """
            SELECT "time", COALESCE(SUM(people), 0) AS reserved
            FROM reservation
            WHERE "date" = :date
              AND area = :area
              AND status IN ('pending', 'accepted')
            GROUP BY "time"
            """
        ),
        {"date": date, "area": area},
    )
    return {row.time: int(row.reserved) for row in result}


async def remaining_capacity(
    session: AsyncSession,
    date: str,
    area: str,
    time: str,
    capacity: int,
    *,
    strict: bool = False,
) -> int:
    """
    ``max(0, capacity - reserved)`` for one slot.

    A store failure reports 0 remaining on the read path. With ``strict=True``
    (commit path) it raises ``StoreUnavailableError`` instead.
    """
    try:
        reserved = await reserved_people(session, date, area, time)
    except SQLAlchemyError as exc:
        await session.rollback()
        if strict:
            raise StoreUnavailableError("Reservation store unavailable") from exc
        logger.exception("Capacity lookup failed for %s %s %s; reporting no seats", date, area, time)
        return 0
    return max(0, capacity - reserved)
