from datetime import datetime, timedelta

import pytz
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.db.models import Reservation


BERLIN = pytz.timezone("Europe/Berlin")
ADMIN_TOKEN = "test-admin-token"


def berlin(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return BERLIN.localize(datetime(year, month, day, hour, minute))


def upcoming(weekday: int, min_days_ahead: int = 2) -> str:
    """ISO date of the next given weekday (0 = Monday) at least N days from today in Berlin."""
    candidate = datetime.now(BERLIN).date() + timedelta(days=min_days_ahead)
    while candidate.weekday() != weekday:
        candidate += timedelta(days=1)
    return candidate.isoformat()


def reservation_body(**overrides) -> dict:
    body = {
        "firstName": "Anna",
        "lastName": "Schmidt",
        "email": "Anna.Schmidt@example.com",
        "phone": "+49 30 1234567",
        "date": upcoming(1),
        "time": "19:00",
        "people": 2,
        "area": "innen",
        "notes": "Window seat please",
        "userId": "user-1",
    }
    body.update(overrides)
    return body


async def add_reservation(
    session: AsyncSession,
    *,
    date: str,
    time: str,
    people: int,
    area: str = "innen",
    status: str = "pending",
) -> Reservation:
    """Insert a bare row for capacity tests; the blob is not meant to be decrypted."""
    reservation = Reservation(
        user_id="seed",
        date=date,
        time=time,
        area=area,
        people=people,
        status=status,
        enc="seed",
        email_hash="seed",
        date_index=date,
    )
    session.add(reservation)
    await session.commit()
    return reservation
