import pytest
from sqlalchemy.exc import OperationalError

from backend.booking.core.errors import StoreUnavailableError
from backend.booking.services import availability as availability_service
from backend.booking.services import capacity as capacity_service
from backend.booking.services.availability import get_availability
from backend.booking.services.cache import availability_cache, clear_cache
from backend.booking.services.capacity import remaining_capacity, reserved_by_time, reserved_people
from backend.tests.helpers import add_reservation, berlin


pytestmark = pytest.mark.asyncio

TUESDAY = "2025-06-10"
NOW = berlin(2025, 6, 9, 10, 0)


async def _broken(*_args, **_kwargs):
    raise OperationalError("SELECT", {}, Exception("database is down"))


# ── Capacity ─────────────────────────────────────────────────────────────


async def test_only_pending_and_accepted_hold_seats(session):
    await add_reservation(session, date=TUESDAY, time="19:00", people=4, status="pending")
    await add_reservation(session, date=TUESDAY, time="19:00", people=6, status="accepted")
    await add_reservation(session, date=TUESDAY, time="19:00", people=8, status="rejected")
    await add_reservation(session, date=TUESDAY, time="19:00", people=8, status="cancelled")
    await add_reservation(session, date=TUESDAY, time="19:00", people=8, status="completed")
    await add_reservation(session, date=TUESDAY, time="19:00", people=3, area="aussen")
    await add_reservation(session, date=TUESDAY, time="19:30", people=5)

    assert await reserved_people(session, TUESDAY, "innen", "19:00") == 10
    assert await reserved_by_time(session, TUESDAY, "innen") == {"19:00": 10, "19:30": 5}
    assert await reserved_people(session, TUESDAY, "innen", "12:00") == 0


async def test_remaining_never_goes_negative(session):
    await add_reservation(session, date=TUESDAY, time="19:00", people=50)
    await add_reservation(session, date=TUESDAY, time="19:00", people=20)

    assert await remaining_capacity(session, TUESDAY, "innen", "19:00", 60) == 0
    assert await remaining_capacity(session, TUESDAY, "innen", "19:30", 60) == 60


async def test_store_failure_reports_zero_remaining(session, monkeypatch):
    monkeypatch.setattr(capacity_service, "reserved_people", _broken)

    assert await remaining_capacity(session, TUESDAY, "innen", "19:00", 60) == 0


async def test_store_failure_raises_on_strict_path(session, monkeypatch):
    monkeypatch.setattr(capacity_service, "reserved_people", _broken)

    with pytest.raises(StoreUnavailableError):
        await remaining_capacity(session, TUESDAY, "innen", "19:00", 60, strict=True)


# ── Availability ─────────────────────────────────────────────────────────


async def test_availability_reports_remaining_per_slot(session):
    await add_reservation(session, date=TUESDAY, time="19:00", people=40)

    result = await get_availability(session, TUESDAY, "innen", NOW)

    assert result["closed"] is False
    assert result["date"] == TUESDAY and result["area"] == "innen"
    remaining = {slot["time"]: slot["remaining"] for slot in result["slots"]}
    assert remaining["19:00"] == 20
    assert remaining["18:30"] == 60
    assert all(0 <= value <= 60 for value in remaining.values())


async def test_closed_day_has_no_slots(session):
    result = await get_availability(session, "2025-06-09", "innen", NOW)
    assert result == {"closed": True, "slots": [], "date": "2025-06-09", "area": "innen"}


async def test_dates_outside_booking_window_are_closed(session):
    past = await get_availability(session, "2025-06-03", "innen", NOW)
    far = await get_availability(session, "2025-12-02", "innen", NOW)

    assert past["closed"] and past["slots"] == []
    assert far["closed"] and far["slots"] == []


async def test_repeated_calls_within_ttl_are_identical(session):
    first = await get_availability(session, TUESDAY, "innen", NOW)
    # written behind the cache's back
    await add_reservation(session, date=TUESDAY, time="19:00", people=10)
    second = await get_availability(session, TUESDAY, "innen", NOW)

    assert second == first

    clear_cache()
    third = await get_availability(session, TUESDAY, "innen", NOW)
    assert {s["time"]: s["remaining"] for s in third["slots"]}["19:00"] == 50


async def test_degraded_capacity_is_not_cached(session, monkeypatch):
    monkeypatch.setattr(availability_service, "reserved_by_time", _broken)

    result = await get_availability(session, TUESDAY, "innen", NOW)

    assert result["slots"] and all(slot["remaining"] == 0 for slot in result["slots"])
    assert availability_cache.get((TUESDAY, "innen")) is None
