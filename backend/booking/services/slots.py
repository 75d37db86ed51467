"""
Slot generation.

Produces the ordered start times ("HH:MM") offered for one date and area.
All arithmetic is minutes since midnight; "today" and "now" are taken in
the configured timezone, never server-local time.
"""

from datetime import date, datetime, timedelta, timezone

from backend.booking.services.hours_config import (
    OpeningHoursConfig,
    add_minutes,
    minutes_to_time_str,
)
from backend.booking.services.opening_hours import schedule_for_date


def local_now(config: OpeningHoursConfig, now: datetime | None = None) -> datetime:
    """Current wall-clock time in the restaurant's timezone."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)
    return now.astimezone(config.tz)


def booking_window_violation(
    config: OpeningHoursConfig,
    date_str: str,
    now: datetime | None = None,
) -> str | None:
    """Reason the date lies outside [today, today + maxAdvanceDays], else None."""
    today = local_now(config, now).date()
    target = date.fromisoformat(date_str)
    if target < today:
        return "Date is in the past"
    if target > today + timedelta(days=config.slot.max_advance_days):
        return "Date exceeds maximum advance booking window"
    return None


def generate_slot_times(
    config: OpeningHoursConfig,
    date_str: str,
    area: str,
    now: datetime | None = None,
) -> tuple[bool, list[str]]:
    """
    Return ``(closed, times)`` for the date and area.

    Steps walk each interval from start while strictly before its end. A step
    that wraps past midnight ends the walk. On "today", times earlier than
    now + minLeadMinutes are dropped. Times produced by more than one
    interval appear once; output is ascending.
    """
    area_config = config.areas.get(area)
    if area_config is None or not area_config.enabled:
        return True, []

    schedule = schedule_for_date(config, date_str)
    if schedule.closed or not schedule.intervals:
        return True, []

    step = config.slot.step_minutes
    local = local_now(config, now)
    earliest: int | None = None
    if date_str == local.date().isoformat():
        # May exceed 1440, in which case nothing is left today.
        earliest = local.hour * 60 + local.minute + config.slot.min_lead_minutes

    offered: set[int] = set()
    for interval in schedule.intervals:
        current, end = interval.start_minutes, interval.end_minutes
        while current < end:
            if earliest is None or current >= earliest:
                offered.add(current)
            following = add_minutes(current, step)
            if following <= current:
                break
            current = following

    return False, [minutes_to_time_str(minutes) for minutes in sorted(offered)]


def is_slot_offered(
    config: OpeningHoursConfig,
    date_str: str,
    area: str,
    time_str: str,
    now: datetime | None = None,
) -> bool:
    closed, times = generate_slot_times(config, date_str, area, now)
    return not closed and time_str in times
