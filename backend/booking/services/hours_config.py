"""
Canonical opening-hours configuration.

Every reader works on an ``OpeningHoursConfig``; stored documents in older
shapes are converted by ``services.opening_hours.normalize_opening_hours``.
"""

import re
from datetime import date
from typing import Any, Literal

import pytz
from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator
from pydantic.alias_generators import to_camel


WEEKDAY_KEYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")
WEEKDAY_LABELS = {
    "mon": "Monday",
    "tue": "Tuesday",
    "wed": "Wednesday",
    "thu": "Thursday",
    "fri": "Friday",
    "sat": "Saturday",
    "sun": "Sunday",
}

AREA_KEYS = ("innen", "aussen")
AREA_LABELS = {"innen": "Innenbereich", "aussen": "Außenbereich"}

AreaKey = Literal["innen", "aussen"]
WeekdayKey = Literal["mon", "tue", "wed", "thu", "fri", "sat", "sun"]

MINUTES_PER_DAY = 24 * 60

_TIME_RE = re.compile(r"^(\d{2}):(\d{2})$")


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight; "24:00" is accepted as end of day."""
    match = _TIME_RE.match(value)
    if not match:
        raise ValueError(f"Invalid time {value!r}, use HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f"Invalid time {value!r}, use HH:MM")
    return hours * 60 + minutes


def minutes_to_time_str(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def add_minutes(minutes: int, step: int) -> int:
    """Add a step with modulo-1440 wraparound."""
    return (minutes + step) % MINUTES_PER_DAY


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TimeInterval(CamelModel):
    start: str
    end: str

    @field_validator("start")
    @classmethod
    def _check_start(cls, value: str) -> str:
        if time_str_to_minutes(value) >= MINUTES_PER_DAY:
            raise ValueError("start must be before 24:00")
        return value

    @field_validator("end")
    @classmethod
    def _check_end(cls, value: str) -> str:
        time_str_to_minutes(value)
        return value

    @model_validator(mode="after")
    def _start_before_end(self) -> "TimeInterval":
        if time_str_to_minutes(self.start) >= time_str_to_minutes(self.end):
            raise ValueError(f"interval {self.start}-{self.end}: start must be before end")
        return self

    @property
    def start_minutes(self) -> int:
        return time_str_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_str_to_minutes(self.end)


def overlapping_intervals(intervals: list[TimeInterval]) -> list[tuple[TimeInterval, TimeInterval]]:
    ordered = sorted(intervals, key=lambda iv: iv.start_minutes)
    return [
        (prev, cur)
        for prev, cur in zip(ordered, ordered[1:])
        if cur.start_minutes < prev.end_minutes
    ]


class DaySchedule(CamelModel):
    closed: bool = False
    intervals: list[TimeInterval] = Field(default_factory=list)

    @model_validator(mode="after")
    def _closed_has_no_intervals(self) -> "DaySchedule":
        if self.closed and self.intervals:
            raise ValueError("a closed day must not list intervals")
        return self

    def overlapping_intervals(self) -> list[tuple[TimeInterval, TimeInterval]]:
        return overlapping_intervals(self.intervals)


class SlotConfig(CamelModel):
    step_minutes: int = Field(default=30, ge=5, le=120)
    min_lead_minutes: int = Field(default=60, ge=0, le=1440)
    max_advance_days: int = Field(default=60, ge=1, le=365)


class AreaConfig(CamelModel):
    enabled: bool = True
    capacity: int = Field(ge=1, le=1000)


def default_areas() -> dict[str, AreaConfig]:
    return {
        "innen": AreaConfig(enabled=True, capacity=60),
        "aussen": AreaConfig(enabled=True, capacity=40),
    }


class ServiceHours(CamelModel):
    """Delivery (``lieferung``) or pickup (``abholung``) windows. Not used for table slots."""

    windows: list[TimeInterval] = Field(default_factory=list)
    closed: bool = False
    min_order: float | None = Field(default=None, ge=0)
    fee: float | None = Field(default=None, ge=0)

    @model_validator(mode="before")
    @classmethod
    def _single_window(cls, data: Any) -> Any:
        # Older documents store a single start/end pair.
        if isinstance(data, dict) and "windows" not in data and "start" in data and "end" in data:
            window = {"start": data["start"], "end": data["end"]}
            data = {key: value for key, value in data.items() if key not in ("start", "end")}
            data["windows"] = [window]
        return data

    def overlapping_windows(self) -> list[tuple[TimeInterval, TimeInterval]]:
        return overlapping_intervals(self.windows)


class OpeningHoursConfig(CamelModel):
    timezone: str = "Europe/Berlin"
    reservations_enabled: bool = True
    week: dict[WeekdayKey, DaySchedule]
    exceptions: dict[str, DaySchedule] = Field(default_factory=dict)
    slot: SlotConfig
    areas: dict[AreaKey, AreaConfig] = Field(default_factory=default_areas)
    lieferung: ServiceHours | None = None
    abholung: ServiceHours | None = None

    @field_validator("timezone")
    @classmethod
    def _known_timezone(cls, value: str) -> str:
        try:
            pytz.timezone(value)
        except pytz.UnknownTimeZoneError as exc:
            raise ValueError(f"Unknown timezone {value!r}") from exc
        return value

    @field_validator("week")
    @classmethod
    def _all_weekdays(cls, value: dict[str, DaySchedule]) -> dict[str, DaySchedule]:
        missing = [key for key in WEEKDAY_KEYS if key not in value]
        if missing:
            raise ValueError(f"week is missing {', '.join(missing)}")
        return {key: value[key] for key in WEEKDAY_KEYS}

    @field_validator("exceptions")
    @classmethod
    def _iso_dates(cls, value: dict[str, DaySchedule]) -> dict[str, DaySchedule]:
        for key in value:
            try:
                date.fromisoformat(key)
            except ValueError as exc:
                raise ValueError(f"exception key {key!r} is not a YYYY-MM-DD date") from exc
        return value

    @field_validator("areas")
    @classmethod
    def _all_areas(cls, value: dict[str, AreaConfig]) -> dict[str, AreaConfig]:
        defaults = default_areas()
        return {key: value.get(key, defaults[key]) for key in AREA_KEYS}

    @computed_field(alias="weekdayFlags")
    @property
    def weekday_flags(self) -> list[dict[str, Any]]:
        return [
            {
                "dayKey": key,
                "dayLabel": WEEKDAY_LABELS[key],
                "closed": self.week[key].closed,
                "intervals": [iv.model_dump(by_alias=True) for iv in self.week[key].intervals],
            }
            for key in WEEKDAY_KEYS
        ]

    @property
    def tz(self) -> pytz.BaseTzInfo:
        return pytz.timezone(self.timezone)

    def to_document(self) -> dict[str, Any]:
        """Canonical storage shape (computed flags excluded)."""
        return self.model_dump(by_alias=True, exclude={"weekday_flags"})


_LUNCH = {"start": "11:00", "end": "14:00"}
_DINNER = {"start": "17:00", "end": "22:00"}

DEFAULT_OPENING_HOURS: dict[str, Any] = {
    "timezone": "Europe/Berlin",
    "reservationsEnabled": True,
    "week": {
        "mon": {"closed": True, "intervals": []},
        "tue": {"closed": False, "intervals": [_LUNCH, _DINNER]},
        "wed": {"closed": False, "intervals": [_LUNCH, _DINNER]},
        "thu": {"closed": False, "intervals": [_LUNCH, _DINNER]},
        "fri": {"closed": False, "intervals": [_LUNCH, _DINNER]},
        "sat": {"closed": False, "intervals": [_LUNCH, _DINNER]},
        "sun": {"closed": True, "intervals": []},
    },
    "exceptions": {},
    "slot": {"stepMinutes": 30, "minLeadMinutes": 60, "maxAdvanceDays": 60},
    "areas": {
        "innen": {"enabled": True, "capacity": 60},
        "aussen": {"enabled": True, "capacity": 40},
    },
}


def default_opening_hours() -> OpeningHoursConfig:
    return OpeningHoursConfig.model_validate(DEFAULT_OPENING_HOURS)
