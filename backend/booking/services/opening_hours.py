"""
Opening-hours normalization and storage.

Stored documents have taken several shapes over time:

  week / days / weekHours       day containers (dict, dict, list)
  mon / monday / montag / "0"   day keys (0 = Monday)
  closed / isClosed / open      closed flag (``open`` is negated)
  intervals / shifts / ranges   interval lists; bounds start/end or open/close
  capacity: {innen, aussen}     area capacities without enabled flags
  slot.intervalMinutes / slot.leadTimeMinutes
  lieferung / abholung: {start, end} or {windows, closed, minOrder, fee}

``normalize_opening_hours`` accepts all of them and returns the canonical
``OpeningHoursConfig``. Nothing past this module sees a legacy shape.
"""

import json
import logging
from datetime import date
from typing import Any

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.core.errors import ConfigUnavailableError, ReservationValidationError, issues_from_pydantic
from backend.booking.db.models import OpeningHoursDocument
from backend.booking.services.cache import clear_cache, opening_hours_cache
from backend.booking.services.hours_config import (
    AREA_KEYS,
    DEFAULT_OPENING_HOURS,
    WEEKDAY_KEYS,
    DaySchedule,
    OpeningHoursConfig,
    ServiceHours,
    default_opening_hours,
)


logger = logging.getLogger(__name__)

DOCUMENT_ID = "main"
SERVICE_SECTIONS = ("lieferung", "abholung")
_CACHE_KEY = "opening_hours"

_DAY_ALIASES: dict[str, str] = {}
for _index, (_short, _long, _german) in enumerate(
    zip(
        WEEKDAY_KEYS,
        ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"),
        ("montag", "dienstag", "mittwoch", "donnerstag", "freitag", "samstag", "sonntag"),
    )
):
    _DAY_ALIASES.update({_short: _short, _long: _short, _german: _short, str(_index): _short})


# ── Normalization ────────────────────────────────────────────────────────


def _day_key(raw_key: Any) -> str | None:
    if raw_key is None:
        return None
    return _DAY_ALIASES.get(str(raw_key).strip().lower())


def _interval(raw: Any) -> dict[str, str] | None:
    if isinstance(raw, (list, tuple)) and len(raw) == 2:
        start, end = raw
    elif isinstance(raw, dict):
        start = raw.get("start", raw.get("open"))
        end = raw.get("end", raw.get("close"))
    else:
        return None

    if not isinstance(start, str) or not isinstance(end, str):
        return None
    start, end = start.strip(), end.strip()

    # Legacy shifts close at "00:00" meaning midnight.
    if end == "00:00" and start != "00:00":
        end = "24:00"
    return {"start": start, "end": end}


def _day_schedule(raw: Any) -> dict[str, Any]:
    closed = False
    items: Any = None

    if raw is None:
        closed = True
    elif isinstance(raw, list):
        items = raw
    elif isinstance(raw, dict):
        if "closed" in raw:
            closed = bool(raw["closed"])
        elif "isClosed" in raw:
            closed = bool(raw["isClosed"])
        elif isinstance(raw.get("open"), bool):
            closed = not raw["open"]

        for field in ("intervals", "shifts", "ranges"):
            if raw.get(field) is not None:
                items = raw[field]
                break
        else:
            if isinstance(raw.get("start"), str) and isinstance(raw.get("end"), str):
                items = [raw]

    intervals = [iv for iv in map(_interval, items or []) if iv is not None]
    if closed or not intervals:
        return {"closed": True, "intervals": []}
    return {"closed": False, "intervals": intervals}


def _week(raw: dict[str, Any]) -> dict[str, Any]:
    week: dict[str, Any] = {}

    container = raw.get("week", raw.get("days"))
    if isinstance(container, dict):
        for raw_key, value in container.items():
            key = _day_key(raw_key)
            if key and key not in week:
                week[key] = _day_schedule(value)
    elif isinstance(raw.get("weekHours"), list):
        for entry in raw["weekHours"]:
            if not isinstance(entry, dict):
                continue
            key = _day_key(entry.get("day"))
            if key is None and isinstance(entry.get("dayNumber"), int) and 0 <= entry["dayNumber"] < 7:
                key = WEEKDAY_KEYS[entry["dayNumber"]]
            if key and key not in week:
                week[key] = _day_schedule(entry)

    for key in WEEKDAY_KEYS:
        week.setdefault(key, DEFAULT_OPENING_HOURS["week"][key])
    return week


def _exceptions(raw: dict[str, Any]) -> dict[str, Any]:
    source = raw.get("exceptions") or {}
    if isinstance(source, list):
        pairs = [(entry.get("date"), entry) for entry in source if isinstance(entry, dict)]
    elif isinstance(source, dict):
        pairs = list(source.items())
    else:
        pairs = []

    exceptions: dict[str, Any] = {}
    for raw_date, value in pairs:
        try:
            key = date.fromisoformat(str(raw_date)[:10]).isoformat()
        except ValueError:
            logger.warning("Skipping opening-hours exception with invalid date %r", raw_date)
            continue
        exceptions[key] = _day_schedule(value)
    return exceptions


def _slot(raw: dict[str, Any]) -> dict[str, Any]:
    source = raw.get("slot") if isinstance(raw.get("slot"), dict) else {}
    defaults = DEFAULT_OPENING_HOURS["slot"]

    def pick(*names: str) -> Any:
        for name in names:
            if source.get(name) is not None:
                return source[name]
        return defaults[names[0]]

    return {
        "stepMinutes": pick("stepMinutes", "intervalMinutes"),
        "minLeadMinutes": pick("minLeadMinutes", "leadTimeMinutes"),
        "maxAdvanceDays": pick("maxAdvanceDays"),
    }


def _areas(raw: dict[str, Any]) -> dict[str, Any]:
    areas = raw.get("areas") if isinstance(raw.get("areas"), dict) else {}
    capacities = raw.get("capacity") if isinstance(raw.get("capacity"), dict) else {}

    result: dict[str, Any] = {}
    for key in AREA_KEYS:
        merged = dict(DEFAULT_OPENING_HOURS["areas"][key])
        if capacities.get(key) is not None:
            merged["capacity"] = capacities[key]
        if isinstance(areas.get(key), dict):
            merged.update({k: v for k, v in areas[key].items() if v is not None})
        result[key] = merged
    return result


def _service_hours(raw: dict[str, Any], section: str) -> ServiceHours | None:
    source = raw.get(section)
    if not isinstance(source, dict):
        return None
    data = dict(source)
    if isinstance(source.get("windows"), list):
        data["windows"] = [iv for iv in map(_interval, source["windows"]) if iv is not None]
    elif "start" in source and "end" in source:
        window = _interval(source)
        data = {key: value for key, value in source.items() if key not in ("start", "end")}
        data["windows"] = [window] if window else []
    try:
        return ServiceHours.model_validate(data)
    except ValidationError:
        logger.warning("Ignoring invalid %s hours in stored opening hours", section)
        return None


def normalize_opening_hours(raw: dict[str, Any] | None) -> OpeningHoursConfig:
    """
    Merge a stored document (any historical shape) with the compiled-in defaults.

    Pure function. Raises ``pydantic.ValidationError`` when a value survives
    normalization but breaks an invariant (e.g. ``stepMinutes = 0``).
    """
    if not raw:
        return default_opening_hours()

    return OpeningHoursConfig.model_validate(
        {
            "timezone": raw.get("timezone") or DEFAULT_OPENING_HOURS["timezone"],
            "reservationsEnabled": raw.get("reservationsEnabled") is not False,
            "week": _week(raw),
            "exceptions": _exceptions(raw),
            "slot": _slot(raw),
            "areas": _areas(raw),
            "lieferung": _service_hours(raw, "lieferung"),
            "abholung": _service_hours(raw, "abholung"),
        }
    )


def schedule_for_date(config: OpeningHoursConfig, date_str: str) -> DaySchedule:
    """Exception first (full override), then the weekday schedule."""
    exception = config.exceptions.get(date_str)
    if exception is not None:
        return exception
    weekday = date.fromisoformat(date_str).weekday()
    return config.week[WEEKDAY_KEYS[weekday]]


def parse_opening_hours_update(body: Any) -> OpeningHoursConfig:
    """
    Validate an admin write against the full canonical schema.

    Unlike ``normalize_opening_hours`` this accepts only the canonical shape
    and additionally rejects overlapping intervals.
    """
    if not isinstance(body, dict):
        raise ReservationValidationError("Opening hours must be a JSON object")
    try:
        config = OpeningHoursConfig.model_validate(body)
    except ValidationError as exc:
        raise ReservationValidationError("Invalid opening hours", issues_from_pydantic(exc)) from exc

    issues = []
    days = [(f"week.{key}", config.week[key]) for key in WEEKDAY_KEYS]
    days += [(f"exceptions.{key}", schedule) for key, schedule in sorted(config.exceptions.items())]
    overlaps = [(f"{field}.intervals", schedule.overlapping_intervals()) for field, schedule in days]
    for section in SERVICE_SECTIONS:
        hours = getattr(config, section)
        if hours is not None:
            overlaps.append((f"{section}.windows", hours.overlapping_windows()))

    for field, pairs in overlaps:
        for prev, cur in pairs:
            issues.append(
                {
                    "field": field,
                    "message": f"{prev.start}-{prev.end} overlaps {cur.start}-{cur.end}",
                    "code": "overlap",
                }
            )
    if issues:
        raise ReservationValidationError("Invalid opening hours", issues)
    return config


def keep_service_hours(config: OpeningHoursConfig, current: OpeningHoursConfig, body: dict[str, Any]) -> OpeningHoursConfig:
    """Carry stored delivery/pickup sections over when an admin write leaves them out."""
    kept = {section: getattr(current, section) for section in SERVICE_SECTIONS if section not in body}
    return config.model_copy(update=kept) if kept else config


# ── Storage ──────────────────────────────────────────────────────────────


async def _fetch_document(session: AsyncSession) -> dict[str, Any] | None:
    row = await session.get(OpeningHoursDocument, DOCUMENT_ID, populate_existing=True)
    if row is None:
        return None
    raw = json.loads(row.document)
    if not isinstance(raw, dict):
        raise ValueError("Opening hours document is not a JSON object")
    return raw


async def _store_document(session: AsyncSession, config: OpeningHoursConfig) -> None:
    document = json.dumps(config.to_document(), ensure_ascii=False)
    row = await session.get(OpeningHoursDocument, DOCUMENT_ID)
    if row is None:
        session.add(OpeningHoursDocument(id=DOCUMENT_ID, document=document))
    else:
        row.document = document
    await session.commit()


async def load_opening_hours(session: AsyncSession) -> OpeningHoursConfig:
    """
    Read path: cached snapshot, defaults on any storage problem.

    A missing document is initialised with the defaults.
    """
    cached = opening_hours_cache.get(_CACHE_KEY)
    if cached is not None:
        return cached

    try:
        raw = await _fetch_document(session)
    except (SQLAlchemyError, ValueError):
        logger.exception("Could not read opening hours; serving defaults")
        await session.rollback()
        return default_opening_hours()

    if raw is None:
        config = default_opening_hours()
        try:
            await _store_document(session, config)
            logger.info("Initialised opening hours document with defaults")
        except SQLAlchemyError:
            logger.warning("Could not write default opening hours document", exc_info=True)
            await session.rollback()
    else:
        try:
            config = normalize_opening_hours(raw)
        except ValidationError:
            logger.exception("Stored opening hours are invalid; serving defaults")
            return default_opening_hours()

    opening_hours_cache.set(_CACHE_KEY, config)
    return config


async def load_opening_hours_strict(session: AsyncSession) -> OpeningHoursConfig:
    """Validate path: always fresh, never falls back to defaults on failure."""
    try:
        raw = await _fetch_document(session)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise ConfigUnavailableError("Opening hours are unavailable") from exc
    except ValueError as exc:
        raise ConfigUnavailableError("Stored opening hours could not be parsed") from exc

    if raw is None:
        return default_opening_hours()

    try:
        return normalize_opening_hours(raw)
    except ValidationError as exc:
        raise ConfigUnavailableError("Stored opening hours are invalid") from exc


async def save_opening_hours(session: AsyncSession, config: OpeningHoursConfig) -> OpeningHoursConfig:
    """Persist the canonical document and invalidate every cached read."""
    try:
        await _store_document(session, config)
    except SQLAlchemyError as exc:
        await session.rollback()
        raise ConfigUnavailableError("Could not save opening hours") from exc
    clear_cache()
    return config

