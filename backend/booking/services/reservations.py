"""
Reservation validation, writing and status changes.

``create_reservation`` checks, in order: request shape, per-IP rate limit, global
switch, area, date/time against freshly loaded opening hours, then capacity
under the slot commit guard. Each failure stops the pipeline with the
matching ``ReservationError``.
"""

import logging
import re
from datetime import date, datetime, timezone
from typing import Any, Literal

from pydantic import Field, ValidationError, field_validator, model_validator
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.core.crypto import date_index as make_date_index, get_cipher
from backend.booking.core.errors import (
    CapacityExceededError,
    InvalidTransitionError,
    RateLimitedError,
    ReservationNotFoundError,
    ReservationValidationError,
    StoreUnavailableError,
    issues_from_pydantic,
)
from backend.booking.db.models import Reservation
from backend.booking.services.cache import availability_cache
from backend.booking.services.capacity import remaining_capacity
from backend.booking.services.hours_config import AREA_LABELS, AreaKey, CamelModel, time_str_to_minutes
from backend.booking.services.opening_hours import load_opening_hours_strict
from backend.booking.services.rate_limit import get_rate_limiter, rate_limit_key
from backend.booking.services.slot_guard import slot_guard
from backend.booking.services.slots import booking_window_violation, is_slot_offered


logger = logging.getLogger(__name__)

ReservationStatus = Literal["pending", "accepted", "rejected", "completed", "cancelled"]
STATUSES = ("pending", "accepted", "rejected", "completed", "cancelled")

ALLOWED_TRANSITIONS: dict[str, tuple[str, ...]] = {
    "pending": ("accepted", "rejected", "cancelled"),
    "accepted": ("completed", "cancelled"),
}

# Display names sent by older clients as ``bereich``.
_BEREICH_TO_AREA = {
    "innenbereich": "innen",
    "außenbereich": "aussen",
    "aussenbereich": "aussen",
}

_PHONE_RE = re.compile(r"^[\d+\-\s()]+$")
_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_TIME_RE = re.compile(r"^\d{2}:\d{2}$")


class ReservationRequest(CamelModel):
    first_name: str = Field(min_length=2, max_length=100)
    last_name: str | None = Field(default=None, max_length=100)
    email: str | None = None
    phone: str = Field(min_length=5, max_length=20)
    date: str
    time: str
    people: int = Field(ge=1, le=100, strict=True)
    area: AreaKey
    notes: str | None = Field(default=None, max_length=500)
    user_id: str | None = Field(default=None, max_length=128)

    @model_validator(mode="before")
    @classmethod
    def _area_from_bereich(cls, data: Any) -> Any:
        if isinstance(data, dict) and data.get("area") is None and isinstance(data.get("bereich"), str):
            data = dict(data)
            data["area"] = _BEREICH_TO_AREA.get(data["bereich"].strip().lower(), data["bereich"])
        return data

    @field_validator("first_name", "last_name", "email", "phone", "notes", "user_id", mode="before")
    @classmethod
    def _strip(cls, value: Any) -> Any:
        return value.strip() if isinstance(value, str) else value

    @field_validator("last_name", "email", "notes", "user_id")
    @classmethod
    def _empty_to_none(cls, value: str | None) -> str | None:
        return value or None

    @field_validator("email")
    @classmethod
    def _check_email(cls, value: str | None) -> str | None:
        if value is not None and not _EMAIL_RE.match(value):
            raise ValueError("Invalid email address")
        return value

    @field_validator("phone")
    @classmethod
    def _check_phone(cls, value: str) -> str:
        if not _PHONE_RE.match(value):
            raise ValueError("Invalid phone number")
        return value

    @field_validator("date")
    @classmethod
    def _check_date(cls, value: str) -> str:
        if not _DATE_RE.match(value):
            raise ValueError("Invalid date format, use YYYY-MM-DD")
        try:
            date.fromisoformat(value)
        except ValueError as exc:
            raise ValueError("Invalid calendar date") from exc
        return value

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not _TIME_RE.match(value) or time_str_to_minutes(value) >= 24 * 60:
            raise ValueError("Invalid time format, use HH:MM")
        return value

    @property
    def search_key(self) -> str:
        """Value behind ``email_hash``: the lower-cased email, else the phone."""
        return self.email.lower() if self.email else self.phone


def parse_reservation_request(body: Any) -> ReservationRequest:
    if isinstance(body, ReservationRequest):
        return body
    if not isinstance(body, dict):
        raise ReservationValidationError("Reservation must be a JSON object")
    try:
        return ReservationRequest.model_validate(body)
    except ValidationError as exc:
        raise ReservationValidationError("Invalid reservation request", issues_from_pydantic(exc)) from exc


async def create_reservation(
    session: AsyncSession,
    payload: ReservationRequest | dict[str, Any],
    *,
    client_ip: str | None,
    user_agent: str | None,
    now: datetime | None = None,
) -> str:
    """Validate, capacity-check and persist a reservation; return its id."""
    request = parse_reservation_request(payload)

    # userId is client-supplied, so only the address counts against the limit.
    allowed, retry_after = await get_rate_limiter().hit(rate_limit_key(client_ip or "unknown"))
    if not allowed:
        logger.info("Reservation rate limit hit")
        raise RateLimitedError(retry_after)

    config = await load_opening_hours_strict(session)

    if not config.reservations_enabled:
        raise ReservationValidationError("Reservations are currently disabled")

    area_config = config.areas[request.area]
    if not area_config.enabled:
        raise ReservationValidationError(f"{AREA_LABELS[request.area]} is not available")

    window_error = booking_window_violation(config, request.date, now)
    if window_error:
        raise ReservationValidationError(window_error)
    if not is_slot_offered(config, request.date, request.area, request.time, now):
        raise ReservationValidationError("Requested time is not an available slot")

    async with slot_guard(request.date, request.area, request.time):
        remaining = await remaining_capacity(
            session,
            request.date,
            request.area,
            request.time,
            area_config.capacity,
            strict=True,
        )
        if request.people > remaining:
            raise CapacityExceededError(
                remaining,
                f"Only {remaining} seats left in {AREA_LABELS[request.area]} "
                f"on {request.date} at {request.time}",
            )

        reservation = _build_reservation(request, client_ip=client_ip, user_agent=user_agent)
        session.add(reservation)
        try:
            await session.commit()
        except SQLAlchemyError as exc:
            await session.rollback()
            raise StoreUnavailableError("Could not save reservation") from exc

    availability_cache.invalidate((request.date, request.area))
    logger.info(
        "Reservation %s created: %s %s %s, %d people",
        reservation.id,
        request.date,
        request.time,
        request.area,
        request.people,
    )
    return reservation.id


def _build_reservation(
    request: ReservationRequest,
    *,
    client_ip: str | None,
    user_agent: str | None,
) -> Reservation:
    cipher = get_cipher()
    record = {
        "firstName": request.first_name,
        "lastName": request.last_name or "",
        "email": request.email or "",
        "phone": request.phone,
        "date": request.date,
        "time": request.time,
        "people": request.people,
        "area": request.area,
        "notes": request.notes or "",
        "status": "pending",
        "rejectionReason": None,
    }
    return Reservation(
        user_id=request.user_id or client_ip or "unknown",
        date=request.date,
        time=request.time,
        area=request.area,
        people=request.people,
        status="pending",
        enc=cipher.encrypt(record),
        email_hash=cipher.hash_value(request.search_key),
        date_index=make_date_index(request.date),
        ip_hash=cipher.hash_value(client_ip) if client_ip else None,
        ua_hash=cipher.hash_value(user_agent) if user_agent else None,
    )


async def get_reservation(session: AsyncSession, reservation_id: str) -> Reservation:
    reservation = await session.get(Reservation, reservation_id)
    if reservation is None:
        raise ReservationNotFoundError(f"Reservation {reservation_id} not found")
    return reservation


async def transition_status(
    session: AsyncSession,
    reservation_id: str,
    new_status: str,
    reason: str | None = None,
) -> Reservation:
    """
    Move a reservation along pending -> accepted -> completed (or to
    rejected / cancelled). Terminal states accept no further moves.
    """
    reservation = await get_reservation(session, reservation_id)
    current = reservation.status
    if new_status not in ALLOWED_TRANSITIONS.get(current, ()):
        raise InvalidTransitionError(f"Cannot change status from {current} to {new_status}")

    cipher = get_cipher()
    record = cipher.decrypt(reservation.enc)
    record["status"] = new_status
    if new_status == "rejected":
        record["rejectionReason"] = reason or None

    reservation.enc = cipher.encrypt(record)
    reservation.status = new_status
    reservation.updated_at = datetime.now(timezone.utc)
    try:
        await session.commit()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StoreUnavailableError("Could not update reservation") from exc

    availability_cache.invalidate((reservation.date, reservation.area))
    logger.info("Reservation %s moved from %s to %s", reservation.id, current, new_status)
    return reservation


def public_view(reservation: Reservation) -> dict[str, Any]:
    """Operational fields only; nothing from the encrypted blob."""
    return {
        "id": reservation.id,
        "date": reservation.date,
        "time": reservation.time,
        "area": reservation.area,
        "people": reservation.people,
        "status": reservation.status,
        "createdAt": reservation.created_at.isoformat() if reservation.created_at else None,
    }


def decrypt_reservation(reservation: Reservation) -> dict[str, Any]:
    """Full admin view; raises ``CryptoError`` if the blob cannot be opened."""
    record = get_cipher().decrypt(reservation.enc)
    return {
        **public_view(reservation),
        "userId": reservation.user_id,
        "ipHash": reservation.ip_hash,
        "firstName": record.get("firstName", ""),
        "lastName": record.get("lastName", ""),
        "email": record.get("email", ""),
        "phone": record.get("phone", ""),
        "notes": record.get("notes", ""),
        "rejectionReason": record.get("rejectionReason"),
        "updatedAt": reservation.updated_at.isoformat() if reservation.updated_at else None,
    }


async def list_reservations(
    session: AsyncSession,
    *,
    date_index: str | None = None,
    email: str | None = None,
    email_hash: str | None = None,
    status: str | None = None,
    limit: int = 100,
) -> list[dict[str, Any]]:
    """Admin lookup over the plaintext indexes; rows come back decrypted."""
    query = select(Reservation)
    if date_index:
        query = query.where(Reservation.date_index == make_date_index(date_index))
    if email:
        email_hash = get_cipher().hash_value(email.strip().lower())
    if email_hash:
        query = query.where(Reservation.email_hash == email_hash)
    if status:
        if status not in STATUSES:
            raise ReservationValidationError(f"Unknown status {status!r}")
        query = query.where(Reservation.status == status)
    query = query.order_by(Reservation.date, Reservation.time, Reservation.created_at).limit(limit)

    try:
        rows = (await session.execute(query)).scalars().all()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StoreUnavailableError("Reservation store unavailable") from exc
    return [decrypt_reservation(row) for row in rows]


async def list_user_reservations(session: AsyncSession, user_id: str) -> list[dict[str, Any]]:
    query = (
        select(Reservation)
        .where(Reservation.user_id == user_id)
        .order_by(Reservation.date.desc(), Reservation.time.desc())
    )
    try:
        rows = (await session.execute(query)).scalars().all()
    except SQLAlchemyError as exc:
        await session.rollback()
        raise StoreUnavailableError("Reservation store unavailable") from exc
    return [public_view(row) for row in rows]
