from typing import Literal

from pydantic import Field

from backend.booking.services.hours_config import AreaKey, CamelModel
from backend.booking.services.reservations import ReservationStatus


class SlotOut(CamelModel):
    time: str
    remaining: int = Field(ge=0)


class AvailabilityOut(CamelModel):
    closed: bool
    slots: list[SlotOut]
    date: str
    area: AreaKey


class ReservationCreatedOut(CamelModel):
    reservation_id: str


class ReservationPublicOut(CamelModel):
    id: str
    date: str
    time: str
    area: AreaKey
    people: int
    status: ReservationStatus
    created_at: str | None = None


class ReservationAdminOut(ReservationPublicOut):
    user_id: str
    first_name: str
    last_name: str = ""
    email: str = ""
    phone: str
    notes: str = ""
    rejection_reason: str | None = None
    ip_hash: str | None = None
    updated_at: str | None = None


class StatusUpdateIn(CamelModel):
    status: Literal["accepted", "rejected", "completed", "cancelled"]
    # Shown to the guest when rejecting.
    reason: str | None = Field(default=None, max_length=500)
