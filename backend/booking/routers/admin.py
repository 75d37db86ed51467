from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.db.session import get_session
from backend.booking.routers.deps import parse_date_param, require_admin
from backend.booking.routers.schemas import ReservationAdminOut, StatusUpdateIn
from backend.booking.services.reservations import (
    decrypt_reservation,
    list_reservations,
    transition_status,
)


router = APIRouter(prefix="/admin", dependencies=[Depends(require_admin)])


@router.get("/reservations", response_model=list[ReservationAdminOut])
async def admin_list_reservations(
    date_index: str | None = Query(None, alias="dateIndex"),
    email: str | None = Query(None),
    email_hash: str | None = Query(None, alias="emailHash"),
    status: str | None = Query(None),
    limit: int = Query(100, ge=1, le=500),
    session: AsyncSession = Depends(get_session),
) -> list[ReservationAdminOut]:
    rows = await list_reservations(
        session,
        date_index=parse_date_param(date_index) if date_index else None,
        email=email,
        email_hash=email_hash,
        status=status,
        limit=limit,
    )
    return [ReservationAdminOut.model_validate(row) for row in rows]


@router.post("/reservations/{reservation_id}/status", response_model=ReservationAdminOut)
async def admin_update_status(
    reservation_id: str,
    payload: StatusUpdateIn,
    session: AsyncSession = Depends(get_session),
) -> ReservationAdminOut:
    reservation = await transition_status(session, reservation_id, payload.status, payload.reason)
    return ReservationAdminOut.model_validate(decrypt_reservation(reservation))
