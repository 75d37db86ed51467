from fastapi import APIRouter, Depends, Query, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.db.session import get_session
from backend.booking.routers.deps import client_ip, read_json_body
from backend.booking.routers.schemas import ReservationCreatedOut, ReservationPublicOut
from backend.booking.services.reservations import (
    create_reservation,
    get_reservation,
    list_user_reservations,
    public_view,
)


router = APIRouter()


@router.post("/reservations", response_model=ReservationCreatedOut, status_code=status.HTTP_201_CREATED)
async def create_reservation_endpoint(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> ReservationCreatedOut:
    reservation_id = await create_reservation(
        session,
        await read_json_body(request),
        client_ip=client_ip(request),
        user_agent=request.headers.get("user-agent"),
    )
    return ReservationCreatedOut(reservation_id=reservation_id)


# Declared before /reservations/{reservation_id} so "mine" is not read as an id.
@router.get("/reservations/mine", response_model=list[ReservationPublicOut])
async def my_reservations(
    user_id: str = Query(..., alias="userId", min_length=1),
    session: AsyncSession = Depends(get_session),
) -> list[ReservationPublicOut]:
    rows = await list_user_reservations(session, user_id)
    return [ReservationPublicOut.model_validate(row) for row in rows]


@router.get("/reservations/{reservation_id}", response_model=ReservationPublicOut)
async def read_reservation(
    reservation_id: str,
    session: AsyncSession = Depends(get_session),
) -> ReservationPublicOut:
    reservation = await get_reservation(session, reservation_id)
    return ReservationPublicOut.model_validate(public_view(reservation))
