from fastapi import APIRouter, Depends, Query, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.db.session import get_session
from backend.booking.routers.deps import parse_area_param, parse_date_param
from backend.booking.routers.schemas import AvailabilityOut
from backend.booking.services.availability import get_availability


router = APIRouter()


@router.get("/availability", response_model=AvailabilityOut)
async def availability_endpoint(
    response: Response,
    date: str = Query(..., description="YYYY-MM-DD"),
    area: str = Query(..., description="innen or aussen"),
    session: AsyncSession = Depends(get_session),
) -> AvailabilityOut:
    payload = await get_availability(session, parse_date_param(date), parse_area_param(area))
    response.headers["Cache-Control"] = "public, max-age=15"
    return AvailabilityOut.model_validate(payload)
