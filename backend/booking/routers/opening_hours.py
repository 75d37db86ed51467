from typing import Any

from fastapi import APIRouter, Depends, Request, Response
from sqlalchemy.ext.asyncio import AsyncSession

from backend.booking.db.session import get_session
from backend.booking.routers.deps import read_json_body, require_admin
from backend.booking.services.opening_hours import (
    keep_service_hours,
    load_opening_hours,
    parse_opening_hours_update,
    save_opening_hours,
)


router = APIRouter()


@router.get("/opening-hours")
async def read_opening_hours(
    response: Response,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    """Normalized opening hours, including the computed weekday flags."""
    config = await load_opening_hours(session)
    response.headers["Cache-Control"] = "public, max-age=30"
    return config.model_dump(by_alias=True)


@router.post("/opening-hours", dependencies=[Depends(require_admin)])
async def write_opening_hours(
    request: Request,
    session: AsyncSession = Depends(get_session),
) -> dict[str, Any]:
    body = await read_json_body(request)
    config = parse_opening_hours_update(body)
    config = keep_service_hours(config, await load_opening_hours(session), body)
    saved = await save_opening_hours(session, config)
    return saved.model_dump(by_alias=True)
