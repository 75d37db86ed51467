import logging
import secrets
from datetime import date

from fastapi import HTTPException, Request, status

from backend.booking.core.config import settings
from backend.booking.services.hours_config import AREA_KEYS


logger = logging.getLogger(__name__)


def client_ip(request: Request) -> str:
    """Best-effort client address behind Cloudflare or a reverse proxy."""
    forwarded = request.headers.get("cf-connecting-ip")
    if forwarded:
        return forwarded.strip()
    forwarded_for = request.headers.get("x-forwarded-for")
    if forwarded_for:
        return forwarded_for.split(",")[0].strip()
    if request.client is not None:
        return request.client.host
    return "unknown"


async def require_admin(request: Request) -> None:
    auth_header = request.headers.get("authorization", "")
    if not auth_header.startswith("Bearer ") or not auth_header[7:].strip():
        logger.warning("Admin request without bearer token on %s", request.url.path)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing or invalid authorization header",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = auth_header[7:].strip()
    expected = (settings.ADMIN_API_TOKEN or "").strip()
    if not expected or not secrets.compare_digest(token, expected):
        logger.warning("Admin request with wrong token on %s", request.url.path)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")


def parse_date_param(value: str) -> str:
    try:
        if len(value) != 10:
            raise ValueError(value)
        return date.fromisoformat(value).isoformat()
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="date must be YYYY-MM-DD") from exc


def parse_area_param(value: str) -> str:
    if value not in AREA_KEYS:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail=f"area must be one of {', '.join(AREA_KEYS)}")
    return value


async def read_json_body(request: Request):
    try:
        return await request.json()
    except ValueError as exc:
        raise HTTPException(status.HTTP_400_BAD_REQUEST, detail="Request body must be valid JSON") from exc
