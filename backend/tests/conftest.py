import base64
import os

# Settings are read at import time; configure before the app is imported.
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["ENCRYPTION_MASTER_KEY"] = base64.b64encode(b"m" * 32).decode()
os.environ["HASH_SECRET"] = base64.b64encode(b"h" * 32).decode()
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ.pop("REDIS_URL", None)

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from backend.booking.core import redis_client as redis_module
from backend.booking.db.models import Base
from backend.booking.db.session import get_session
from backend.booking.main import app
from backend.booking.services.cache import clear_cache
from backend.booking.services.rate_limit import reservation_limiter
from backend.tests.helpers import ADMIN_TOKEN


@pytest.fixture(autouse=True)
def reset_process_state():
    clear_cache()
    reservation_limiter.clear()
    redis_module.redis_client = None
    yield
    clear_cache()
    reservation_limiter.clear()
    redis_module.redis_client = None


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def session(session_factory):
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(session_factory):
    async def override_get_session():
        async with session_factory() as session:
            yield session

    app.dependency_overrides[get_session] = override_get_session
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
