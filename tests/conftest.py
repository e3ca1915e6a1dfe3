import os

# Point settings at SQLite before anything imports campusmarket.core.config
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///./test.db")
os.environ.setdefault("API_KEY_PEPPER", "test-pepper")
os.environ.setdefault("PAYMENT_PROVIDER", "simulated")

import httpx
import pytest

from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession

# Import Base + all models so metadata is complete
from campusmarket.models import Base

from campusmarket.main import app
from campusmarket.core.db import get_db
from campusmarket.services.payments import SimulatedPaymentGateway

from fixtures_seed import (  # noqa: F401
    categories,
    market_users,
    seller_key,
    admin_key,
    system_key,
    buyer_key,
    make_listing,
)


@pytest.fixture
async def async_engine(tmp_path):
    # file-backed so several sessions see the same committed rows
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'market.db'}")
    try:
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
        yield engine
    finally:
        await engine.dispose()


@pytest.fixture
def session_factory(async_engine):
    return async_sessionmaker(bind=async_engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def db_session(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        await session.close()


@pytest.fixture
def gateway():
    return SimulatedPaymentGateway()


@pytest.fixture
async def client(session_factory, gateway, monkeypatch):
    """
    HTTP client that uses the test DB via dependency override.
    Each request gets its own session, like in production.
    """
    async def _override_get_db():
        async with session_factory() as session:
            yield session

    monkeypatch.setattr("campusmarket.services.commission_ledger.get_payment_gateway", lambda: gateway)
    app.dependency_overrides[get_db] = _override_get_db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
