"""Integration test fixtures with a real database.

Each test gets its own SQLite file so that separate connections (the
counter runs in its own transaction) see each other's commits.
"""

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date
from decimal import Decimal
from typing import Any

import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from freight_ledger.api.app import create_app
from freight_ledger.api.dependencies import get_session_maker
from freight_ledger.database import make_session_factory
from freight_ledger.models import Base, Driver, Load
from freight_ledger.services.sequence_service import SequenceService

TODAY = date(2025, 3, 20)


@pytest_asyncio.fixture
async def test_engine(tmp_path):
    """Create test database engine."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}", echo=False)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session_factory(test_engine) -> async_sessionmaker[AsyncSession]:
    return make_session_factory(test_engine)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Get database session for integration tests."""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture
async def sequences(session_factory) -> SequenceService:
    return SequenceService(session_factory, max_attempts=10, today=lambda: TODAY)


@pytest_asyncio.fixture
async def seed(db_session: AsyncSession) -> Callable[..., Awaitable[None]]:
    """Add rows and commit them, so other connections can see them."""

    async def add(*rows: Any) -> None:
        db_session.add_all(rows)
        await db_session.commit()

    return add


@pytest_asyncio.fixture
async def driver(seed, make_driver) -> Driver:
    """An 88% owner operator."""
    driver = make_driver()
    await seed(driver)
    return driver


@pytest_asyncio.fixture
async def delivered_loads(seed, make_load, driver) -> list[Load]:
    """Two delivered $1,000 loads for the driver, billed to Acme Foods."""
    loads = [
        make_load(driver_id=driver.driver_id, fsc_amount=Decimal("100")),
        make_load(driver_id=driver.driver_id, detention_amount=Decimal("50")),
    ]
    await seed(*loads)
    return loads


@pytest_asyncio.fixture
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """Create async HTTP client for API testing."""
    app = create_app()
    app.dependency_overrides[get_session_maker] = lambda: session_factory
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
