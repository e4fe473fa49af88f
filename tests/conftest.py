"""
Pytest configuration and fixtures
"""

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool
from datetime import datetime, timedelta
from typing import AsyncGenerator
from models import Base, Company, Hotel, ScrapeSource
from refresh.clients.base import FetchClient
from schemas.refresh import FetchResult, SourceInfo
import asyncio

TEST_PROVIDER = "TestProvider"


class FakeFetchClient(FetchClient):
    """Fetch client returning canned results and recording every call"""

    def __init__(self, handler=None, provider: str = TEST_PROVIDER, delay: float = 0):
        self.provider = provider
        self.handler = handler or (
            lambda locator, window: FetchResult(
                ok=True, room_label="Deluxe King", rate_text="$199.00 nightly"
            )
        )
        self.delay = delay
        self.calls = []

    async def fetch(self, locator, window):
        self.calls.append((locator, window))
        if self.delay:
            await asyncio.sleep(self.delay)
        result = self.handler(locator, window)
        if asyncio.iscoroutine(result):
            result = await result
        return result

    def validate_locator(self, locator):
        if locator.startswith("invalid"):
            return f"invalid source locator '{locator}'"
        return super().validate_locator(locator)


class MutableClock:
    """Clock whose time only moves when a test moves it"""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs):
        self.now = self.now + timedelta(**kwargs)


@pytest_asyncio.fixture(scope="function")
async def test_engine(tmp_path):
    """Create a file-backed SQLite engine with all tables"""
    engine = create_async_engine(
        f"sqlite+aiosqlite:///{tmp_path / 'refresh_test.db'}",
        echo=False,
        poolclass=NullPool,  # Every session gets its own connection
    )

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest.fixture
def session_factory(test_engine):
    """Session factory bound to the test engine"""
    return async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest_asyncio.fixture(scope="function")
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """Create database session for tests"""
    async with session_factory() as session:
        yield session
        await session.rollback()


@pytest_asyncio.fixture(scope="function")
async def seeded(db_session):
    """A company, one of its hotels and a registered source for the hotel"""
    company = Company(name="Seaside Group")
    db_session.add(company)
    await db_session.flush()

    hotel = Hotel(name="Seaside Inn", location="Lisbon", company_id=company.id)
    db_session.add(hotel)
    await db_session.flush()

    source = ScrapeSource(
        hotel_id=hotel.id,
        user_id=None,
        provider=TEST_PROVIDER,
        source_locator="12345",
        created_at=datetime(2025, 1, 1, 0, 0, 0),
    )
    db_session.add(source)
    await db_session.commit()

    return {
        "company": company,
        "hotel": hotel,
        "source": source,
        "source_info": SourceInfo(
            source_id=source.id,
            hotel_id=hotel.id,
            user_id=None,
            provider=TEST_PROVIDER,
            locator="12345",
        ),
    }


@pytest.fixture
def clock():
    return MutableClock(datetime(2025, 3, 1, 12, 0, 0))


@pytest.fixture
def fake_client():
    return FakeFetchClient()


@pytest.fixture
def fake_client_cls():
    return FakeFetchClient
