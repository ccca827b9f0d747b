from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from app.database import create_tables, enable_sqlite_foreign_keys
from app.services.parking import ParkingService

T0 = datetime(2026, 3, 1, 8, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")
    enable_sqlite_foreign_keys(engine)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory):
    async with session_factory() as session:
        yield session


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def service(session_factory, clock):
    return ParkingService(session_factory=session_factory, clock=clock)


@pytest_asyncio.fixture
async def file_engine(tmp_path):
    # One connection per session, so concurrent units of work really overlap
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'parking.sqlite3'}")
    enable_sqlite_foreign_keys(engine)
    await create_tables(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def file_session_factory(file_engine):
    return async_sessionmaker(file_engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
def file_service(file_session_factory, clock):
    return ParkingService(session_factory=file_session_factory, clock=clock)
