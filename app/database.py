from contextlib import asynccontextmanager

from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.orm import DeclarativeBase

from app.config import settings


def _get_database_url() -> str:
    url = settings.database_url
    if url.startswith("postgres://"):
        url = url.replace("postgres://", "postgresql+asyncpg://", 1)
    elif url.startswith("postgresql://"):
        url = url.replace("postgresql://", "postgresql+asyncpg://", 1)
    return url


def _is_sqlite() -> bool:
    return settings.database_url.startswith("sqlite")


def enable_sqlite_foreign_keys(target: AsyncEngine) -> None:
    @event.listens_for(target.sync_engine, "connect")
    def set_sqlite_pragma(dbapi_conn, connection_record):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()


_database_url = _get_database_url()

_engine_kwargs: dict = {"echo": False}
if not _is_sqlite():
    _engine_kwargs.update(pool_size=5, max_overflow=10, pool_pre_ping=True)

engine = create_async_engine(_database_url, **_engine_kwargs)
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

if _is_sqlite():
    enable_sqlite_foreign_keys(engine)


class Base(DeclarativeBase):
    pass


async def create_tables(target: AsyncEngine | None = None):
    async with (target or engine).begin() as conn:
        from app.models import vehicle, member, session, payment, configuration  # noqa: F401
        await conn.run_sync(Base.metadata.create_all)


@asynccontextmanager
async def unit_of_work(session_factory: async_sessionmaker = async_session):
    """Open a session inside one transaction: commit on exit, roll back on any error."""
    async with session_factory() as session:
        async with session.begin():
            yield session


async def get_db():
    async with async_session() as session:
        yield session
