"""Async database session and engine configuration."""

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine

from pricescan.config import settings
from pricescan.models import Base


def build_engine(database_url: str) -> AsyncEngine:
    # SQLite doesn't support pool_size / max_overflow / pool_pre_ping
    engine_kwargs: dict = {"echo": settings.DEBUG}
    if not database_url.startswith("sqlite"):
        engine_kwargs.update(pool_size=20, max_overflow=10, pool_pre_ping=True)
    return create_async_engine(database_url, **engine_kwargs)


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


engine = build_engine(settings.DATABASE_URL)

async_session_factory = build_session_factory(engine)


async def create_tables(target: AsyncEngine = engine) -> None:
    """Create missing tables (no migrations for the job/result store)."""
    async with target.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
