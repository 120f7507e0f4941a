"""Async database engine and session management."""
from collections.abc import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import declarative_base

from .config import settings

Base = declarative_base()


def create_engine(url: str | None = None) -> AsyncEngine:
    """Create an async engine for the configured database."""
    return create_async_engine(url or settings.database_url, pool_pre_ping=True)


def create_session_factory(engine_instance: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Create a session factory bound to an engine."""
    return async_sessionmaker(engine_instance, expire_on_commit=False)


engine = create_engine()
AsyncSessionLocal = create_session_factory(engine)


async def get_db() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding a database session."""
    async with AsyncSessionLocal() as session:
        yield session
