"""Async SQLAlchemy engine and session factory.

One engine with connection pooling for the whole process; each request
gets its own AsyncSession through the get_db dependency.
"""

from fastapi import Depends
from sqlalchemy.ext.asyncio import (
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from flowapi.config import settings
from flowapi.db.models import Base
from flowapi.db.store import SqlUserStore, UserStore

# Connection pool: min 5, max 20 connections.
# echo=True in dev to see SQL queries.
engine = create_async_engine(
    settings.database_url,
    echo=settings.debug,
    pool_size=5,
    max_overflow=15,
    pool_timeout=10,
)

# Session factory: each request gets its own session.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


async def get_db() -> AsyncSession:
    """FastAPI dependency — yields a session per request, auto-closes."""
    async with async_session_factory() as session:
        try:
            yield session
        finally:
            await session.close()


async def get_user_store(db: AsyncSession = Depends(get_db)) -> UserStore:
    """FastAPI dependency — the Postgres-backed UserStore for this request."""
    return SqlUserStore(db)


async def create_schema() -> None:
    """Create all tables that don't exist yet."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
