"""Database layer: async engine, the per-request session and schema creation.

One ``AsyncSession`` per request through ``get_db``; the request's work is
committed when the handler returns and rolled back if it raises.
"""

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from attendance_console.config import settings

engine = create_async_engine(
    settings.DATABASE_URL,
    echo=settings.DB_ECHO,
    pool_size=settings.DB_POOL_SIZE,
    max_overflow=settings.DB_MAX_OVERFLOW,
    pool_pre_ping=True,
)

# Objects stay readable after commit; services return ORM rows to routers.
async_session_factory = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """Declarative base shared by every attendance console model."""


async def get_db() -> AsyncIterator[AsyncSession]:
    """Yield a session for one request, committing on success."""
    async with async_session_factory() as session:
        try:
            yield session
            await session.commit()
        except Exception:
            await session.rollback()
            raise


async def create_tables() -> None:
    """Create any missing tables (startup with AUTO_CREATE_TABLES)."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
