"""Engine and sessions for the enforcement tables.

Only affiliates, review flags and the audit trail live in the database;
indication history stays in memory.
"""

from __future__ import annotations

from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from .config import settings
from .models import Base

engine = create_async_engine(settings.database_url, echo=False, pool_pre_ping=True)
SessionFactory = async_sessionmaker(engine, expire_on_commit=False)


async def create_tables() -> None:
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def dispose_engine() -> None:
    await engine.dispose()


async def get_session() -> AsyncIterator[AsyncSession]:
    """FastAPI dependency yielding one session per request."""

    async with SessionFactory() as session:
        yield session


__all__ = [
    "SessionFactory",
    "create_tables",
    "dispose_engine",
    "engine",
    "get_session",
]
