"""Affiliate category lookup."""

from __future__ import annotations

from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import VelocityGuardError
from ..models import Affiliate


class CategoryResolutionError(VelocityGuardError):
    """Raised when the category source cannot be reached."""

    code = "RESOLVER_UNAVAILABLE"


class CategoryResolver(Protocol):
    async def resolve(self, actor_id: str) -> str | None:
        ...


class StaticCategoryResolver:
    def __init__(self, category: str) -> None:
        self.category = category

    async def resolve(self, actor_id: str) -> str | None:
        return self.category


class DatabaseCategoryResolver:
    """Reads the category stored on the affiliate row."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def resolve(self, actor_id: str) -> str | None:
        try:
            async with self._session_factory() as session:
                affiliate = await session.get(Affiliate, actor_id)
        except SQLAlchemyError as exc:
            raise CategoryResolutionError(f"Category lookup failed for {actor_id}") from exc
        if not affiliate:
            return None
        return affiliate.category


__all__ = [
    "CategoryResolutionError",
    "CategoryResolver",
    "DatabaseCategoryResolver",
    "StaticCategoryResolver",
]
