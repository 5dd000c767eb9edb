"""Executors for block and flag decisions."""

from __future__ import annotations

import logging
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from ..errors import VelocityGuardError
from ..models import Affiliate, AffiliateStatus, AuditLog, ReviewFlag, ReviewFlagStatus

logger = logging.getLogger(__name__)

AUDIT_ACTOR = "velocity-guard"


class DispatchError(VelocityGuardError):
    code = "DISPATCH_FAILURE"


class ActionDispatcher(Protocol):
    async def block(self, actor_id: str, reason: str) -> None:
        ...

    async def flag(self, actor_id: str, reason: str) -> None:
        ...


class LoggingActionDispatcher:
    async def block(self, actor_id: str, reason: str) -> None:
        logger.warning("Applying automatic block for affiliate %s: %s", actor_id, reason)

    async def flag(self, actor_id: str, reason: str) -> None:
        logger.warning("Flagging affiliate %s for manual review: %s", actor_id, reason)


class DatabaseActionDispatcher:
    """Suspends affiliates and opens review flags.

    Failures are logged and swallowed: callers treat dispatch as
    fire-and-forget.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def block(self, actor_id: str, reason: str) -> None:
        try:
            async with self._session_factory() as session:
                affiliate = await session.get(Affiliate, actor_id)
                if not affiliate:
                    raise DispatchError(f"Affiliate {actor_id} not found")
                before = {"status": affiliate.status.value}
                affiliate.status = AffiliateStatus.SUSPENDED
                affiliate.status_reason = reason
                session.add(
                    AuditLog(
                        actor=AUDIT_ACTOR,
                        action="block",
                        entity="affiliate",
                        entity_id=actor_id,
                        before=before,
                        after={"status": affiliate.status.value, "reason": reason},
                    )
                )
                await session.commit()
        except (SQLAlchemyError, DispatchError):
            logger.exception("Automatic block failed for affiliate %s", actor_id)
            return
        logger.warning("Affiliate %s suspended: %s", actor_id, reason)

    async def flag(self, actor_id: str, reason: str) -> None:
        try:
            async with self._session_factory() as session:
                flag = ReviewFlag(affiliate_id=actor_id, reason=reason, status=ReviewFlagStatus.OPEN)
                session.add(flag)
                await session.flush()
                session.add(
                    AuditLog(
                        actor=AUDIT_ACTOR,
                        action="flag",
                        entity="review_flag",
                        entity_id=str(flag.id),
                        before=None,
                        after={"affiliate_id": actor_id, "reason": reason},
                    )
                )
                await session.commit()
        except SQLAlchemyError:
            logger.exception("Review flag failed for affiliate %s", actor_id)
            return
        logger.warning("Affiliate %s flagged for manual review: %s", actor_id, reason)


__all__ = [
    "AUDIT_ACTOR",
    "ActionDispatcher",
    "DatabaseActionDispatcher",
    "DispatchError",
    "LoggingActionDispatcher",
]
