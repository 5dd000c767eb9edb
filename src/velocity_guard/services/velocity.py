"""Velocity analysis: windowed counts, risk tiers and enforcement actions.

The analyzer keeps no state of its own between calls. History lives in
:class:`IndicationHistory`, limits come from a :class:`ConfigurationProvider`,
and enforcement is delegated to an :class:`ActionDispatcher`.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from datetime import timedelta
from enum import Enum
from typing import Any

from ..config import settings
from ..db import SessionFactory
from ..errors import VelocityGuardError
from .categories import CategoryResolver, DatabaseCategoryResolver, StaticCategoryResolver
from .configuration import (
    SECURITY_SECTION,
    CategoryLimits,
    ConfigurationClient,
    ConfigurationProvider,
)
from .dispatch import ActionDispatcher, DatabaseActionDispatcher, LoggingActionDispatcher
from .history import IndicationHistory

logger = logging.getLogger(__name__)

LOW_RISK_RATIO = 0.5
HIGH_RISK_RATIO = 0.8

BLOCK_REASON = "velocity limit exceeded"
FLAG_REASON = "high velocity detected"


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class RecommendedAction(str, Enum):
    ALLOW = "allow"
    FLAG = "flag"
    BLOCK = "block"


class ConfigNotFoundError(VelocityGuardError):
    """Raised when a category has no configured limits on a fail-closed path."""

    code = "CONFIG_NOT_FOUND"

    def __init__(self, category: str) -> None:
        super().__init__(f"No fraud detection config found for category: {category}")
        self.category = category


@dataclass(frozen=True, slots=True)
class VelocityVerdict:
    window_count: int
    ceiling: int
    soft_flag_allowed: bool
    risk_tier: RiskTier
    action: RecommendedAction

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_count": self.window_count,
            "ceiling": self.ceiling,
            "soft_flag_allowed": self.soft_flag_allowed,
            "risk_tier": self.risk_tier.value,
            "action": self.action.value,
        }


def risk_tier(window_count: int, ceiling: int) -> RiskTier:
    if window_count <= LOW_RISK_RATIO * ceiling:
        return RiskTier.LOW
    if window_count <= HIGH_RISK_RATIO * ceiling:
        return RiskTier.MEDIUM
    return RiskTier.HIGH


def recommended_action(window_count: int, ceiling: int, soft_flag_allowed: bool) -> RecommendedAction:
    # Strict ">" at 0.8 * ceiling, whereas risk_tier uses "<=" at the same ratio.
    if window_count > ceiling:
        return RecommendedAction.FLAG if soft_flag_allowed else RecommendedAction.BLOCK
    if window_count > HIGH_RISK_RATIO * ceiling:
        return RecommendedAction.FLAG
    return RecommendedAction.ALLOW


def evaluate(window_count: int, ceiling: int, soft_flag_allowed: bool) -> VelocityVerdict:
    return VelocityVerdict(
        window_count=window_count,
        ceiling=ceiling,
        soft_flag_allowed=soft_flag_allowed,
        risk_tier=risk_tier(window_count, ceiling),
        action=recommended_action(window_count, ceiling, soft_flag_allowed),
    )


class VelocityAnalyzer:
    def __init__(
        self,
        history: IndicationHistory,
        config_provider: ConfigurationProvider,
        *,
        resolver: CategoryResolver | None = None,
        dispatcher: ActionDispatcher | None = None,
        window: timedelta | None = None,
        default_category: str | None = None,
        dispatch_timeout: float | None = None,
    ) -> None:
        self.history = history
        self.config_provider = config_provider
        self.default_category = default_category or settings.velocity.default_category
        self.resolver = resolver or StaticCategoryResolver(self.default_category)
        self.dispatcher = dispatcher or LoggingActionDispatcher()
        if window is None:
            window = timedelta(seconds=settings.velocity.window_seconds)
        self.window = window
        # None reads the configured deadline; 0 disables it.
        if dispatch_timeout is None:
            dispatch_timeout = settings.velocity.dispatch_timeout
        self.dispatch_timeout = dispatch_timeout

    def window_count(self, actor_id: str) -> int:
        return self.history.count_since(actor_id, self.history.now() - self.window)

    def analyze(self, actor_id: str, limits: CategoryLimits) -> VelocityVerdict:
        """Evaluate the actor's current window against ``limits`` without recording."""

        return evaluate(self.window_count(actor_id), limits.ceiling, limits.soft_flag_allowed)

    async def analyze_actor(self, actor_id: str) -> VelocityVerdict:
        category = await self._resolve_category(actor_id)
        limits = await self._require_limits(category)
        return self.analyze(actor_id, limits)

    async def record_and_evaluate(self, actor_id: str) -> VelocityVerdict:
        """Record one indication, evaluate it and dispatch enforcement.

        Raises :class:`ConfigNotFoundError` when the actor's category has no
        limits; the indication stays recorded and nothing is dispatched.
        Dispatch failures are logged and never change the returned verdict.
        """

        category = await self._resolve_category(actor_id)
        self.history.record(actor_id)
        limits = await self._require_limits(category)
        verdict = self.analyze(actor_id, limits)
        await self._dispatch(actor_id, verdict)
        return verdict

    async def check_admission(self, actor_id: str, category: str) -> bool:
        """Return whether another indication is within the category ceiling.

        Unconfigured categories are admitted.
        """

        limits = await self.config_provider.get_category_limits(category)
        if limits is None:
            logger.info("No fraud limits for category %s, admitting affiliate %s", category, actor_id)
            return True
        return self.window_count(actor_id) <= limits.ceiling

    def invalidate_config(self, namespace: str | None = SECURITY_SECTION) -> None:
        self.config_provider.invalidate(namespace)
        logger.info("Fraud detection configuration invalidated (namespace=%s)", namespace or "*")

    def reset(self) -> None:
        self.history.reset()
        self.config_provider.invalidate(None)

    async def _resolve_category(self, actor_id: str) -> str:
        try:
            category = await self.resolver.resolve(actor_id)
        except Exception as exc:
            logger.warning(
                "Category resolution failed for affiliate %s, using %s: %s",
                actor_id,
                self.default_category,
                exc,
            )
            return self.default_category
        return category or self.default_category

    async def _require_limits(self, category: str) -> CategoryLimits:
        limits = await self.config_provider.get_category_limits(category)
        if limits is None:
            logger.error("No fraud detection config found for category %s", category)
            raise ConfigNotFoundError(category)
        return limits

    async def _dispatch(self, actor_id: str, verdict: VelocityVerdict) -> None:
        if verdict.action is RecommendedAction.BLOCK:
            call = self.dispatcher.block(actor_id, BLOCK_REASON)
        elif verdict.action is RecommendedAction.FLAG:
            call = self.dispatcher.flag(actor_id, FLAG_REASON)
        else:
            return
        try:
            if self.dispatch_timeout:
                await asyncio.wait_for(call, self.dispatch_timeout)
            else:
                await call
        except asyncio.TimeoutError:
            logger.error("Dispatch of %s for affiliate %s timed out", verdict.action.value, actor_id)
        except Exception:
            logger.exception("Dispatch of %s for affiliate %s failed", verdict.action.value, actor_id)


_default_analyzer: VelocityAnalyzer | None = None


def get_velocity_analyzer() -> VelocityAnalyzer:
    global _default_analyzer
    if _default_analyzer is None:
        _default_analyzer = VelocityAnalyzer(
            IndicationHistory(),
            ConfigurationClient(),
            resolver=DatabaseCategoryResolver(SessionFactory),
            dispatcher=DatabaseActionDispatcher(SessionFactory),
        )
    return _default_analyzer


async def close_velocity_analyzer() -> None:
    global _default_analyzer
    if _default_analyzer is None:
        return
    provider = _default_analyzer.config_provider
    _default_analyzer = None
    if isinstance(provider, ConfigurationClient):
        await provider.close()


__all__ = [
    "BLOCK_REASON",
    "FLAG_REASON",
    "ConfigNotFoundError",
    "RecommendedAction",
    "RiskTier",
    "VelocityAnalyzer",
    "VelocityVerdict",
    "close_velocity_analyzer",
    "evaluate",
    "get_velocity_analyzer",
    "recommended_action",
    "risk_tier",
]
