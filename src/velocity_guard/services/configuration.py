"""Category limits from the configuration service."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Protocol

import httpx
from cachetools import TTLCache
from pydantic import BaseModel, ConfigDict, Field, PositiveInt, ValidationError

from ..config import ConfigurationServiceConfig, settings

logger = logging.getLogger(__name__)

SECURITY_SECTION = "security"

# Served when the configuration service is unreachable and nothing was cached yet.
DEFAULT_CONFIGURATION: dict[str, dict[str, Any]] = {
    SECURITY_SECTION: {
        "fraudDetection": {
            "jogador": {"indicationsPerHour": 2, "flagEnabled": True},
            "iniciante": {"indicationsPerHour": 3, "flagEnabled": True},
            "afiliado": {"indicationsPerHour": 5, "flagEnabled": True},
            "profissional": {"indicationsPerHour": 8, "flagEnabled": True},
            "expert": {"indicationsPerHour": 12, "flagEnabled": False},
            "mestre": {"indicationsPerHour": 20, "flagEnabled": False},
            "lenda": {"indicationsPerHour": 50, "flagEnabled": False},
        }
    },
}


class CategoryLimits(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)

    ceiling: PositiveInt = Field(alias="indicationsPerHour")
    soft_flag_allowed: bool = Field(alias="flagEnabled")


class ConfigurationProvider(Protocol):
    async def get_category_limits(self, category: str) -> CategoryLimits | None:
        ...

    def invalidate(self, namespace: str | None = None) -> None:
        ...


def parse_category_limits(security: Mapping[str, Any], category: str) -> CategoryLimits | None:
    """Extract limits for ``category`` from a security section.

    Returns ``None`` when the category has no entry or the entry is malformed;
    callers decide whether that means fail-open or fail-closed.
    """

    table = security.get("fraudDetection")
    if not isinstance(table, Mapping):
        return None
    raw = table.get(category)
    if raw is None:
        return None
    try:
        return CategoryLimits.model_validate(raw)
    except ValidationError as exc:
        logger.warning("Ignoring malformed fraud limits for category %s: %s", category, exc)
        return None


class ConfigurationClient:
    """Cached client for the configuration management service."""

    def __init__(
        self,
        config: ConfigurationServiceConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or settings.configuration
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            headers={"Accept": "application/json"},
            timeout=self._config.timeout,
            transport=transport,
        )
        self._cache: TTLCache[str, dict[str, Any]] = TTLCache(maxsize=32, ttl=self._config.cache_ttl)
        self._last_known: dict[str, dict[str, Any]] = {}

    async def close(self) -> None:
        await self._client.aclose()

    @property
    def is_closed(self) -> bool:
        return self._client.is_closed

    async def get_configuration(self, section: str) -> dict[str, Any]:
        cached = self._cache.get(section)
        if cached is not None:
            return cached
        try:
            response = await self._client.get(f"/configurations/{section}")
            response.raise_for_status()
            payload = response.json()
        except (httpx.HTTPError, ValueError) as exc:
            logger.error("Configuration fetch for section %s failed: %s", section, exc)
            return self._fallback(section)
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            logger.error("Configuration service returned no data for section %s", section)
            return self._fallback(section)
        self._cache[section] = data
        self._last_known[section] = data
        return data

    def _fallback(self, section: str) -> dict[str, Any]:
        if section in self._last_known:
            logger.warning("Serving stale configuration for section %s", section)
            return self._last_known[section]
        return DEFAULT_CONFIGURATION.get(section, {})

    async def get_security_config(self) -> dict[str, Any]:
        return await self.get_configuration(SECURITY_SECTION)

    async def get_category_limits(self, category: str) -> CategoryLimits | None:
        return parse_category_limits(await self.get_security_config(), category)

    def invalidate(self, namespace: str | None = None) -> None:
        if namespace:
            self._cache.pop(namespace, None)
            self._last_known.pop(namespace, None)
        else:
            self._cache.clear()
            self._last_known.clear()


class StaticConfigurationProvider:
    """Provider backed by a fixed mapping of category to limits."""

    def __init__(self, limits: Mapping[str, CategoryLimits]) -> None:
        self._limits = dict(limits)

    async def get_category_limits(self, category: str) -> CategoryLimits | None:
        return self._limits.get(category)

    def invalidate(self, namespace: str | None = None) -> None:
        """Nothing is cached, so there is nothing to drop."""


__all__ = [
    "CategoryLimits",
    "ConfigurationClient",
    "ConfigurationProvider",
    "DEFAULT_CONFIGURATION",
    "SECURITY_SECTION",
    "StaticConfigurationProvider",
    "parse_category_limits",
]
