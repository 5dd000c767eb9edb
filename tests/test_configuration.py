import httpx
import pytest
import pytest_asyncio

from velocity_guard.config import ConfigurationServiceConfig
from velocity_guard.services.configuration import (
    CategoryLimits,
    ConfigurationClient,
    parse_category_limits,
)


class ConfigService:
    def __init__(self, fraud_detection: dict) -> None:
        self.fraud_detection = fraud_detection
        self.requests: list[str] = []
        self.fail = False

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request.url.path)
        if self.fail:
            return httpx.Response(503, json={"error": "unavailable"})
        return httpx.Response(200, json={"data": {"fraudDetection": self.fraud_detection}})


@pytest.fixture
def service():
    return ConfigService({"afiliado": {"indicationsPerHour": 7, "flagEnabled": False}})


@pytest_asyncio.fixture
async def client(service):
    config = ConfigurationServiceConfig(base_url="http://config.test/api", cache_ttl=300, timeout=1)
    client = ConfigurationClient(config, transport=httpx.MockTransport(service))
    yield client
    await client.close()


def test_category_limits_parse_wire_keys():
    limits = CategoryLimits.model_validate({"indicationsPerHour": 3, "flagEnabled": True})
    assert limits.ceiling == 3
    assert limits.soft_flag_allowed is True


@pytest.mark.parametrize(
    "security",
    [
        {},
        {"fraudDetection": {}},
        {"fraudDetection": {"afiliado": {"indicationsPerHour": 0, "flagEnabled": True}}},
        {"fraudDetection": {"afiliado": {"flagEnabled": True}}},
    ],
)
def test_missing_or_malformed_limits_are_absent(security):
    assert parse_category_limits(security, "afiliado") is None


@pytest.mark.asyncio
async def test_sections_are_cached(client, service):
    first = await client.get_category_limits("afiliado")
    second = await client.get_category_limits("afiliado")

    assert first == second == CategoryLimits(ceiling=7, soft_flag_allowed=False)
    assert service.requests == ["/api/configurations/security"]


@pytest.mark.asyncio
async def test_unknown_category_is_absent(client):
    assert await client.get_category_limits("lenda") is None


@pytest.mark.asyncio
async def test_invalidate_forces_refetch(client, service):
    await client.get_category_limits("afiliado")
    service.fraud_detection["afiliado"]["indicationsPerHour"] = 9

    client.invalidate("security")
    limits = await client.get_category_limits("afiliado")

    assert limits.ceiling == 9
    assert len(service.requests) == 2


@pytest.mark.asyncio
async def test_invalidate_twice_behaves_like_once(client, service):
    await client.get_category_limits("afiliado")

    client.invalidate("security")
    client.invalidate("security")
    await client.get_category_limits("afiliado")
    await client.get_category_limits("afiliado")

    assert len(service.requests) == 2


@pytest.mark.asyncio
async def test_invalidate_other_namespace_keeps_security(client, service):
    await client.get_category_limits("afiliado")
    client.invalidate("rankings")
    await client.get_category_limits("afiliado")

    assert len(service.requests) == 1


@pytest.mark.asyncio
async def test_unreachable_service_falls_back_to_defaults(client, service):
    service.fail = True

    limits = await client.get_category_limits("afiliado")

    assert limits == CategoryLimits(ceiling=5, soft_flag_allowed=True)
    assert await client.get_category_limits("expert") == CategoryLimits(ceiling=12, soft_flag_allowed=False)


@pytest.mark.asyncio
async def test_unreachable_service_serves_last_known_section(client, service):
    await client.get_category_limits("afiliado")
    service.fail = True
    client._cache.clear()  # TTL expiry

    limits = await client.get_category_limits("afiliado")

    assert limits.ceiling == 7
    assert len(service.requests) == 2
