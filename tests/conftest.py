from datetime import datetime, timedelta, timezone

import pytest

from velocity_guard.services.configuration import CategoryLimits, StaticConfigurationProvider
from velocity_guard.services.history import IndicationHistory
from velocity_guard.services.velocity import VelocityAnalyzer


class FakeClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.current = start or datetime(2024, 6, 1, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current += timedelta(**kwargs)


class RecordingDispatcher:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str, str]] = []

    async def block(self, actor_id: str, reason: str) -> None:
        self.calls.append(("block", actor_id, reason))

    async def flag(self, actor_id: str, reason: str) -> None:
        self.calls.append(("flag", actor_id, reason))


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def history(clock):
    return IndicationHistory(clock=clock)


@pytest.fixture
def dispatcher():
    return RecordingDispatcher()


@pytest.fixture
def limits():
    return {
        "afiliado": CategoryLimits(ceiling=5, soft_flag_allowed=False),
        "jogador": CategoryLimits(ceiling=5, soft_flag_allowed=True),
    }


@pytest.fixture
def analyzer(history, limits, dispatcher):
    return VelocityAnalyzer(
        history,
        StaticConfigurationProvider(limits),
        dispatcher=dispatcher,
        default_category="afiliado",
    )
