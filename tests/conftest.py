"""Shared fixtures: a reference search moment and a fake clock/sleep."""

from datetime import date, time

import pytest

from betransport.models import SearchOptions


class FakeClock:
    """Manually advanced monotonic clock."""

    def __init__(self, start: float = 1000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class RecordingSleep:
    """Async sleep replacement that records requested delays without waiting."""

    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def options() -> SearchOptions:
    return SearchOptions(date=date(2024, 2, 7), time=time(8, 0))


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def recording_sleep() -> RecordingSleep:
    return RecordingSleep()
