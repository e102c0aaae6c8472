# tests/conftest.py

from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest

from core.lifecycle import TaskLifecycleEngine
from core.store import InMemoryTaskStore

UTC = ZoneInfo("UTC")


class FakeClock:
    """Controllable clock passed to the engine instead of datetime.now."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def set(self, *args: int, tz=UTC) -> datetime:
        self.now = datetime(*args, tzinfo=tz)
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 8, 0, tzinfo=UTC))


@pytest.fixture()
def store() -> InMemoryTaskStore:
    return InMemoryTaskStore()


@pytest.fixture()
def engine(store: InMemoryTaskStore, clock: FakeClock) -> TaskLifecycleEngine:
    """Permissive engine, local day in UTC."""
    return TaskLifecycleEngine(store, tz=UTC, clock=clock, strict_transitions=False)


@pytest.fixture()
def strict_engine(store: InMemoryTaskStore, clock: FakeClock) -> TaskLifecycleEngine:
    return TaskLifecycleEngine(store, tz=UTC, clock=clock, strict_transitions=True)
