"""Shared fixtures for the StudyTrack test suite."""

from datetime import datetime, timedelta

import pytest

from studytrack.core.clock import Clock
from studytrack.persistence.store import StudyStore

T0 = datetime(2025, 3, 10, 9, 0, 0)


class FakeClock(Clock):
    """Manually advanced clock. Monotonic and wall time move together."""

    def __init__(self) -> None:
        self.ms = 0.0

    def now_ms(self) -> float:
        return self.ms

    def wall(self) -> datetime:
        return T0 + timedelta(milliseconds=self.ms)

    def advance(self, seconds: float) -> None:
        self.ms += seconds * 1000.0


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store():
    """Create an in-memory StudyStore for each test."""
    s = StudyStore(":memory:")
    s.init_db()
    yield s
    s.close()
