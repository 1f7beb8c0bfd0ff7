"""Shared fixtures for backend tests."""

import pytest

from app.services.storage import InMemoryDurableStore


class FakeClock:
    """Manually advanced millisecond clock."""

    def __init__(self, start: int = 1) -> None:
        self.now = start

    def __call__(self) -> int:
        return self.now

    def set(self, value: int) -> None:
        self.now = value

    def advance(self, delta: int = 1) -> int:
        self.now += delta
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def memory_store() -> InMemoryDurableStore:
    return InMemoryDurableStore()
