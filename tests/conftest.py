import pytest
from fastapi.testclient import TestClient

from safeping.api import create_app
from safeping.signaling import SessionStore


class FakeClock:
    """Manually advanced stand-in for ``time.time``."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def store(clock):
    return SessionStore(clock=clock)


@pytest.fixture
def client(store):
    return TestClient(create_app(store))
