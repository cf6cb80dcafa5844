from datetime import datetime, timedelta, timezone

import fakeredis
import pytest
from fastapi.testclient import TestClient

from pastevault.config import Settings
from pastevault.database import InMemoryStore, RedisStore
from pastevault.engine import PasteStore
from pastevault.main import create_app

T0 = datetime(2026, 1, 1, tzinfo=timezone.utc)


class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = T0):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += timedelta(seconds=seconds)


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def memory_backend():
    return InMemoryStore()


@pytest.fixture
def redis_backend():
    server = fakeredis.FakeServer()
    return RedisStore(fakeredis.FakeRedis(server=server, decode_responses=True))


@pytest.fixture(params=["memory", "redis"])
def backend(request):
    """Every engine test runs against both backends."""
    return request.getfixturevalue(f"{request.param}_backend")


@pytest.fixture
def store(backend, clock):
    return PasteStore(backend, clock=clock)


@pytest.fixture
def test_settings():
    settings = Settings()
    settings.TEST_MODE = True
    settings.REAPER_ENABLED = False
    settings.APP_DOMAIN = "http://testserver"
    return settings


@pytest.fixture
def client(memory_backend, clock, test_settings):
    """TestClient over an in-memory store with a manual clock."""
    app = create_app(PasteStore(memory_backend, clock=clock), test_settings)
    with TestClient(app) as c:
        yield c
