"""Shared pytest fixtures for codedrop tests."""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from codedrop.config import Settings
from codedrop.drop_service import build_service
from codedrop.drop_store import DropStore
from codedrop.main import create_app
from codedrop.retrieval_guard import RetrievalGuard


class FakeClock:
    """Manually advanced clock, in epoch seconds."""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings():
    return Settings(database_path=":memory:", debug=True)


@pytest_asyncio.fixture
async def store(clock):
    store = DropStore(clock=clock)
    await store.open()
    yield store
    await store.close()


@pytest.fixture
def guard(clock):
    return RetrievalGuard(max_attempts=5, cooldown_seconds=30, stale_after_seconds=120, clock=clock)


@pytest_asyncio.fixture
async def service(settings, clock):
    service = build_service(settings, clock=clock)
    await service.store.open()
    yield service
    await service.store.close()


@pytest.fixture
def client(settings, clock):
    app = create_app(settings, clock=clock)
    with TestClient(app) as client:
        yield client
