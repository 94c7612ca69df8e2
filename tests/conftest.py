"""Shared pytest fixtures for venue tracker tests."""
import os
from typing import AsyncGenerator, Generator

# Must be set before venue_tracker.core.config is imported anywhere
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("RATE_LIMIT_ENABLED", "false")
os.environ.setdefault("LOG_JSON", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from venue_tracker.client import ClientCache, RegistryClient
from venue_tracker.models import DEFAULT_CALIBRATION
from venue_tracker.services.registry import LivenessPolicy, Registry

# Fixed start time for fake clocks (epoch ms)
T0 = 1_700_000_000_000


class FakeClock:
    """Manually advanced epoch-ms clock."""

    def __init__(self, start: int = T0):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def registry(clock: FakeClock) -> Registry:
    """Fresh registry on a fake clock with the default policy."""
    return Registry(liveness=LivenessPolicy(window_ms=120_000), clock=clock)


@pytest.fixture
def calibration():
    return DEFAULT_CALIBRATION


@pytest.fixture(scope="function")
def test_client(registry: Registry) -> Generator[TestClient, None, None]:
    """TestClient whose routes use the fixture registry."""
    from venue_tracker.api.deps import get_registry
    from venue_tracker.main import app

    app.dependency_overrides[get_registry] = lambda: registry
    previous = app.state.registry
    app.state.registry = registry

    yield TestClient(app)

    app.state.registry = previous
    app.dependency_overrides.clear()


@pytest.fixture(scope="function")
async def async_client(registry: Registry) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP client bound to the app in memory."""
    from venue_tracker.api.deps import get_registry
    from venue_tracker.main import app

    app.dependency_overrides[get_registry] = lambda: registry
    previous = app.state.registry
    app.state.registry = registry

    async with AsyncClient(
        transport=ASGITransport(app=app),
        base_url="http://test"
    ) as client:
        yield client

    app.state.registry = previous
    app.dependency_overrides.clear()


@pytest.fixture
async def registry_client(async_client: AsyncClient) -> AsyncGenerator[RegistryClient, None]:
    """RegistryClient talking to the in-memory app."""
    client = RegistryClient("http://test", http_client=async_client)
    yield client
    await client.close()


@pytest.fixture
def cache(tmp_path) -> ClientCache:
    return ClientCache(tmp_path / "cache.json")
