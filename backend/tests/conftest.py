import os
from collections.abc import AsyncGenerator

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

# Ensure tests run with testing env configuration
os.environ["APP_ENV"] = "testing"

from helpers import OPS_TOKEN, SAMPLE_EVENTS, FakeEventClient, FakeRedis, make_settings  # noqa: E402
from rafflecache.adapters.indexer.graphql_client import IndexerClient  # noqa: E402
from rafflecache.core.config import Settings  # noqa: E402
from rafflecache.core.resources import AppResources, build_resources  # noqa: E402
from rafflecache.main import app  # noqa: E402


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture(autouse=True)
def _reset_indexer_circuit():
    IndexerClient._consecutive_failures = 0
    IndexerClient._circuit_open_until = None
    yield
    IndexerClient._consecutive_failures = 0
    IndexerClient._circuit_open_until = None


@pytest.fixture
def api_resources(fake_redis: FakeRedis) -> AppResources:
    """Resources wired to in-memory fakes; no Postgres, Redis or indexer."""
    return build_resources(
        make_settings(ops_internal_token=OPS_TOKEN),
        redis=fake_redis,
        session_factory=None,
        event_client=FakeEventClient(SAMPLE_EVENTS),
    )


@pytest_asyncio.fixture
async def async_client(api_resources: AppResources) -> AsyncGenerator[AsyncClient, None]:
    """
    Fixture for an async HTTPX test client hooked to the FastAPI app.
    ASGITransport does not run the lifespan, so resources are installed
    on app.state directly and drained afterwards.
    """
    app.state.resources = api_resources
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    await api_resources.background.drain(timeout=5)
    app.state.resources = None
