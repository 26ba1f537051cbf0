"""
API test fixtures: the real application in-process, on mock upstreams.

Each test gets a fresh app (its own storage), once on the in-memory
backend and once on an in-memory SQLite database.
"""
import pytest
from fastapi.testclient import TestClient

from moonfolio.app.config import Settings
from moonfolio.app.main import create_app
from moonfolio.app.services.chain_reader_providers.mockchain import MockChainProvider
from moonfolio.app.services.price_source_providers.mockprov import MockPriceProvider



def build_settings(backend: str) -> Settings:
    return Settings(
        STORAGE_BACKEND=backend,
        DATABASE_URL="sqlite://",
        PRICE_PROVIDER="mockprov",
        CHAIN_PROVIDER="mockchain",
        PRICE_REFRESH_INTERVAL_SECONDS=0,
        TRACKED_PRICE_IDS=["bitcoin", "ethereum"],
        LOG_TO_FILE=False,
        LOG_LEVEL="WARNING",
        )


@pytest.fixture
def price_provider() -> MockPriceProvider:
    return MockPriceProvider()


@pytest.fixture
def chain_provider() -> MockChainProvider:
    return MockChainProvider()


@pytest.fixture(params=["memory", "sql"])
def client(request, price_provider, chain_provider):
    app = create_app(build_settings(request.param), price_provider=price_provider, chain_provider=chain_provider)
    with TestClient(app, base_url="http://testserver") as test_client:
        yield test_client


@pytest.fixture
def runtime(client):
    return client.app.state.runtime
