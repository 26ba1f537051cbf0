"""
Shared pytest fixtures.

Test mode and console-only logging are switched on BEFORE any app module
is imported, so importing moonfolio.app.main never touches the real
database or the log directory.
"""
import os

os.environ.setdefault("MOONFOLIO_TEST_MODE", "1")
os.environ.setdefault("LOG_TO_FILE", "false")
os.environ.setdefault("LOG_LEVEL", "WARNING")

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession

from moonfolio.app.db.session import create_schema, get_async_engine
from moonfolio.app.services.chain_reader import ChainService
from moonfolio.app.services.chain_reader_providers.mockchain import MockChainProvider
from moonfolio.app.services.ledger_service import LedgerService
from moonfolio.app.services.ledger_store_memory import MemoryDatabase, MemoryLedgerStore
from moonfolio.app.services.ledger_store_sql import SqlLedgerStore
from moonfolio.app.services.price_source import PriceService
from moonfolio.app.services.price_source_providers.mockprov import MockPriceProvider

IN_MEMORY_SQLITE = "sqlite://"


# ============================================================================
# STORAGE
# ============================================================================

@pytest_asyncio.fixture
async def sql_engine():
    """Fresh in-memory SQLite database with the full schema."""
    engine = get_async_engine(IN_MEMORY_SQLITE)
    await create_schema(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request):
    """The same tests run against both ledger store implementations."""
    if request.param == "memory":
        yield MemoryLedgerStore(MemoryDatabase())
        return

    engine = get_async_engine(IN_MEMORY_SQLITE)
    await create_schema(engine)
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield SqlLedgerStore(session)
    await engine.dispose()


@pytest.fixture
def ledger(store) -> LedgerService:
    return LedgerService(store)


# ============================================================================
# UPSTREAM MOCKS
# ============================================================================

@pytest.fixture
def price_provider() -> MockPriceProvider:
    return MockPriceProvider()


@pytest.fixture
def price_service(price_provider) -> PriceService:
    return PriceService(price_provider, batch_size=10, timeout_seconds=1.0, max_age_seconds=120.0)


@pytest.fixture
def chain_provider() -> MockChainProvider:
    return MockChainProvider()


@pytest.fixture
def chain_service(chain_provider) -> ChainService:
    return ChainService(chain_provider, timeout_seconds=1.0)
