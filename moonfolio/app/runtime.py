"""
Application runtime: the long-lived collaborators of one FastAPI app.

Built once in the lifespan from Settings and stored on ``app.state.runtime``:
- storage backend (async engine or in-memory database), chosen by STORAGE_BACKEND
- PriceService over the configured price provider
- ChainService over the configured chain provider
- PriceBroadcaster (refresh timer + WebSocket subscribers)
- SessionRegistry (active portfolio per client)
"""
from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import AsyncIterator, Optional

from alembic import command
from alembic.config import Config
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession

from moonfolio.app.config import Settings
from moonfolio.app.db.session import create_schema, get_async_engine
from moonfolio.app.logging_config import get_logger
from moonfolio.app.services.chain_reader import ChainReaderProvider, ChainService
from moonfolio.app.services.ledger_store import LedgerStore
from moonfolio.app.services.ledger_store_memory import MemoryDatabase, MemoryLedgerStore
from moonfolio.app.services.ledger_store_sql import SqlLedgerStore
from moonfolio.app.services.price_broadcaster import PriceBroadcaster
from moonfolio.app.services.price_source import PriceService, PriceSourceProvider
from moonfolio.app.services.provider_registry import ChainProviderRegistry, PriceProviderRegistry
from moonfolio.app.services.session_service import SessionRegistry

logger = get_logger(__name__)

ALEMBIC_DIR = Path(__file__).parent.parent / "alembic"
IN_MEMORY_SQLITE_URLS = ("sqlite://", "sqlite:///:memory:")


@dataclass
class AppRuntime:
    settings: Settings
    price_service: PriceService
    chain_service: ChainService
    broadcaster: PriceBroadcaster
    sessions: SessionRegistry = field(default_factory=SessionRegistry)
    engine: Optional[AsyncEngine] = None
    memory_db: Optional[MemoryDatabase] = None

    @asynccontextmanager
    async def ledger_store(self) -> AsyncIterator[LedgerStore]:
        """One LedgerStore per request (own AsyncSession on the SQL backend)."""
        retries = self.settings.LEDGER_MAX_RETRIES
        if self.memory_db is not None:
            yield MemoryLedgerStore(self.memory_db, max_retries=retries)
            return
        async with AsyncSession(self.engine, expire_on_commit=False) as session:
            yield SqlLedgerStore(session, max_retries=retries)

    async def prepare_storage(self) -> None:
        """Create the schema of a fresh database (alembic for files, create_all in memory)."""
        if self.engine is None:
            return
        if self.settings.DATABASE_URL in IN_MEMORY_SQLITE_URLS:
            await create_schema(self.engine)
        else:
            await asyncio.to_thread(run_migrations, self.settings.DATABASE_URL)

    async def close(self) -> None:
        await self.broadcaster.stop()
        if self.engine is not None:
            await self.engine.dispose()


def run_migrations(db_url: str) -> None:
    """Upgrade ``db_url`` to the latest alembic revision."""
    # No ini file: keep the structlog setup instead of alembic's fileConfig
    config = Config()
    config.set_main_option("script_location", str(ALEMBIC_DIR))
    config.set_main_option("sqlalchemy.url", db_url)
    logger.info("Running Alembic migrations", database=db_url.split("///")[-1])
    command.upgrade(config, "head")


def build_price_provider(settings: Settings) -> PriceSourceProvider:
    provider = PriceProviderRegistry.get_provider_instance(settings.PRICE_PROVIDER)
    if provider is None:
        raise ValueError(f"Unknown PRICE_PROVIDER {settings.PRICE_PROVIDER!r}; "
                         f"available: {[p['code'] for p in PriceProviderRegistry.list_providers()]}")
    return provider


def build_chain_provider(settings: Settings) -> ChainReaderProvider:
    provider = ChainProviderRegistry.get_provider_instance(settings.CHAIN_PROVIDER)
    if provider is None:
        raise ValueError(f"Unknown CHAIN_PROVIDER {settings.CHAIN_PROVIDER!r}; "
                         f"available: {[p['code'] for p in ChainProviderRegistry.list_providers()]}")
    return provider


def build_runtime(
    settings: Settings,
    price_provider: Optional[PriceSourceProvider] = None,
    chain_provider: Optional[ChainReaderProvider] = None,
    ) -> AppRuntime:
    """Assemble the runtime; explicit providers override the configured codes (tests)."""
    price_service = PriceService(
        price_provider or build_price_provider(settings),
        batch_size=settings.PRICE_BATCH_SIZE,
        timeout_seconds=settings.UPSTREAM_TIMEOUT_SECONDS,
        max_age_seconds=settings.PRICE_MAX_AGE_SECONDS,
        tracked_ids=settings.TRACKED_PRICE_IDS,
        )
    chain_service = ChainService(
        chain_provider or build_chain_provider(settings),
        timeout_seconds=settings.UPSTREAM_TIMEOUT_SECONDS,
        )
    runtime = AppRuntime(
        settings=settings,
        price_service=price_service,
        chain_service=chain_service,
        broadcaster=PriceBroadcaster(price_service, settings.PRICE_REFRESH_INTERVAL_SECONDS),
        )
    if settings.STORAGE_BACKEND == "memory":
        runtime.memory_db = MemoryDatabase()
    else:
        runtime.engine = get_async_engine(settings.DATABASE_URL)
    logger.info("Runtime built", storage=settings.STORAGE_BACKEND,
                price_provider=price_service.provider.provider_code,
                chain_provider=chain_service.provider.provider_code)
    return runtime
