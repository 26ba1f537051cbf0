"""
Database engine and session management.

Engines are built from a database URL (no module-level engine): the
application creates one async engine at startup and hands out one
AsyncSession per request through the ledger store dependency.
"""
from pathlib import Path
from typing import AsyncGenerator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, create_async_engine
from sqlalchemy.pool import NullPool, StaticPool
from sqlmodel import SQLModel


@event.listens_for(Engine, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """
    Enable foreign key constraints for SQLite.

    Note: This event listener applies to ALL sync engines (including the one backing async).
    """
    if "sqlite" not in type(dbapi_conn).__module__.lower():
        return
    cursor = dbapi_conn.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def _ensure_sqlite_directory(db_url: str) -> None:
    if db_url.startswith("sqlite:///"):
        db_path = db_url.replace("sqlite:///", "", 1)
        if db_path and not db_path.startswith(":memory:"):
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def to_async_url(db_url: str) -> str:
    """Map a sync SQLite URL onto the aiosqlite driver."""
    if db_url.startswith("sqlite:///") or db_url == "sqlite://":
        return db_url.replace("sqlite://", "sqlite+aiosqlite://", 1)
    return db_url


def get_sync_engine(db_url: str) -> Engine:
    """
    Create a SYNC engine, used by Alembic migrations and scripts.
    """
    _ensure_sqlite_directory(db_url)
    return create_engine(db_url, echo=False, poolclass=NullPool)


def get_async_engine(db_url: str) -> AsyncEngine:
    """
    Create the async engine used by the application.

    An in-memory SQLite URL ("sqlite://") keeps a single shared connection
    (StaticPool) so every session sees the same database; file databases
    use NullPool, each connection independent.
    """
    async_url = to_async_url(db_url)
    if async_url in ("sqlite+aiosqlite://", "sqlite+aiosqlite:///:memory:"):
        return create_async_engine(
            async_url,
            echo=False,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
            )

    _ensure_sqlite_directory(db_url)
    return create_async_engine(async_url, echo=False, poolclass=NullPool)


async def create_schema(engine: AsyncEngine) -> None:
    """Create all tables that do not exist yet (in-memory databases, tests)."""
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)


async def get_session(engine: AsyncEngine) -> AsyncGenerator[AsyncSession, None]:
    """
    Yield an AsyncSession bound to ``engine``.

    Yields:
        AsyncSession: session with expire_on_commit disabled so returned
        models stay readable after commit
    """
    async with AsyncSession(engine, expire_on_commit=False) as session:
        yield session
