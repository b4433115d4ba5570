"""Async SQLAlchemy engine and session management for the SQLite ledger file."""

from typing import Any

from sqlalchemy import event
from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from micropatrons.db.base import Base

_engine: AsyncEngine | None = None
_session_factory: async_sessionmaker[AsyncSession] | None = None


def _unicode_lower(value: str | None) -> str | None:
    return value.lower() if value is not None else None


def _enable_sqlite_pragmas(dbapi_connection: Any, _connection_record: Any) -> None:
    # SQLite's built-in lower() only folds ASCII
    dbapi_connection.create_function("unicode_lower", 1, _unicode_lower)
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.close()


async def init_db(url: str, busy_timeout_seconds: float = 5.0) -> None:
    """Initialize the database engine and session factory."""
    global _engine, _session_factory  # noqa: PLW0603
    connect_args: dict[str, Any] = {}
    if url.startswith("sqlite"):
        # sqlite3 waits this long on a locked database before raising
        connect_args["timeout"] = busy_timeout_seconds

    _engine = create_async_engine(url, echo=False, connect_args=connect_args)
    if url.startswith("sqlite"):
        event.listen(_engine.sync_engine, "connect", _enable_sqlite_pragmas)

    _session_factory = async_sessionmaker(
        _engine,
        class_=AsyncSession,
        expire_on_commit=False,
    )


async def create_schema() -> None:
    """Create all ledger tables that do not exist yet."""
    async with get_engine().begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def close_db() -> None:
    """Dispose of the database engine."""
    global _engine, _session_factory  # noqa: PLW0603
    if _engine:
        await _engine.dispose()
        _engine = None
        _session_factory = None


def get_engine() -> AsyncEngine:
    """Get the async engine instance."""
    if _engine is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _engine


def get_session_factory() -> async_sessionmaker[AsyncSession]:
    """Get the session factory the ledger store opens its units of work from."""
    if _session_factory is None:
        msg = "Database not initialized. Call init_db() first."
        raise RuntimeError(msg)
    return _session_factory
