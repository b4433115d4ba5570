"""Application startup and shutdown."""

import pytest

from micropatrons import database, dependencies
from micropatrons.config import get_settings
from micropatrons.ledger.memory_store import MemoryLedgerStore
from micropatrons.ledger.sql_store import SqlLedgerStore
from micropatrons.main import create_app


@pytest.mark.asyncio
async def test_sql_backend_creates_schema() -> None:
    """Startup opens the ledger file, creates tables, and shutdown releases everything."""
    app = create_app()

    async with app.router.lifespan_context(app):
        store = dependencies.get_ledger_store()
        assert isinstance(store, SqlLedgerStore)
        await store.create_account("alice", 10)
        assert [a.username for a in await store.list_accounts()] == ["alice"]

    with pytest.raises(RuntimeError):
        dependencies.get_ledger_store()
    with pytest.raises(RuntimeError):
        database.get_engine()


@pytest.mark.asyncio
async def test_memory_backend(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("MP_LEDGER_BACKEND", "memory")
    monkeypatch.setenv("MP_OPSEC_PENALTY_AMOUNT", "123")
    get_settings.cache_clear()
    app = create_app()

    async with app.router.lifespan_context(app):
        assert isinstance(dependencies.get_ledger_store(), MemoryLedgerStore)
        assert dependencies.get_transfer_service().penalty_amount == 123
        with pytest.raises(RuntimeError):
            database.get_engine()
