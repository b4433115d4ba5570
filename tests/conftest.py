"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from micropatrons.config import get_settings
from micropatrons.database import close_db, create_schema, get_session_factory, init_db
from micropatrons.dependencies import close_ledger, get_transfer_service, init_ledger
from micropatrons.ledger.memory_store import MemoryLedgerStore
from micropatrons.ledger.sql_store import SqlLedgerStore
from micropatrons.ledger.store import AccountSnapshot, LedgerStore
from micropatrons.main import create_app
from micropatrons.transfers.service import TransferService

OpenAccounts = Callable[..., Awaitable[dict[str, AccountSnapshot]]]


class TickingClock:
    """Deterministic clock: every call advances by ``step``."""

    def __init__(self, start: datetime, step: timedelta = timedelta(seconds=1)) -> None:
        self.now = start
        self.step = step

    def __call__(self) -> datetime:
        self.now += self.step
        return self.now


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}"


@pytest.fixture(autouse=True)
def _isolated_settings(db_url: str, monkeypatch: pytest.MonkeyPatch):
    """Point every test at its own ledger file with Redis disabled."""
    monkeypatch.setenv("MP_DATABASE_URL", db_url)
    monkeypatch.setenv("MP_REDIS_URL", "")
    monkeypatch.setenv("MP_LEDGER_BACKEND", "sql")
    monkeypatch.setenv("MP_LOG_FORMAT", "console")
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def clock() -> TickingClock:
    return TickingClock(datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc))


@pytest_asyncio.fixture
async def sql_store(db_url: str) -> AsyncGenerator[SqlLedgerStore, None]:
    """SQL store over a fresh schema in a temp file."""
    await init_db(db_url)
    await create_schema()
    yield SqlLedgerStore(get_session_factory())
    await close_db()


@pytest_asyncio.fixture(params=["memory", "sql"])
async def store(request: pytest.FixtureRequest, db_url: str) -> AsyncGenerator[LedgerStore, None]:
    """Run the test once per store implementation."""
    if request.param == "memory":
        yield MemoryLedgerStore()
        return

    await init_db(db_url)
    await create_schema()
    yield SqlLedgerStore(get_session_factory())
    await close_db()


@pytest.fixture
def open_accounts() -> OpenAccounts:
    """Create accounts on a store: ``await open_accounts(store, alice=1000, bob=0)``."""

    async def _open(store: LedgerStore, **balances: int) -> dict[str, AccountSnapshot]:
        return {name: await store.create_account(name, balance) for name, balance in balances.items()}

    return _open


@pytest_asyncio.fixture
async def ledger_app(sql_store: SqlLedgerStore, clock: TickingClock):
    """Application wired to the temp-file SQL store and a deterministic clock."""
    app = create_app()
    init_ledger(sql_store)
    service = TransferService(sql_store, clock=clock)
    app.dependency_overrides[get_transfer_service] = lambda: service
    yield app
    app.dependency_overrides.clear()
    close_ledger()


@pytest_asyncio.fixture
async def client(ledger_app) -> AsyncGenerator[AsyncClient, None]:
    """Async HTTP test client. ASGITransport skips lifespan, so ``ledger_app`` wires the store."""
    transport = ASGITransport(app=ledger_app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest_asyncio.fixture
async def seeded_client(client: AsyncClient, sql_store: SqlLedgerStore, open_accounts: OpenAccounts) -> AsyncClient:
    """Client over a ledger holding alice and bob at 200,000 and carl at 100,000."""
    await open_accounts(sql_store, alice=200_000, bob=200_000, carl=100_000)
    return client
