"""Shared FastAPI dependencies: the ledger store and transfer service.

Both are built once in the application lifespan and shared by every request
handler; tests may install their own store with ``init_ledger``.
"""

from micropatrons.config import Settings, get_settings
from micropatrons.database import get_session_factory
from micropatrons.ledger.memory_store import MemoryLedgerStore
from micropatrons.ledger.sql_store import SqlLedgerStore
from micropatrons.ledger.store import LedgerStore
from micropatrons.transfers.service import TransferService

_store: LedgerStore | None = None
_transfer_service: TransferService | None = None


def build_store(settings: Settings) -> LedgerStore:
    """Create the store selected by ``ledger_backend``."""
    if settings.ledger_backend == "memory":
        return MemoryLedgerStore()
    return SqlLedgerStore(get_session_factory())


def init_ledger(store: LedgerStore, settings: Settings | None = None) -> None:
    """Install the process-wide store and a transfer service over it."""
    global _store, _transfer_service  # noqa: PLW0603
    settings = settings or get_settings()
    _store = store
    _transfer_service = TransferService(store, penalty_amount=settings.opsec_penalty_amount)


def close_ledger() -> None:
    global _store, _transfer_service  # noqa: PLW0603
    _store = None
    _transfer_service = None


def get_ledger_store() -> LedgerStore:
    if _store is None:
        msg = "Ledger not initialized. Call init_ledger() first."
        raise RuntimeError(msg)
    return _store


def get_transfer_service() -> TransferService:
    if _transfer_service is None:
        msg = "Ledger not initialized. Call init_ledger() first."
        raise RuntimeError(msg)
    return _transfer_service
