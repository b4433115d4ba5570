"""Ledger store contract.

A store holds account balances and the append-only activity log. All
mutation goes through ``atomic()`` / ``run_atomic()``: the writes made on the
yielded unit of work become visible together when the block exits normally,
and none of them do if it raises.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable
from contextlib import AbstractAsyncContextManager
from dataclasses import dataclass
from datetime import datetime
from typing import Literal, TypeVar

T = TypeVar("T")

Direction = Literal["sent", "received"]

# Largest offset SQLite can bind as an INTEGER
MAX_OFFSET = 2**63 - 1


@dataclass(frozen=True)
class AccountSnapshot:
    id: str
    username: str
    balance: int
    created_at: datetime


@dataclass(frozen=True)
class ActivityRecord:
    id: str
    from_user_id: str
    to_user_id: str
    amount: int
    timestamp: datetime


@dataclass(frozen=True)
class ActivityView:
    """An activity record joined with both usernames.

    ``type`` is only set by per-account queries.
    """

    id: str
    from_user_id: str
    to_user_id: str
    amount: int
    timestamp: datetime
    from_username: str
    to_username: str
    type: Direction | None = None


class LedgerUnitOfWork(ABC):
    """Reads and writes inside one atomic unit."""

    @abstractmethod
    async def get_account_by_username(self, username: str) -> AccountSnapshot | None: ...

    @abstractmethod
    async def get_account(self, account_id: str) -> AccountSnapshot | None: ...

    @abstractmethod
    async def debit(self, account_id: str, amount: int) -> bool:
        """Subtract ``amount`` only if the balance covers it. Returns whether it applied."""

    @abstractmethod
    async def credit(self, account_id: str, amount: int) -> None: ...

    @abstractmethod
    async def append_activity(
        self, from_user_id: str, to_user_id: str, amount: int, timestamp: datetime
    ) -> ActivityRecord: ...


class LedgerStore(ABC):
    """Durable account and activity storage with atomic multi-row mutation."""

    @abstractmethod
    async def get_account_by_username(self, username: str) -> AccountSnapshot | None: ...

    @abstractmethod
    async def list_accounts(self, search: str | None = None) -> list[AccountSnapshot]:
        """Accounts ordered by username; ``search`` is a case-insensitive substring."""

    @abstractmethod
    async def list_activity(self, limit: int, offset: int) -> list[ActivityView]:
        """Newest first."""

    @abstractmethod
    async def list_activity_for_account(self, username: str, limit: int, offset: int) -> list[ActivityView]:
        """Newest first, restricted to records the account sent or received."""

    @abstractmethod
    async def list_activity_with_amount(self, amount: int) -> list[ActivityView]: ...

    @abstractmethod
    async def list_activity_since(self, since: datetime) -> list[ActivityView]:
        """Records with ``timestamp >= since``, oldest first."""

    @abstractmethod
    def atomic(self) -> AbstractAsyncContextManager[LedgerUnitOfWork]: ...

    async def run_atomic(self, work: Callable[[LedgerUnitOfWork], Awaitable[T]]) -> T:
        """Run ``work`` inside one unit of work and return its result."""
        async with self.atomic() as uow:
            return await work(uow)

    # -- provisioning (seed/reset only) --

    @abstractmethod
    async def create_account(self, username: str, balance: int) -> AccountSnapshot: ...

    @abstractmethod
    async def clear(self) -> None:
        """Delete all activity, then all accounts."""

    @abstractmethod
    async def ping(self) -> None:
        """Raise if the backing storage is unreachable."""
