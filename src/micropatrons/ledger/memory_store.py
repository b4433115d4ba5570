"""In-process ledger store with the same contract as the SQL store.

Units of work are serialized by one asyncio lock and stage their writes
privately; staged writes are applied in a single synchronous step, so no
reader on the event loop can observe half of a transfer.
"""

from __future__ import annotations

import asyncio
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import replace
from datetime import datetime, timezone

from micropatrons.ledger.errors import InfrastructureError, ValidationError
from micropatrons.ledger.store import (
    AccountSnapshot,
    ActivityRecord,
    ActivityView,
    LedgerStore,
    LedgerUnitOfWork,
)


class MemoryUnitOfWork(LedgerUnitOfWork):
    def __init__(self, store: MemoryLedgerStore) -> None:
        self._store = store
        self._balances: dict[str, int] = {}
        self._activity: list[ActivityRecord] = []

    def _current(self, account: AccountSnapshot) -> AccountSnapshot:
        if account.id in self._balances:
            return replace(account, balance=self._balances[account.id])
        return account

    def _require(self, account_id: str) -> AccountSnapshot:
        account = self._store._accounts.get(account_id)
        if account is None:
            msg = f"Unknown account id {account_id}"
            raise InfrastructureError(msg)
        return self._current(account)

    async def get_account_by_username(self, username: str) -> AccountSnapshot | None:
        account = self._store._find(username)
        return self._current(account) if account else None

    async def get_account(self, account_id: str) -> AccountSnapshot | None:
        account = self._store._accounts.get(account_id)
        return self._current(account) if account else None

    async def debit(self, account_id: str, amount: int) -> bool:
        account = self._require(account_id)
        if account.balance < amount:
            return False
        self._balances[account_id] = account.balance - amount
        return True

    async def credit(self, account_id: str, amount: int) -> None:
        account = self._require(account_id)
        self._balances[account_id] = account.balance + amount

    async def append_activity(
        self, from_user_id: str, to_user_id: str, amount: int, timestamp: datetime
    ) -> ActivityRecord:
        # Same guards the SQL schema enforces with CHECK and FOREIGN KEY
        self._require(from_user_id)
        self._require(to_user_id)
        if amount <= 0 or from_user_id == to_user_id:
            msg = "Activity violates ledger constraints"
            raise InfrastructureError(msg)

        record = ActivityRecord(
            id=str(uuid.uuid4()),
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            timestamp=timestamp,
        )
        self._activity.append(record)
        return record

    def commit(self) -> None:
        accounts = self._store._accounts
        for account_id, balance in self._balances.items():
            accounts[account_id] = replace(accounts[account_id], balance=balance)
        self._store._activity.extend(self._activity)


class MemoryLedgerStore(LedgerStore):
    """Dict-backed store for tests and throwaway local runs."""

    def __init__(self) -> None:
        self._accounts: dict[str, AccountSnapshot] = {}
        self._activity: list[ActivityRecord] = []
        self._write_lock = asyncio.Lock()

    def _find(self, username: str) -> AccountSnapshot | None:
        for account in self._accounts.values():
            if account.username == username:
                return account
        return None

    def _view(self, record: ActivityRecord, perspective: str | None = None) -> ActivityView:
        from_username = self._accounts[record.from_user_id].username
        to_username = self._accounts[record.to_user_id].username
        direction = None
        if perspective is not None:
            direction = "sent" if from_username == perspective else "received"
        return ActivityView(
            id=record.id,
            from_user_id=record.from_user_id,
            to_user_id=record.to_user_id,
            amount=record.amount,
            timestamp=record.timestamp,
            from_username=from_username,
            to_username=to_username,
            type=direction,
        )

    def _newest_first(self) -> list[ActivityRecord]:
        return sorted(self._activity, key=lambda r: (r.timestamp, r.id), reverse=True)

    def _oldest_first(self) -> list[ActivityRecord]:
        return sorted(self._activity, key=lambda r: (r.timestamp, r.id))

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[LedgerUnitOfWork]:
        async with self._write_lock:
            uow = MemoryUnitOfWork(self)
            yield uow
            uow.commit()

    async def get_account_by_username(self, username: str) -> AccountSnapshot | None:
        return self._find(username)

    async def list_accounts(self, search: str | None = None) -> list[AccountSnapshot]:
        accounts = self._accounts.values()
        if search:
            needle = search.lower()
            accounts = [a for a in accounts if needle in a.username.lower()]
        return sorted(accounts, key=lambda a: a.username)

    async def list_activity(self, limit: int, offset: int) -> list[ActivityView]:
        page = self._newest_first()[offset:offset + limit]
        return [self._view(r) for r in page]

    async def list_activity_for_account(self, username: str, limit: int, offset: int) -> list[ActivityView]:
        account = self._find(username)
        if account is None:
            return []
        involved = [
            r for r in self._newest_first()
            if account.id in (r.from_user_id, r.to_user_id)
        ]
        return [self._view(r, perspective=username) for r in involved[offset:offset + limit]]

    async def list_activity_with_amount(self, amount: int) -> list[ActivityView]:
        return [self._view(r) for r in self._oldest_first() if r.amount == amount]

    async def list_activity_since(self, since: datetime) -> list[ActivityView]:
        return [self._view(r) for r in self._oldest_first() if r.timestamp >= since]

    async def create_account(self, username: str, balance: int) -> AccountSnapshot:
        if balance < 0:
            msg = "Starting balance cannot be negative"
            raise ValidationError(msg)
        if self._find(username) is not None:
            msg = f"Account already exists: {username}"
            raise ValidationError(msg)
        account = AccountSnapshot(
            id=str(uuid.uuid4()),
            username=username,
            balance=balance,
            created_at=datetime.now(timezone.utc),
        )
        self._accounts[account.id] = account
        return account

    async def clear(self) -> None:
        async with self._write_lock:
            self._activity.clear()
            self._accounts.clear()

    async def ping(self) -> None:
        return None
