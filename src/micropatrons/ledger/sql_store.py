"""SQLAlchemy-backed ledger store.

Every public call opens its own session from the factory, so the store can be
shared by all request handlers. Units of work run inside ``session.begin()``:
commit on normal exit, rollback on any exception.
"""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime

import structlog
from sqlalchemy import Select, delete, func, or_, select, text, update
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker
from sqlalchemy.orm import aliased

from micropatrons.db.models import Account, Activity
from micropatrons.ledger.errors import InfrastructureError, ValidationError
from micropatrons.ledger.store import (
    AccountSnapshot,
    ActivityRecord,
    ActivityView,
    LedgerStore,
    LedgerUnitOfWork,
)

logger = structlog.get_logger()

_Sender = aliased(Account, name="sender")
_Receiver = aliased(Account, name="receiver")


def _account_snapshot(account: Account) -> AccountSnapshot:
    return AccountSnapshot(
        id=account.id,
        username=account.username,
        balance=account.balance,
        created_at=account.created_at,
    )


def _activity_record(activity: Activity) -> ActivityRecord:
    return ActivityRecord(
        id=activity.id,
        from_user_id=activity.from_user_id,
        to_user_id=activity.to_user_id,
        amount=activity.amount,
        timestamp=activity.timestamp,
    )


def _feed_query() -> Select:  # type: ignore[type-arg]
    """Activity joined with sender and receiver usernames."""
    return (
        select(Activity, _Sender.username, _Receiver.username)
        .join(_Sender, Activity.from_user_id == _Sender.id)
        .join(_Receiver, Activity.to_user_id == _Receiver.id)
    )


def _newest_first(query: Select) -> Select:  # type: ignore[type-arg]
    return query.order_by(Activity.timestamp.desc(), Activity.id.desc())


class SqlUnitOfWork(LedgerUnitOfWork):
    """Unit of work bound to one open transaction."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def _one_account(self, *criteria) -> AccountSnapshot | None:  # noqa: ANN002
        result = await self._session.execute(
            select(Account).where(*criteria).execution_options(populate_existing=True)
        )
        account = result.scalar_one_or_none()
        return _account_snapshot(account) if account else None

    async def get_account_by_username(self, username: str) -> AccountSnapshot | None:
        return await self._one_account(Account.username == username)

    async def get_account(self, account_id: str) -> AccountSnapshot | None:
        return await self._one_account(Account.id == account_id)

    async def debit(self, account_id: str, amount: int) -> bool:
        # The balance guard lives in the WHERE clause so the check and the
        # write are one statement.
        result = await self._session.execute(
            update(Account)
            .where(Account.id == account_id, Account.balance >= amount)
            .values(balance=Account.balance - amount)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    async def credit(self, account_id: str, amount: int) -> None:
        result = await self._session.execute(
            update(Account)
            .where(Account.id == account_id)
            .values(balance=Account.balance + amount)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            msg = f"Credit target {account_id} disappeared mid-transfer"
            raise InfrastructureError(msg)

    async def append_activity(
        self, from_user_id: str, to_user_id: str, amount: int, timestamp: datetime
    ) -> ActivityRecord:
        activity = Activity(
            from_user_id=from_user_id,
            to_user_id=to_user_id,
            amount=amount,
            timestamp=timestamp,
        )
        self._session.add(activity)
        await self._session.flush()
        return _activity_record(activity)


class SqlLedgerStore(LedgerStore):
    """Ledger store over an async SQLAlchemy session factory."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[AsyncSession]:
        async with self._session_factory() as session:
            try:
                yield session
            except SQLAlchemyError as exc:
                logger.error("ledger_read_failed", error=str(exc))
                raise InfrastructureError("Ledger storage failure") from exc

    @asynccontextmanager
    async def atomic(self) -> AsyncIterator[LedgerUnitOfWork]:
        async with self._session_factory() as session:
            try:
                async with session.begin():
                    yield SqlUnitOfWork(session)
            except SQLAlchemyError as exc:
                logger.error("ledger_unit_of_work_failed", error=str(exc))
                raise InfrastructureError("Ledger storage failure") from exc

    # -- reads --

    async def get_account_by_username(self, username: str) -> AccountSnapshot | None:
        async with self._session() as session:
            result = await session.execute(select(Account).where(Account.username == username))
            account = result.scalar_one_or_none()
            return _account_snapshot(account) if account else None

    async def list_accounts(self, search: str | None = None) -> list[AccountSnapshot]:
        query = select(Account)
        if search:
            query = query.where(func.unicode_lower(Account.username).contains(search.lower(), autoescape=True))
        query = query.order_by(Account.username)

        async with self._session() as session:
            result = await session.execute(query)
            return [_account_snapshot(a) for a in result.scalars().all()]

    async def list_activity(self, limit: int, offset: int) -> list[ActivityView]:
        query = _newest_first(_feed_query()).offset(offset).limit(limit)
        return await self._fetch_views(query)

    async def list_activity_for_account(self, username: str, limit: int, offset: int) -> list[ActivityView]:
        query = (
            _newest_first(_feed_query())
            .where(or_(_Sender.username == username, _Receiver.username == username))
            .offset(offset)
            .limit(limit)
        )
        return await self._fetch_views(query, perspective=username)

    async def list_activity_with_amount(self, amount: int) -> list[ActivityView]:
        query = _feed_query().where(Activity.amount == amount).order_by(Activity.timestamp, Activity.id)
        return await self._fetch_views(query)

    async def list_activity_since(self, since: datetime) -> list[ActivityView]:
        query = _feed_query().where(Activity.timestamp >= since).order_by(Activity.timestamp, Activity.id)
        return await self._fetch_views(query)

    async def _fetch_views(self, query: Select, perspective: str | None = None) -> list[ActivityView]:  # type: ignore[type-arg]
        async with self._session() as session:
            result = await session.execute(query)
            views = []
            for activity, from_username, to_username in result.all():
                direction = None
                if perspective is not None:
                    direction = "sent" if from_username == perspective else "received"
                views.append(ActivityView(
                    id=activity.id,
                    from_user_id=activity.from_user_id,
                    to_user_id=activity.to_user_id,
                    amount=activity.amount,
                    timestamp=activity.timestamp,
                    from_username=from_username,
                    to_username=to_username,
                    type=direction,
                ))
            return views

    # -- provisioning --

    async def create_account(self, username: str, balance: int) -> AccountSnapshot:
        if balance < 0:
            msg = "Starting balance cannot be negative"
            raise ValidationError(msg)
        async with self._session() as session:
            account = Account(username=username, balance=balance)
            session.add(account)
            try:
                await session.commit()
            except IntegrityError as exc:
                await session.rollback()
                msg = f"Account already exists: {username}"
                raise ValidationError(msg) from exc
            return _account_snapshot(account)

    async def clear(self) -> None:
        async with self._session() as session:
            await session.execute(delete(Activity))
            await session.execute(delete(Account))
            await session.commit()

    async def ping(self) -> None:
        async with self._session() as session:
            await session.execute(text("SELECT 1"))
