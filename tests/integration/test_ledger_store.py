"""Store contract tests, run against both the SQL and in-memory stores."""

from __future__ import annotations

import asyncio
import random
from datetime import timedelta

import pytest
import pytest_asyncio
from sqlalchemy.exc import OperationalError

from micropatrons.ledger.errors import (
    InfrastructureError,
    InsufficientBalanceError,
    ValidationError,
)
from micropatrons.ledger.memory_store import MemoryUnitOfWork
from micropatrons.ledger.sql_store import SqlLedgerStore, SqlUnitOfWork
from micropatrons.transfers.service import TransferService

pytestmark = pytest.mark.asyncio


async def _state(store) -> tuple[dict[str, int], list]:
    balances = {a.username: a.balance for a in await store.list_accounts()}
    return balances, await store.list_activity(1000, 0)


class TestAccounts:
    async def test_list_ordered_by_username(self, store, open_accounts):
        await open_accounts(store, carl=1, alice=2, Bob=3)
        names = [a.username for a in await store.list_accounts()]
        assert names == sorted(names)
        assert set(names) == {"alice", "Bob", "carl"}

    async def test_search_is_case_insensitive_substring(self, store, open_accounts):
        await open_accounts(store, Hatake=1, Hocho=1, Thor=1, Shadow=1)

        assert [a.username for a in await store.list_accounts("h")] == sorted(["Hatake", "Hocho", "Thor", "Shadow"])
        assert [a.username for a in await store.list_accounts("HO")] == ["Hocho", "Thor"]
        assert await store.list_accounts("zzz") == []

    async def test_search_folds_non_ascii_case(self, store, open_accounts):
        await open_accounts(store, **{"\u00c9mile": 1, "bob": 1, "Zo\u00eb": 1})

        assert [a.username for a in await store.list_accounts("\u00e9")] == ["\u00c9mile"]
        assert [a.username for a in await store.list_accounts("\u00c9MI")] == ["\u00c9mile"]
        assert [a.username for a in await store.list_accounts("O\u00cb")] == ["Zo\u00eb"]

    async def test_search_treats_wildcards_literally(self, store, open_accounts):
        await open_accounts(store, under_score=1, plain=1)
        assert [a.username for a in await store.list_accounts("_")] == ["under_score"]
        assert await store.list_accounts("%") == []

    async def test_get_by_username(self, store, open_accounts):
        created = await open_accounts(store, alice=200_000)

        account = await store.get_account_by_username("alice")

        assert account == created["alice"]
        assert account.created_at.tzinfo is not None
        assert await store.get_account_by_username("nobody") is None

    async def test_duplicate_username_rejected(self, store, open_accounts):
        await open_accounts(store, alice=1)
        with pytest.raises(ValidationError, match="already exists"):
            await store.create_account("alice", 5)

    async def test_negative_starting_balance_rejected(self, store):
        with pytest.raises(ValidationError):
            await store.create_account("alice", -1)

    async def test_clear(self, store, open_accounts):
        await open_accounts(store, alice=100, bob=0)
        await TransferService(store).transfer("alice", "bob", 10)

        await store.clear()

        assert await store.list_accounts() == []
        assert await store.list_activity(10, 0) == []

    async def test_ping(self, store):
        await store.ping()


class TestActivityFeeds:
    @pytest_asyncio.fixture
    async def history(self, store, open_accounts, clock):
        """alice->bob 100, bob->carl 50, carl->alice 25, in that order."""
        await open_accounts(store, alice=1000, bob=1000, carl=1000)
        service = TransferService(store, clock=clock)
        await service.transfer("alice", "bob", 100)
        await service.transfer("bob", "carl", 50)
        await service.transfer("carl", "alice", 25)
        return store

    async def test_global_feed_newest_first(self, history):
        feed = await history.list_activity(10, 0)
        assert [(r.from_username, r.to_username, r.amount) for r in feed] == [
            ("carl", "alice", 25),
            ("bob", "carl", 50),
            ("alice", "bob", 100),
        ]
        assert all(r.type is None for r in feed)

    async def test_pagination(self, history):
        assert [r.amount for r in await history.list_activity(2, 0)] == [25, 50]
        assert [r.amount for r in await history.list_activity(2, 2)] == [100]
        assert await history.list_activity(2, 10) == []
        assert await history.list_activity(0, 0) == []

    async def test_account_feed_tags_direction(self, history):
        feed = await history.list_activity_for_account("alice", 10, 0)
        assert [(r.amount, r.type) for r in feed] == [(25, "received"), (100, "sent")]

    async def test_account_feed_pagination(self, history):
        feed = await history.list_activity_for_account("bob", 1, 1)
        assert [(r.amount, r.type) for r in feed] == [(100, "received")]

    async def test_account_feed_unknown_user(self, history):
        assert await history.list_activity_for_account("nobody", 10, 0) == []

    async def test_ids_resolve_to_usernames(self, history):
        alice = await history.get_account_by_username("alice")
        bob = await history.get_account_by_username("bob")
        oldest = (await history.list_activity(10, 0))[-1]
        assert (oldest.from_user_id, oldest.to_user_id) == (alice.id, bob.id)

    async def test_with_amount_oldest_first(self, history):
        assert [r.from_username for r in await history.list_activity_with_amount(50)] == ["bob"]
        assert await history.list_activity_with_amount(1) == []

    async def test_since(self, history):
        newest = (await history.list_activity(1, 0))[0]
        since = await history.list_activity_since(newest.timestamp - timedelta(seconds=1))
        assert [r.amount for r in since] == [50, 25]

    async def test_reads_are_idempotent(self, history):
        first = (await history.list_accounts(), await history.list_activity(10, 0))
        second = (await history.list_accounts(), await history.list_activity(10, 0))
        assert first == second


class TestAtomicity:
    async def test_insufficient_balance_writes_nothing(self, store, open_accounts):
        await open_accounts(store, alice=500, bob=0)
        before = await _state(store)

        with pytest.raises(InsufficientBalanceError):
            await TransferService(store).transfer("alice", "bob", 501)

        assert await _state(store) == before

    async def test_exact_balance(self, store, open_accounts):
        await open_accounts(store, alice=500, bob=0)
        result = await TransferService(store).transfer("alice", "bob", 500)
        assert result.sender.balance == 0
        assert (await store.get_account_by_username("alice")).balance == 0

    async def test_unit_of_work_rolls_back_on_error(self, store, open_accounts):
        accounts = await open_accounts(store, alice=1000, bob=0)
        before = await _state(store)

        with pytest.raises(RuntimeError):
            async with store.atomic() as uow:
                assert await uow.debit(accounts["alice"].id, 300)
                await uow.credit(accounts["bob"].id, 300)
                raise RuntimeError("abort")

        assert await _state(store) == before

    async def test_debit_refuses_overdraft(self, store, open_accounts):
        accounts = await open_accounts(store, alice=100)
        async with store.atomic() as uow:
            assert not await uow.debit(accounts["alice"].id, 101)
            assert await uow.debit(accounts["alice"].id, 100)
            assert (await uow.get_account(accounts["alice"].id)).balance == 0

    async def test_self_activity_violates_constraints(self, store, open_accounts):
        accounts = await open_accounts(store, alice=100)
        alice_id = accounts["alice"].id

        with pytest.raises(InfrastructureError):
            async with store.atomic() as uow:
                await uow.append_activity(alice_id, alice_id, 10, (await uow.get_account(alice_id)).created_at)

        assert await store.list_activity(10, 0) == []

    async def test_unknown_account_in_activity(self, store, open_accounts):
        accounts = await open_accounts(store, alice=100)

        with pytest.raises(InfrastructureError):
            async with store.atomic() as uow:
                await uow.append_activity(accounts["alice"].id, "missing", 10, accounts["alice"].created_at)

    async def test_credit_to_missing_account(self, store):
        with pytest.raises(InfrastructureError):
            async with store.atomic() as uow:
                await uow.credit("missing", 10)

    async def test_forced_storage_failure_after_debit(self, store, open_accounts, monkeypatch):
        """A storage error between debit and credit leaves no trace."""
        await open_accounts(store, alice=1000, bob=0)
        before = await _state(store)

        if isinstance(store, SqlLedgerStore):

            async def broken_credit(self, account_id, amount):
                raise OperationalError("UPDATE accounts", {}, Exception("disk I/O error"))

            monkeypatch.setattr(SqlUnitOfWork, "credit", broken_credit)
        else:

            async def broken_credit(self, account_id, amount):
                raise InfrastructureError("disk I/O error")

            monkeypatch.setattr(MemoryUnitOfWork, "credit", broken_credit)

        with pytest.raises(InfrastructureError):
            await TransferService(store).transfer("alice", "bob", 400)

        assert await _state(store) == before


class TestConcurrency:
    async def test_two_600_transfers_from_1000(self, store, open_accounts):
        """Separate services share only the store; exactly one transfer lands."""
        await open_accounts(store, alice=1000, bob=0, carl=0)

        results = await asyncio.gather(
            TransferService(store).transfer("alice", "bob", 600),
            TransferService(store).transfer("alice", "carl", 600),
            return_exceptions=True,
        )

        errors = [r for r in results if isinstance(r, Exception)]
        assert len(errors) == 1
        assert isinstance(errors[0], InsufficientBalanceError)
        balances, activity = await _state(store)
        assert balances["alice"] == 400
        assert balances["bob"] + balances["carl"] == 600
        assert len(activity) == 1

    async def test_random_concurrent_transfers_conserve_funds(self, store, open_accounts):
        names = ["a", "b", "c", "d"]
        await open_accounts(store, **{name: 500 for name in names})
        service = TransferService(store)
        rng = random.Random(42)

        calls = []
        for _ in range(40):
            sender, receiver = rng.sample(names, 2)
            calls.append(service.transfer(sender, receiver, rng.randint(1, 400)))
        results = await asyncio.gather(*calls, return_exceptions=True)

        assert all(isinstance(r, InsufficientBalanceError) for r in results if isinstance(r, Exception))
        balances, activity = await _state(store)
        assert sum(balances.values()) == 2000
        assert all(balance >= 0 for balance in balances.values())
        assert len(activity) == sum(1 for r in results if not isinstance(r, Exception))
