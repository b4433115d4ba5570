"""Read-only projections over the ledger: leaderboard, victim stats, daily activity.

The aggregation functions are pure and take already-fetched rows, so they
can be tested without a store. The ``get_*`` coroutines fetch and aggregate.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone

from micropatrons.ledger.store import AccountSnapshot, ActivityView, LedgerStore
from micropatrons.transfers.service import OPSEC_PENALTY_AMOUNT


@dataclass(frozen=True)
class VictimStat:
    username: str
    victim_count: int
    total_lost: int


@dataclass(frozen=True)
class DailyActivity:
    date: date
    transfers: int
    volume: int


def rank_leaderboard(accounts: Iterable[AccountSnapshot], limit: int | None = None) -> list[AccountSnapshot]:
    """Accounts by balance descending. Ties keep their input order."""
    ranked = sorted(accounts, key=lambda a: -a.balance)
    return ranked if limit is None else ranked[:limit]


def aggregate_victim_stats(
    records: Iterable[ActivityView],
    penalty_amount: int = OPSEC_PENALTY_AMOUNT,
) -> list[VictimStat]:
    """Group penalty-sized transfers by the paying account.

    Only records whose amount equals ``penalty_amount`` count. Result is
    ordered by count descending; equal counts keep first-seen order.
    """
    totals: dict[str, list[int]] = {}
    for record in records:
        if record.amount != penalty_amount:
            continue
        entry = totals.setdefault(record.from_username, [0, 0])
        entry[0] += 1
        entry[1] += record.amount

    stats = [VictimStat(username=u, victim_count=c, total_lost=t) for u, (c, t) in totals.items()]
    return sorted(stats, key=lambda s: -s.victim_count)


def activity_window_start(days: int, today: date) -> datetime:
    """Midnight UTC of the first day in a ``days``-day window ending on ``today``."""
    first_day = today - timedelta(days=days - 1)
    return datetime.combine(first_day, time.min, tzinfo=timezone.utc)


def aggregate_activity_stats(records: Iterable[ActivityView], days: int, today: date) -> list[DailyActivity]:
    """Per-day transfer count and volume for the trailing window, oldest day first.

    Days are UTC calendar days. Days without transfers are omitted.
    """
    if days < 1:
        msg = "days must be at least 1"
        raise ValueError(msg)

    first_day = today - timedelta(days=days - 1)
    buckets: dict[date, list[int]] = {}
    for record in records:
        day = record.timestamp.astimezone(timezone.utc).date()
        if day < first_day or day > today:
            continue
        bucket = buckets.setdefault(day, [0, 0])
        bucket[0] += 1
        bucket[1] += record.amount

    return [
        DailyActivity(date=day, transfers=count, volume=volume)
        for day, (count, volume) in sorted(buckets.items())
    ]


async def get_leaderboard(store: LedgerStore, limit: int | None = None) -> list[AccountSnapshot]:
    return rank_leaderboard(await store.list_accounts(), limit)


async def get_victim_stats(
    store: LedgerStore,
    penalty_amount: int = OPSEC_PENALTY_AMOUNT,
    limit: int | None = None,
) -> list[VictimStat]:
    records = await store.list_activity_with_amount(penalty_amount)
    stats = aggregate_victim_stats(records, penalty_amount)
    return stats if limit is None else stats[:limit]


async def get_activity_stats(store: LedgerStore, days: int, now: datetime | None = None) -> list[DailyActivity]:
    if now is None:
        now = datetime.now(timezone.utc)
    today = now.astimezone(timezone.utc).date()
    records = await store.list_activity_since(activity_window_start(days, today))
    return aggregate_activity_stats(records, days, today)
