"""Activity API endpoints: 4 routes.

Feed (1), Stats (1), Leaderboard (1), Victims (1).
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from micropatrons.activity.schemas import (
    ActivityFeedItem,
    DailyActivityResponse,
    VictimStatResponse,
)
from micropatrons.activity.stats_service import (
    get_activity_stats,
    get_leaderboard,
    get_victim_stats,
)
from micropatrons.config import get_settings
from micropatrons.dependencies import get_ledger_store
from micropatrons.ledger.store import MAX_OFFSET, LedgerStore
from micropatrons.users.schemas import LeaderboardEntryResponse

router = APIRouter(tags=["Activity"])


@router.get("/activity", response_model=list[ActivityFeedItem])
async def list_activity(
    limit: int | None = Query(None, ge=0),
    offset: int = Query(0, ge=0, le=MAX_OFFSET),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[ActivityFeedItem]:
    """Global transfer feed, newest first."""
    settings = get_settings()
    if limit is None:
        limit = settings.activity_default_limit
    limit = min(limit, settings.activity_max_limit)

    records = await store.list_activity(limit, offset)
    return [ActivityFeedItem.model_validate(r) for r in records]


@router.get("/activity/stats", response_model=list[DailyActivityResponse])
async def activity_stats(
    days: int | None = Query(None, ge=1, le=365),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[DailyActivityResponse]:
    """Transfer count and volume per UTC day over the trailing window."""
    if days is None:
        days = get_settings().activity_stats_default_days
    stats = await get_activity_stats(store, days)
    return [DailyActivityResponse.model_validate(s) for s in stats]


@router.get("/leaderboard", response_model=list[LeaderboardEntryResponse])
async def leaderboard(
    limit: int | None = Query(None, ge=1),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[LeaderboardEntryResponse]:
    """Accounts ranked by balance, highest first."""
    if limit is None:
        limit = get_settings().leaderboard_default_limit
    ranked = await get_leaderboard(store, limit)
    return [
        LeaderboardEntryResponse(
            rank=position,
            id=account.id,
            username=account.username,
            balance=account.balance,
            created_at=account.created_at,
        )
        for position, account in enumerate(ranked, start=1)
    ]


@router.get("/victims", response_model=list[VictimStatResponse])
async def victims(
    limit: int | None = Query(None, ge=1),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[VictimStatResponse]:
    """Accounts that paid the most OpSec penalties."""
    settings = get_settings()
    stats = await get_victim_stats(store, settings.opsec_penalty_amount, limit)
    return [VictimStatResponse.model_validate(s) for s in stats]
