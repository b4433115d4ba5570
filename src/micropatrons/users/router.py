"""Account endpoints: list/search, fetch one, per-account activity."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query

from micropatrons.activity.schemas import AccountActivityItem
from micropatrons.config import get_settings
from micropatrons.dependencies import get_ledger_store
from micropatrons.ledger.store import MAX_OFFSET, LedgerStore
from micropatrons.users.schemas import AccountResponse

router = APIRouter(prefix="/users", tags=["Users"])


@router.get("", response_model=list[AccountResponse])
async def list_users(
    search: str | None = Query(None, max_length=64),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[AccountResponse]:
    """List accounts by username, optionally filtered by a case-insensitive substring."""
    accounts = await store.list_accounts(search)
    return [AccountResponse.model_validate(a) for a in accounts]


@router.get("/{username}", response_model=AccountResponse)
async def get_user(
    username: str,
    store: LedgerStore = Depends(get_ledger_store),
) -> AccountResponse:
    account = await store.get_account_by_username(username)
    if account is None:
        raise HTTPException(status_code=404, detail="User not found")
    return AccountResponse.model_validate(account)


@router.get("/{username}/activity", response_model=list[AccountActivityItem])
async def get_user_activity(
    username: str,
    limit: int | None = Query(None, ge=0),
    offset: int = Query(0, ge=0, le=MAX_OFFSET),
    store: LedgerStore = Depends(get_ledger_store),
) -> list[AccountActivityItem]:
    """Transfers the account sent or received, newest first, tagged sent/received."""
    settings = get_settings()
    if limit is None:
        limit = settings.activity_default_limit
    limit = min(limit, settings.activity_max_limit)

    if await store.get_account_by_username(username) is None:
        raise HTTPException(status_code=404, detail="User not found")

    records = await store.list_activity_for_account(username, limit, offset)
    return [AccountActivityItem.model_validate(r) for r in records]
