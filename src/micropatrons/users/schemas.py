"""Pydantic schemas for account endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict


class AccountResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    username: str
    balance: int
    created_at: datetime


class LeaderboardEntryResponse(AccountResponse):
    rank: int
