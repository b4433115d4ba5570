"""Pydantic schemas for activity feeds and aggregates."""

from __future__ import annotations

import datetime as dt
from typing import Literal

from pydantic import BaseModel, ConfigDict


class ActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: str
    from_user_id: str
    to_user_id: str
    amount: int
    timestamp: dt.datetime


class ActivityFeedItem(ActivityResponse):
    from_username: str
    to_username: str


class AccountActivityItem(ActivityFeedItem):
    type: Literal["sent", "received"]


# --- Aggregates ---


class DailyActivityResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: dt.date
    transfers: int
    volume: int


class VictimStatResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    username: str
    victim_count: int
    total_lost: int
