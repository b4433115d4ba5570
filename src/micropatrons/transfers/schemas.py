"""Pydantic schemas for transfer endpoints.

Request fields are optional at the schema level: presence, sign and
integrality are checked by the transfer service so every rejection carries
the same messages regardless of entry point.
"""

from __future__ import annotations

from pydantic import BaseModel, StrictFloat, StrictInt

from micropatrons.activity.schemas import ActivityResponse
from micropatrons.users.schemas import AccountResponse


class TransferRequest(BaseModel):
    sender: str | None = None
    receiver: str | None = None
    amount: StrictInt | StrictFloat | None = None


class TransferResponse(BaseModel):
    success: bool = True
    message: str
    sender: AccountResponse
    receiver: AccountResponse
    activity: ActivityResponse


class OpSecReportRequest(BaseModel):
    victim: str | None = None
    attacker: str | None = None
