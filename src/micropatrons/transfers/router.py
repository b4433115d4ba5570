"""Transfer endpoints, the only routes that change balances.

Ledger errors raised by the service propagate to the global error handler,
which answers with their status code and ``{"error": message}``.
"""

from __future__ import annotations

import redis.asyncio as aioredis
from fastapi import APIRouter, Depends

from micropatrons.activity.schemas import ActivityResponse
from micropatrons.dependencies import get_transfer_service
from micropatrons.redis_client import get_optional_redis
from micropatrons.transfers.events import publish_transfer
from micropatrons.transfers.schemas import (
    OpSecReportRequest,
    TransferRequest,
    TransferResponse,
)
from micropatrons.transfers.service import TransferResult, TransferService
from micropatrons.users.schemas import AccountResponse

router = APIRouter(tags=["Transfers"])


def _transfer_response(result: TransferResult) -> TransferResponse:
    return TransferResponse(
        success=True,
        message=result.message,
        sender=AccountResponse.model_validate(result.sender),
        receiver=AccountResponse.model_validate(result.receiver),
        activity=ActivityResponse.model_validate(result.activity),
    )


@router.post("/transfer", response_model=TransferResponse)
async def transfer(
    body: TransferRequest,
    service: TransferService = Depends(get_transfer_service),
    redis: aioredis.Redis | None = Depends(get_optional_redis),
) -> TransferResponse:
    """Move micropatrons from sender to receiver."""
    result = await service.transfer(body.sender, body.receiver, body.amount)
    await publish_transfer(redis, result)
    return _transfer_response(result)


@router.post("/opsec-reports", response_model=TransferResponse)
async def report_opsec_violation(
    body: OpSecReportRequest,
    service: TransferService = Depends(get_transfer_service),
    redis: aioredis.Redis | None = Depends(get_optional_redis),
) -> TransferResponse:
    """Report an OpSec violation: the victim pays the attacker the fixed penalty."""
    result = await service.report_opsec_violation(body.victim, body.attacker)
    await publish_transfer(redis, result)
    return _transfer_response(result)
