"""Broadcast completed transfers so readers can drop cached balances."""

from __future__ import annotations

import json

import redis.asyncio as aioredis
import structlog

from micropatrons.transfers.service import TransferResult

logger = structlog.get_logger()

TRANSFER_CHANNEL = "pubsub:transfer"


def transfer_event(result: TransferResult) -> dict[str, object]:
    return {
        "activity_id": result.activity.id,
        "sender": result.sender.username,
        "receiver": result.receiver.username,
        "amount": result.activity.amount,
        "sender_balance": result.sender.balance,
        "receiver_balance": result.receiver.balance,
        "timestamp": result.activity.timestamp.isoformat(),
    }


async def publish_transfer(redis: aioredis.Redis | None, result: TransferResult) -> None:
    """Publish on ``pubsub:transfer``. The transfer is already committed, so failures only log."""
    if redis is None:
        return
    try:
        await redis.publish(TRANSFER_CHANNEL, json.dumps(transfer_event(result)))
    except Exception:
        logger.warning("transfer_publish_failed", activity_id=result.activity.id, exc_info=True)
