"""Transfer service: the only code path that moves micropatrons.

A transfer validates its input, then debits the sender, credits the receiver
and appends an activity record inside one unit of work on the ledger store.
Rejected requests leave the store untouched.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime, timezone

import structlog

from micropatrons.ledger.errors import (
    InfrastructureError,
    InsufficientBalanceError,
    LedgerError,
    NotFoundError,
    ValidationError,
)
from micropatrons.ledger.locks import AccountLockGate
from micropatrons.ledger.store import (
    AccountSnapshot,
    ActivityRecord,
    LedgerStore,
    LedgerUnitOfWork,
)

logger = structlog.get_logger()

OPSEC_PENALTY_AMOUNT = 20_000


@dataclass(frozen=True)
class TransferResult:
    sender: AccountSnapshot
    receiver: AccountSnapshot
    activity: ActivityRecord
    message: str


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def validate_transfer_request(sender: object, receiver: object, amount: object) -> int:
    """Check request shape in order and return the amount as an int.

    Raises:
        ValidationError: Missing fields, non-positive or fractional amount,
            or sender equal to receiver.
    """
    if not isinstance(sender, str) or not sender or not isinstance(receiver, str) or not receiver:
        raise ValidationError("Sender, receiver, and amount are required")
    if amount is None or amount == "":
        raise ValidationError("Sender, receiver, and amount are required")

    if isinstance(amount, bool) or not isinstance(amount, (int, float)):
        raise ValidationError("Amount must be a whole number")
    if amount <= 0:
        raise ValidationError("Amount must be greater than 0")
    if isinstance(amount, float):
        if not amount.is_integer():
            raise ValidationError("Amount must be a whole number")
        amount = int(amount)

    if sender == receiver:
        raise ValidationError("Cannot transfer to yourself")
    return amount


class TransferService:
    """Moves funds between named accounts with an audit record."""

    def __init__(
        self,
        store: LedgerStore,
        locks: AccountLockGate | None = None,
        penalty_amount: int = OPSEC_PENALTY_AMOUNT,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self.store = store
        self.locks = locks or AccountLockGate()
        self.penalty_amount = penalty_amount
        self._clock = clock
        self._detached: set[asyncio.Task[TransferResult]] = set()

    async def transfer(self, sender: object, receiver: object, amount: object) -> TransferResult:
        """Move ``amount`` from ``sender`` to ``receiver``.

        Raises:
            ValidationError: Bad input shape or self-transfer.
            NotFoundError: Unknown sender or receiver.
            InsufficientBalanceError: Sender balance below ``amount``.
            InfrastructureError: Storage failed; nothing was written.
        """
        try:
            value = validate_transfer_request(sender, receiver, amount)
            # A caller that stops waiting must not abort a commit in progress
            applying = asyncio.ensure_future(self._apply(sender, receiver, value))  # type: ignore[arg-type]
            try:
                result = await asyncio.shield(applying)
            except asyncio.CancelledError:
                self._detach(applying, sender, receiver, value)
                raise
        except InfrastructureError:
            logger.error("transfer_failed", sender=sender, receiver=receiver, amount=amount, exc_info=True)
            raise
        except LedgerError as exc:
            logger.info("transfer_rejected", sender=sender, receiver=receiver, amount=amount, reason=exc.message)
            raise

        logger.info(
            "transfer_completed",
            sender=sender,
            receiver=receiver,
            amount=value,
            activity_id=result.activity.id,
        )
        return result

    async def report_opsec_violation(self, victim: object, attacker: object) -> TransferResult:
        """Charge the OpSec penalty: the victim pays the attacker."""
        if not victim or not attacker:
            raise ValidationError("Both victim and attacker must be specified")
        if victim == attacker:
            raise ValidationError("Victim and attacker cannot be the same person")

        result = await self.transfer(victim, attacker, self.penalty_amount)
        return replace(
            result,
            message=(
                f"OpSec violation reported. {victim} was penalized {self.penalty_amount} "
                f"micropatrons, which have been transferred to {attacker}."
            ),
        )

    def _detach(self, task: asyncio.Task[TransferResult], sender: str, receiver: str, amount: int) -> None:
        """Keep an abandoned transfer alive and log its outcome once it settles."""
        self._detached.add(task)

        def settled(done: asyncio.Task[TransferResult]) -> None:
            self._detached.discard(done)
            if done.cancelled():
                return
            exc = done.exception()
            if exc is None:
                logger.info(
                    "transfer_completed",
                    sender=sender,
                    receiver=receiver,
                    amount=amount,
                    activity_id=done.result().activity.id,
                    caller_cancelled=True,
                )
            elif isinstance(exc, LedgerError) and not isinstance(exc, InfrastructureError):
                logger.info(
                    "transfer_rejected",
                    sender=sender,
                    receiver=receiver,
                    amount=amount,
                    reason=exc.message,
                    caller_cancelled=True,
                )
            else:
                logger.error(
                    "transfer_failed",
                    sender=sender,
                    receiver=receiver,
                    amount=amount,
                    caller_cancelled=True,
                    exc_info=exc,
                )

        task.add_done_callback(settled)

    async def _apply(self, sender: str, receiver: str, amount: int) -> TransferResult:
        async with self.locks.hold(sender, receiver):

            async def work(uow: LedgerUnitOfWork) -> TransferResult:
                return await self._move(uow, sender, receiver, amount)

            return await self.store.run_atomic(work)

    async def _move(self, uow: LedgerUnitOfWork, sender: str, receiver: str, amount: int) -> TransferResult:
        source = await uow.get_account_by_username(sender)
        if source is None:
            raise NotFoundError("Sender not found")
        target = await uow.get_account_by_username(receiver)
        if target is None:
            raise NotFoundError("Receiver not found")

        if source.balance < amount or not await uow.debit(source.id, amount):
            raise InsufficientBalanceError(sender, amount, source.balance)
        await uow.credit(target.id, amount)
        activity = await uow.append_activity(source.id, target.id, amount, self._clock())

        updated_source = await uow.get_account(source.id)
        updated_target = await uow.get_account(target.id)
        if updated_source is None or updated_target is None:
            msg = "Account vanished during transfer"
            raise InfrastructureError(msg)

        return TransferResult(
            sender=updated_source,
            receiver=updated_target,
            activity=activity,
            message=f"Successfully transferred {amount} micropatrons from {sender} to {receiver}",
        )
