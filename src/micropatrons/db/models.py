"""ORM models for the ledger file.

Two tables: ``accounts`` holds balances, ``activity`` is the append-only
transfer log. The CHECK constraints back the service-level rules so a bug
above the store still cannot persist a negative balance or a self-transfer.
"""

from __future__ import annotations

import uuid
from datetime import datetime, timezone

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from micropatrons.db.base import Base, UTCDateTime


def _uuid() -> str:
    return str(uuid.uuid4())


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


class Account(Base):
    """Maps to the 'accounts' table."""

    __tablename__ = "accounts"
    __table_args__ = (CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),)

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    username: Mapped[str] = mapped_column(String(64), unique=True, nullable=False)
    balance: Mapped[int] = mapped_column(BigInteger, nullable=False, default=200_000)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)

    sent: Mapped[list[Activity]] = relationship(
        "Activity", back_populates="sender", foreign_keys="Activity.from_user_id"
    )
    received: Mapped[list[Activity]] = relationship(
        "Activity", back_populates="receiver", foreign_keys="Activity.to_user_id"
    )


# ---------------------------------------------------------------------------
# Activity log
# ---------------------------------------------------------------------------


class Activity(Base):
    """One completed transfer. Rows are never updated or deleted by the API."""

    __tablename__ = "activity"
    __table_args__ = (
        CheckConstraint("amount > 0", name="ck_activity_amount_positive"),
        CheckConstraint("from_user_id <> to_user_id", name="ck_activity_not_self"),
    )

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=_uuid)
    from_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("accounts.id"), nullable=False)
    to_user_id: Mapped[str] = mapped_column(String(36), ForeignKey("accounts.id"), nullable=False)
    amount: Mapped[int] = mapped_column(BigInteger, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False, default=_utcnow)

    sender: Mapped[Account] = relationship("Account", back_populates="sent", foreign_keys=[from_user_id])
    receiver: Mapped[Account] = relationship("Account", back_populates="received", foreign_keys=[to_user_id])


# Feed queries read newest first
Index("idx_activity_timestamp", Activity.timestamp.desc())
