"""Baseline ledger schema: accounts and the activity log.

Creates accounts (balance >= 0) and activity (amount > 0, no self-transfer,
foreign keys to accounts on both sides) plus the descending timestamp index
used by the activity feed.

Revision ID: 001_ledger_tables
Revises: None
Create Date: 2026-10-19
"""

from collections.abc import Sequence

import sqlalchemy as sa

from alembic import op

revision: str = "001_ledger_tables"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create ledger tables."""
    op.create_table(
        "accounts",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("username", sa.String(64), nullable=False, unique=True),
        sa.Column("balance", sa.BigInteger(), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.CheckConstraint("balance >= 0", name="ck_accounts_balance_non_negative"),
    )

    op.create_table(
        "activity",
        sa.Column("id", sa.String(36), primary_key=True),
        sa.Column("from_user_id", sa.String(36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("to_user_id", sa.String(36), sa.ForeignKey("accounts.id"), nullable=False),
        sa.Column("amount", sa.BigInteger(), nullable=False),
        sa.Column("timestamp", sa.DateTime(), nullable=False),
        sa.CheckConstraint("amount > 0", name="ck_activity_amount_positive"),
        sa.CheckConstraint("from_user_id <> to_user_id", name="ck_activity_not_self"),
    )
    op.create_index("idx_activity_timestamp", "activity", [sa.text("timestamp DESC")])


def downgrade() -> None:
    """Drop ledger tables."""
    op.drop_index("idx_activity_timestamp", table_name="activity")
    op.drop_table("activity")
    op.drop_table("accounts")
