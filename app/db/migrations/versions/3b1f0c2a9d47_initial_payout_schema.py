"""initial_payout_schema

Revision ID: 3b1f0c2a9d47
Revises:
Create Date: 2025-12-01 09:12:40.318204

"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "3b1f0c2a9d47"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create firms, payout, trader and review tables."""
    op.create_table(
        "firms",
        sa.Column("id", sa.String(length=100), nullable=False),
        sa.Column("name", sa.String(length=255), nullable=False),
        sa.Column("logo", sa.Text(), nullable=True),
        sa.Column("website", sa.Text(), nullable=True),
        sa.Column("addresses", sa.JSON(), nullable=False),
        sa.Column("timezone", sa.String(length=64), nullable=False),
        sa.Column("last_payout_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("last_payout_amount", sa.Numeric(precision=18, scale=2), nullable=True),
        sa.Column("last_payout_tx_hash", sa.String(length=100), nullable=True),
        sa.Column("last_payout_method", sa.String(length=20), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_firms_last_payout_at", "firms", ["last_payout_at"])

    op.create_table(
        "recent_payouts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tx_hash", sa.String(length=100), nullable=False),
        sa.Column("firm_id", sa.String(length=100), nullable=False),
        sa.Column("amount", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("from_address", sa.String(length=64), nullable=True),
        sa.Column("to_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_recent_payouts_tx_hash", "recent_payouts", ["tx_hash"], unique=True)
    op.create_index("ix_recent_payouts_firm_id", "recent_payouts", ["firm_id"])
    op.create_index("ix_recent_payouts_timestamp", "recent_payouts", ["timestamp"])
    op.create_index(
        "idx_recent_payouts_firm_timestamp", "recent_payouts", ["firm_id", "timestamp"]
    )
    op.create_index(
        "idx_recent_payouts_firm_amount", "recent_payouts", ["firm_id", "amount"]
    )

    op.create_table(
        "trader_profiles",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("handle", sa.String(length=100), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=True),
        sa.Column("wallet_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_trader_profiles_handle", "trader_profiles", ["handle"], unique=True)
    op.create_index(
        "ix_trader_profiles_wallet_address", "trader_profiles", ["wallet_address"], unique=True
    )

    op.create_table(
        "trader_recent_payouts",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("tx_hash", sa.String(length=100), nullable=False),
        sa.Column("wallet_address", sa.String(length=64), nullable=False),
        sa.Column("amount", sa.Numeric(precision=18, scale=2), nullable=False),
        sa.Column("payment_method", sa.String(length=20), nullable=False),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("from_address", sa.String(length=64), nullable=True),
        sa.Column("to_address", sa.String(length=64), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_trader_recent_payouts_tx_hash", "trader_recent_payouts", ["tx_hash"], unique=True
    )
    op.create_index(
        "ix_trader_recent_payouts_wallet_address", "trader_recent_payouts", ["wallet_address"]
    )
    op.create_index(
        "ix_trader_recent_payouts_timestamp", "trader_recent_payouts", ["timestamp"]
    )

    op.create_table(
        "firm_reviews",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("firm_id", sa.String(length=100), nullable=False),
        sa.Column("source", sa.String(length=50), nullable=False),
        sa.Column("rating", sa.Integer(), nullable=True),
        sa.Column("title", sa.Text(), nullable=True),
        sa.Column("body", sa.Text(), nullable=True),
        sa.Column("review_date", sa.Date(), nullable=False),
        sa.Column("category", sa.String(length=50), nullable=True),
        sa.Column("severity", sa.String(length=10), nullable=True),
        sa.Column("ai_summary", sa.Text(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_firm_reviews_firm_id", "firm_reviews", ["firm_id"])
    op.create_index("ix_firm_reviews_review_date", "firm_reviews", ["review_date"])
    op.create_index("ix_firm_reviews_category", "firm_reviews", ["category"])
    op.create_index("idx_firm_reviews_firm_date", "firm_reviews", ["firm_id", "review_date"])

    op.create_table(
        "weekly_incidents",
        sa.Column("id", sa.Integer(), autoincrement=True, nullable=False),
        sa.Column("firm_id", sa.String(length=100), nullable=False),
        sa.Column("week_number", sa.Integer(), nullable=False),
        sa.Column("year", sa.Integer(), nullable=False),
        sa.Column("incident_type", sa.String(length=50), nullable=False),
        sa.Column("severity", sa.String(length=10), nullable=False),
        sa.Column("title", sa.String(length=500), nullable=False),
        sa.Column("summary", sa.Text(), nullable=False),
        sa.Column("review_count", sa.Integer(), nullable=False),
        sa.Column("affected_users", sa.String(length=100), nullable=True),
        sa.Column("review_ids", sa.JSON(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False),
        sa.ForeignKeyConstraint(["firm_id"], ["firms.id"], ondelete="CASCADE"),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_weekly_incidents_firm_id", "weekly_incidents", ["firm_id"])
    op.create_index(
        "idx_weekly_incidents_firm_week", "weekly_incidents", ["firm_id", "year", "week_number"]
    )


def downgrade() -> None:
    """Drop all payout tracker tables."""
    op.drop_table("weekly_incidents")
    op.drop_table("firm_reviews")
    op.drop_table("trader_recent_payouts")
    op.drop_table("trader_profiles")
    op.drop_table("recent_payouts")
    op.drop_table("firms")
