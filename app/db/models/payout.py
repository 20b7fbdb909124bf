"""Payout models for the rolling realtime window of on-chain payouts."""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import ForeignKey, Index, Integer, String, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class RecentPayout(Base):
    """
    An outgoing payout from a firm wallet seen in the realtime window.

    Rows are upserted by tx_hash on every sync and pruned once they fall
    outside the retention window.
    """

    __tablename__ = "recent_payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    tx_hash: Mapped[str] = mapped_column(
        String(100),
        unique=True,
        nullable=False,
        index=True,
        comment="On-chain transaction hash",
    )
    firm_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("firms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    amount: Mapped[float] = mapped_column(
        Numeric(precision=18, scale=2, asdecimal=False),
        nullable=False,
        comment="Payout value in USD",
    )
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default="crypto", comment="rise, crypto or wire"
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    from_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    to_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_recent_payouts_firm_timestamp", "firm_id", "timestamp"),
        Index("idx_recent_payouts_firm_amount", "firm_id", "amount"),
    )

    def __repr__(self) -> str:
        return (
            f"<RecentPayout(tx_hash={self.tx_hash}, firm_id={self.firm_id}, "
            f"amount={self.amount}, method={self.payment_method})>"
        )


class TraderRecentPayout(Base):
    """An incoming payout to a trader wallet seen in the realtime window."""

    __tablename__ = "trader_recent_payouts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    tx_hash: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    wallet_address: Mapped[str] = mapped_column(
        String(64), nullable=False, index=True, comment="Lowercased trader wallet"
    )
    amount: Mapped[float] = mapped_column(
        Numeric(precision=18, scale=2, asdecimal=False), nullable=False
    )
    payment_method: Mapped[str] = mapped_column(
        String(20), nullable=False, default="crypto"
    )
    timestamp: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, index=True
    )
    from_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    to_address: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return (
            f"<TraderRecentPayout(tx_hash={self.tx_hash}, "
            f"wallet={self.wallet_address}, amount={self.amount})>"
        )
