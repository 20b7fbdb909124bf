"""Firm model: a prop trading firm and the wallets it pays out from."""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import JSON, String, Text, DateTime, Numeric
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class Firm(Base):
    """
    A tracked prop trading firm.

    Holds the firm's payout wallet addresses and a denormalized copy of its
    most recent payout so list views do not need to scan the payout table.
    """

    __tablename__ = "firms"

    # Slug primary key (e.g. 'fundingpips')
    id: Mapped[str] = mapped_column(String(100), primary_key=True)

    name: Mapped[str] = mapped_column(String(255), nullable=False)
    logo: Mapped[Optional[str]] = mapped_column(
        Text, nullable=True, comment="Logo URL"
    )
    website: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    addresses: Mapped[list[str]] = mapped_column(
        JSON,
        nullable=False,
        default=list,
        comment="Payout wallet addresses (0x...)",
    )
    timezone: Mapped[str] = mapped_column(
        String(64),
        nullable=False,
        default="UTC",
        comment="IANA timezone used for daily buckets",
    )

    # Last payout (denormalized, only ever moves forward)
    last_payout_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True, index=True
    )
    last_payout_amount: Mapped[Optional[float]] = mapped_column(
        Numeric(precision=18, scale=2, asdecimal=False), nullable=True
    )
    last_payout_tx_hash: Mapped[Optional[str]] = mapped_column(
        String(100), nullable=True
    )
    last_payout_method: Mapped[Optional[str]] = mapped_column(
        String(20), nullable=True
    )
    last_synced_at: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<Firm(id={self.id}, name={self.name}, addresses={len(self.addresses or [])})>"
