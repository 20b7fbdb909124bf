"""Trader profile model."""

from datetime import datetime, timezone
from typing import Optional
from sqlalchemy import Integer, String, DateTime
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class TraderProfile(Base):
    """A trader whose linked wallet is tracked for incoming payouts."""

    __tablename__ = "trader_profiles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    handle: Mapped[str] = mapped_column(
        String(100), unique=True, nullable=False, index=True
    )
    display_name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    wallet_address: Mapped[Optional[str]] = mapped_column(
        String(64),
        unique=True,
        nullable=True,
        index=True,
        comment="Linked wallet (lowercased); NULL when not linked",
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    def __repr__(self) -> str:
        return f"<TraderProfile(handle={self.handle}, wallet={self.wallet_address})>"
