"""Response models for the public trader routes (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import Field

from app.payouts.models import CamelModel


class TraderOut(CamelModel):
    id: int
    display_name: Optional[str] = None
    handle: str
    wallet_address: str
    created_at: Optional[datetime] = None
    total_verified_payout: float = Field(default=0.0, description="USD, 2 decimals")
    last_30_days_payout: float = Field(default=0.0, alias="last30DaysPayout")
    avg_payout: float = 0.0
    payout_count: int = 0
    last_payout_at: Optional[datetime] = None


class TraderResponse(CamelModel):
    trader: TraderOut


class LeaderboardResponse(CamelModel):
    traders: list[TraderOut]
