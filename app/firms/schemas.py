"""Response models for the public firm routes (camelCase on the wire)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional, Union

from pydantic import ConfigDict, Field

from app.payouts.models import (
    CamelModel,
    DailyBucket,
    DayTotal,
    EnrichedTransaction,
    FirmStats,
    MonthlyBucket,
    MonthTotal,
    PayoutSummary,
    TopPayout,
    TransactionStats,
)


class FirmInfo(CamelModel):
    id: str
    name: str
    logo: Optional[str] = None
    website: Optional[str] = None


class FirmMetrics(PayoutSummary):
    latest_payout_at: Optional[datetime] = None


class FirmListItem(FirmInfo):
    metrics: FirmMetrics


class FirmListMeta(CamelModel):
    period: str
    sort: str
    order: str
    count: int


class FirmListResponse(CamelModel):
    data: list[FirmListItem]
    meta: FirmListMeta


class ChartSeries(CamelModel):
    period: str
    bucket_type: str = Field(..., description="'daily' or 'monthly'")
    data: list[Union[DailyBucket, MonthlyBucket]]


class ChartResponse(CamelModel):
    firm: FirmInfo
    summary: FirmMetrics
    chart: ChartSeries


class LatestPayout(CamelModel):
    id: str
    timestamp: datetime
    amount: int
    payment_method: str
    tx_hash: str
    arbiscan_url: str


class LatestPayoutsResponse(CamelModel):
    firm_id: str
    payouts: list[LatestPayout]
    count: int


class TopPayoutsResponse(CamelModel):
    firm_id: str
    period: str
    payouts: list[TopPayout]


class SentimentCounts(CamelModel):
    positive: int = 0
    neutral: int = 0
    negative: int = 0


class ReviewSignals(CamelModel):
    review_count: int = 0
    sentiment: SentimentCounts = Field(default_factory=SentimentCounts)


class SignalsResponse(CamelModel):
    firm_id: str
    firm_name: str
    days: int
    payout: PayoutSummary
    reviews: ReviewSignals


class IncidentOut(CamelModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    firm_id: str
    week_number: int
    year: int
    week_start: str = Field(..., description="Monday of the ISO week, YYYY-MM-DD")
    incident_type: str
    severity: str
    title: str
    summary: str
    review_count: int
    affected_users: Optional[str] = None
    review_ids: list[int] = Field(default_factory=list)
    created_at: Optional[datetime] = None


class IncidentsResponse(CamelModel):
    firm_id: str
    days: int
    incidents: list[IncidentOut]


class PropfirmTransactionsResponse(FirmStats):
    addresses: list[str]
    days: int
    transactions: list[EnrichedTransaction]
    daily_data: list[DayTotal]
    top_payouts: list[EnrichedTransaction]
    latest_payouts: list[EnrichedTransaction]


class WalletTransactionsResponse(TransactionStats):
    address: str
    transactions: list[EnrichedTransaction]
    monthly_data: list[MonthTotal]
