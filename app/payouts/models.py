"""Data models for payouts, aggregates and monthly archive files."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base for models serialized with camelCase keys (archive files, API)."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class PayoutSummary(CamelModel):
    """Rounded totals over a set of payouts."""

    total_payouts: int = Field(default=0, description="Sum of payouts in USD")
    payout_count: int = Field(default=0, ge=0)
    largest_payout: int = Field(default=0, description="Largest single payout in USD")
    avg_payout: int = Field(default=0, description="Average payout in USD")


class DailyBucket(BaseModel):
    """Payout totals for one local calendar day."""

    date: str = Field(..., description="YYYY-MM-DD in the firm's timezone")
    total: int = 0
    rise: int = 0
    crypto: int = 0
    wire: int = 0


class MonthlyBucket(BaseModel):
    """Payout totals for one calendar month."""

    month: str = Field(..., description="Label such as 'Jan 2025'")
    total: int = 0
    rise: int = 0
    crypto: int = 0
    wire: int = 0


class ArchivedPayout(BaseModel):
    """A payout as stored in a monthly archive file."""

    tx_hash: str
    firm_id: str | None = None
    wallet_address: str | None = Field(default=None, description="Trader wallet (trader files)")
    amount: float = Field(..., description="USD value")
    payment_method: str = "crypto"
    timestamp: datetime
    from_address: str | None = None
    to_address: str | None = None


class MonthFile(CamelModel):
    """Fields shared by firm and trader month files."""

    period: str = Field(..., description="YYYY-MM in the owner's timezone")
    timezone: str = "UTC"
    generated_at: datetime
    summary: PayoutSummary = Field(default_factory=PayoutSummary)
    daily_buckets: list[DailyBucket] = Field(default_factory=list)
    transactions: list[ArchivedPayout] = Field(default_factory=list)


class MonthData(MonthFile):
    """Contents of ``<firm_id>/<YYYY-MM>.json``."""

    firm_id: str


class TraderMonthData(MonthFile):
    """Contents of ``<wallet_address>/<YYYY-MM>.json`` in the trader archive."""

    wallet_address: str


class PeriodData(CamelModel):
    """Archive data aggregated over a '30d' or '12m' window."""

    period: str
    summary: PayoutSummary = Field(default_factory=PayoutSummary)
    daily_buckets: list[DailyBucket] = Field(default_factory=list)
    monthly_buckets: list[MonthlyBucket] = Field(default_factory=list)
    transactions: list[ArchivedPayout] = Field(default_factory=list)


class TopPayout(CamelModel):
    """Entry of a top-payouts list."""

    id: str
    date: str
    amount: int
    payment_method: str
    tx_hash: str
    arbiscan_url: str


class EnrichedTransaction(CamelModel):
    """A processed explorer transaction ready for display."""

    tx_hash: str
    timestamp: int = Field(..., description="Unix seconds")
    from_address: str
    to_address: str
    amount: float = Field(..., description="Token amount")
    token: str
    amount_usd: float = Field(..., alias="amountUSD")
    date: str = Field(..., description="ISO 8601 UTC timestamp")
    from_short: str
    to_short: str
    arbiscan_url: str
    payment_method: str = "crypto"


class TransactionStats(CamelModel):
    """Statistics for a trader wallet's incoming payouts."""

    total_transactions: int = 0
    total_payout_usd: float = Field(default=0.0, alias="totalPayoutUSD")
    last_30_days_payout_usd: float = Field(default=0.0, alias="last30DaysPayoutUSD")
    last_30_days_count: int = Field(default=0, alias="last30DaysCount")
    avg_payout_usd: float = Field(default=0.0, alias="avgPayoutUSD")


class FirmStats(CamelModel):
    """Statistics for a firm's outgoing payouts."""

    total_payout_usd: float = Field(default=0.0, alias="totalPayoutUSD")
    total_payout_count: int = 0
    largest_payout_usd: float = Field(default=0.0, alias="largestPayoutUSD")
    time_since_last_payout: str = "N/A"


class DayTotal(CamelModel):
    """Chart point for the live explorer views."""

    date: str
    total_usd: int = Field(default=0, alias="totalUSD")
    crypto: int = 0
    rise: int = 0
    wire_transfer: int = 0


class MonthTotal(BaseModel):
    month: str
    amount: int = 0
