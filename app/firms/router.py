"""
Public firm routes.

``/api/v2/propfirms`` serves persisted data (archive plus realtime table)
behind the origin check and rate limit. ``/api/propfirm-transactions`` and
``/api/transactions`` query the explorer live.
"""

import re
from datetime import datetime, timedelta, timezone
from typing import Optional

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from app.api.security import public_access
from app.db.unit_of_work import UnitOfWork, get_uow
from app.explorer.clients import BaseExplorerClient, get_explorer_client
from app.firms.schemas import (
    ChartResponse,
    FirmListResponse,
    IncidentOut,
    IncidentsResponse,
    LatestPayoutsResponse,
    PropfirmTransactionsResponse,
    SignalsResponse,
    TopPayoutsResponse,
    WalletTransactionsResponse,
)
from app.firms.service import (
    firm_metrics,
    firm_payouts_since,
    list_firms_with_metrics,
    normalize_list_params,
    payout_row,
    top_payouts,
)
from app.intelligence.taxonomy import count_sentiment
from app.intelligence.weeks import monday_of
from app.payouts.archive import (
    PayoutArchive,
    current_year_month,
    month_start_timestamp,
    shift_year_month,
)
from app.payouts.config import get_payout_config
from app.payouts.processor import (
    TX_URL,
    build_daily_buckets,
    build_monthly_buckets,
    calculate_firm_stats,
    calculate_stats,
    group_by_day,
    group_by_month,
    process_incoming_transactions,
    process_outgoing_transactions,
    round_usd,
)
from app.payouts.sync import fetch_address_history

logger = structlog.get_logger(__name__)

ADDRESS_RE = re.compile(r"^0x[a-fA-F0-9]{40}$")
CHART_PERIODS = ("30d", "12m")

router = APIRouter(
    prefix="/api/v2/propfirms",
    tags=["propfirms"],
    dependencies=[Depends(public_access)],
)
live_router = APIRouter(prefix="/api", tags=["live"])


def get_archive() -> PayoutArchive:
    return PayoutArchive()


def get_live_client() -> BaseExplorerClient:
    # Raises ExplorerConfigError (503) when the API key is missing
    return get_explorer_client()


def _clamp_days(days: int) -> int:
    return min(365, max(1, days))


async def _get_firm_or_404(uow: UnitOfWork, firm_id: str):
    firm = await uow.firms.get_by_id(firm_id)
    if firm is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Firm not found")
    return firm


@router.get("", response_model=FirmListResponse)
async def list_firms(
    period: str = "1d",
    sort: str = "totalPayouts",
    order: str = "desc",
    uow: UnitOfWork = Depends(get_uow),
    archive: PayoutArchive = Depends(get_archive),
):
    """
    All firms with payout metrics for a period.

    Query params:
        period: 1d, 7d, 30d or 12m (default 1d)
        sort: totalPayouts, payoutCount, largestPayout, avgPayout or latestPayout
        order: asc or desc (default desc)
    """
    period, sort, order = normalize_list_params(period, sort, order)
    data = await list_firms_with_metrics(uow, archive, period, sort, order)

    return {
        "data": data,
        "meta": {"period": period, "sort": sort, "order": order, "count": len(data)},
    }


@router.get("/{firm_id}/chart", response_model=ChartResponse)
async def firm_chart(
    firm_id: str,
    period: str = "30d",
    uow: UnitOfWork = Depends(get_uow),
    archive: PayoutArchive = Depends(get_archive),
):
    """Summary and chart buckets: 30 daily buckets (30d) or 12 monthly buckets (12m)."""
    period = period if period in CHART_PERIODS else "30d"
    firm = await _get_firm_or_404(uow, firm_id)
    tz = firm.timezone or "UTC"
    now = datetime.now(timezone.utc)

    if period == "30d":
        since = now - timedelta(days=30)
    else:
        first_month = shift_year_month(current_year_month(tz, now), -11)
        since = datetime.fromtimestamp(month_start_timestamp(first_month, tz), tz=timezone.utc)

    payouts = await firm_payouts_since(uow, archive, firm, since, now)

    if period == "30d":
        bucket_type = "daily"
        data = build_daily_buckets(payouts, tz, days=30, now=now)
    else:
        bucket_type = "monthly"
        data = build_monthly_buckets(payouts, 12, tz, now)

    return {
        "firm": {
            "id": firm.id,
            "name": firm.name,
            "logo": firm.logo,
            "website": firm.website,
        },
        "summary": firm_metrics(firm, payouts),
        "chart": {"period": period, "bucket_type": bucket_type, "data": data},
    }


@router.get("/{firm_id}/latest-payouts", response_model=LatestPayoutsResponse)
async def latest_payouts(firm_id: str, uow: UnitOfWork = Depends(get_uow)):
    """Payouts of the realtime window, newest first."""
    await _get_firm_or_404(uow, firm_id)

    window = get_payout_config().realtime_window_hours
    since = datetime.now(timezone.utc) - timedelta(hours=window)
    rows = await uow.payouts.get_since(since, firm_id=firm_id, descending=True)

    payouts = [
        {
            "id": row["tx_hash"],
            "timestamp": row["timestamp"],
            "amount": round_usd(row["amount"]),
            "payment_method": row["payment_method"],
            "tx_hash": row["tx_hash"],
            "arbiscan_url": TX_URL.format(tx_hash=row["tx_hash"]),
        }
        for row in map(payout_row, rows)
    ]
    return {"firm_id": firm_id, "payouts": payouts, "count": len(payouts)}


@router.get("/{firm_id}/top-payouts", response_model=TopPayoutsResponse)
async def firm_top_payouts(
    firm_id: str,
    period: str = "30d",
    uow: UnitOfWork = Depends(get_uow),
    archive: PayoutArchive = Depends(get_archive),
):
    """Ten largest single payouts for 30d or 12m."""
    period = period if period in CHART_PERIODS else "30d"
    firm = await _get_firm_or_404(uow, firm_id)

    now = datetime.now(timezone.utc)
    since = now - timedelta(days=30 if period == "30d" else 365)
    archived = archive.top_payouts_from_archive(
        firm_id, period, 10, firm.timezone or "UTC", now
    )
    recent = await uow.payouts.get_since(
        since, firm_id=firm_id, order_by="amount", descending=True, limit=10
    )

    return {
        "firm_id": firm_id,
        "period": period,
        "payouts": top_payouts(archived, [payout_row(p) for p in recent], 10),
    }


@router.get("/{firm_id}/signals", response_model=SignalsResponse)
async def firm_signals(
    firm_id: str,
    days: int = 30,
    uow: UnitOfWork = Depends(get_uow),
    archive: PayoutArchive = Depends(get_archive),
):
    """30 day payout summary and review sentiment over the last ``days`` (1..365)."""
    days = _clamp_days(days)
    firm = await _get_firm_or_404(uow, firm_id)

    period_data = archive.load_period_data(firm_id, "30d", firm.timezone or "UTC")
    cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).date()
    reviews = await uow.reviews.get_for_firm(firm_id, cutoff)

    logger.info("signals.loaded", firm_id=firm_id, days=days, reviews=len(reviews))
    return {
        "firm_id": firm_id,
        "firm_name": firm.name,
        "days": days,
        "payout": period_data.summary,
        "reviews": {
            "review_count": len(reviews),
            "sentiment": count_sentiment(r.category for r in reviews),
        },
    }


@router.get("/{firm_id}/incidents", response_model=IncidentsResponse)
async def firm_incidents(
    firm_id: str,
    days: int = 90,
    uow: UnitOfWork = Depends(get_uow),
):
    """Weekly incidents whose week starts within the last ``days`` (1..365), newest first."""
    days = _clamp_days(days)
    cutoff = (datetime.now(timezone.utc) - timedelta(days=days)).date()

    incidents = []
    for row in await uow.incidents.get_for_firm(firm_id):
        week_start = monday_of(row.year, row.week_number)
        if week_start < cutoff:
            continue
        item = IncidentOut.model_validate(
            {
                **{c: getattr(row, c) for c in IncidentOut.model_fields if c != "week_start"},
                "week_start": week_start.isoformat(),
            }
        )
        incidents.append(item)

    return {"firm_id": firm_id, "days": days, "incidents": incidents}


@live_router.get("/propfirm-transactions", response_model=PropfirmTransactionsResponse)
async def propfirm_transactions(
    addresses: Optional[str] = None,
    days: int = Query(default=7, ge=1, le=365),
    client: BaseExplorerClient = Depends(get_live_client),
):
    """
    Live outgoing payouts of a set of firm wallets.

    Query params:
        addresses: Comma-separated wallet addresses (required)
        days: Days to look back (default 7)
    """
    if not addresses:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Addresses parameter required"
        )
    address_list = [a.strip() for a in addresses.split(",") if a.strip()]
    if not address_list:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="At least one valid address required",
        )

    config = get_payout_config()
    native, tokens = await fetch_address_history(client, address_list, config.address_delay)
    transactions = process_outgoing_transactions(native, tokens, address_list, days, config=config)
    stats = calculate_firm_stats(transactions)

    latest_cutoff = (datetime.now(timezone.utc) - timedelta(hours=24)).timestamp()
    logger.info(
        "live.propfirm_transactions",
        addresses=len(address_list),
        days=days,
        payouts=stats.total_payout_count,
    )
    return {
        **stats.model_dump(),
        "addresses": address_list,
        "days": days,
        "transactions": transactions,
        "daily_data": group_by_day(transactions, days),
        "top_payouts": sorted(transactions, key=lambda t: t.amount_usd, reverse=True)[:10],
        "latest_payouts": [t for t in transactions if t.timestamp >= latest_cutoff],
    }


@live_router.get("/transactions", response_model=WalletTransactionsResponse)
async def wallet_transactions(
    address: Optional[str] = None,
    client: BaseExplorerClient = Depends(get_live_client),
):
    """Live incoming payouts of a trader wallet with stats and monthly totals."""
    if not address:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Address parameter is required"
        )
    if not ADDRESS_RE.match(address):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid Ethereum address format"
        )

    native, tokens = await fetch_address_history(client, [address], 0)
    transactions = process_incoming_transactions(native, tokens, address)

    logger.info("live.wallet_transactions", address=address, transactions=len(transactions))
    return {
        **calculate_stats(transactions).model_dump(),
        "address": address,
        "transactions": transactions,
        "monthly_data": group_by_month(transactions),
    }
