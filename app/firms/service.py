"""
Read-side aggregation for the public firm routes.

Firm figures combine two sources: the monthly archive (full history, as of
the last monthly update) and ``recent_payouts`` (the realtime window).
Payouts present in both are counted once.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from app.db.models.firm import Firm
from app.db.models.payout import RecentPayout
from app.db.unit_of_work import UnitOfWork
from app.payouts.archive import PayoutArchive
from app.payouts.processor import TX_URL, round_usd, summarize_payouts, to_datetime

PERIOD_HOURS = {"1d": 24, "7d": 24 * 7, "30d": 24 * 30, "12m": 24 * 365}
SORT_FIELDS = ("totalPayouts", "payoutCount", "largestPayout", "avgPayout", "latestPayout")
ORDERS = ("asc", "desc")


def payout_row(payout: RecentPayout) -> Dict[str, Any]:
    return {
        "tx_hash": payout.tx_hash,
        "firm_id": payout.firm_id,
        "amount": float(payout.amount),
        "payment_method": payout.payment_method,
        "timestamp": to_datetime(payout.timestamp),
        "from_address": payout.from_address,
        "to_address": payout.to_address,
    }


def merge_payouts(*sources: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Union of payout dicts keyed by tx_hash (later sources win), newest first."""
    merged: Dict[str, Dict[str, Any]] = {}
    for source in sources:
        for payout in source:
            merged[payout["tx_hash"]] = payout
    return sorted(merged.values(), key=lambda p: p["timestamp"], reverse=True)


async def firm_payouts_since(
    uow: UnitOfWork,
    archive: PayoutArchive,
    firm: Firm,
    since: datetime,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """All known payouts of a firm at or after ``since``, newest first."""
    archived = archive.transactions_since(firm.id, since, firm.timezone or "UTC", now)
    recent = await uow.payouts.get_since(since, firm_id=firm.id)
    return merge_payouts(archived, (payout_row(p) for p in recent))


def firm_metrics(firm: Firm, payouts: Sequence[Dict[str, Any]]) -> Dict[str, Any]:
    summary = summarize_payouts(payouts)
    return {
        **summary.model_dump(),
        "latest_payout_at": to_datetime(firm.last_payout_at) if firm.last_payout_at else None,
    }


def normalize_list_params(period: str, sort: str, order: str) -> Tuple[str, str, str]:
    """Replace unknown period, sort or order values with 1d, totalPayouts and desc."""
    return (
        period if period in PERIOD_HOURS else "1d",
        sort if sort in SORT_FIELDS else "totalPayouts",
        order if order in ORDERS else "desc",
    )


def _sort_value(item: Dict[str, Any], sort: str) -> float:
    metrics = item["metrics"]
    if sort == "latestPayout":
        latest = metrics["latest_payout_at"]
        return latest.timestamp() if latest else 0.0
    key = {
        "totalPayouts": "total_payouts",
        "payoutCount": "payout_count",
        "largestPayout": "largest_payout",
        "avgPayout": "avg_payout",
    }[sort]
    return metrics[key] or 0


async def list_firms_with_metrics(
    uow: UnitOfWork,
    archive: PayoutArchive,
    period: str = "1d",
    sort: str = "totalPayouts",
    order: str = "desc",
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    """
    Every firm with payout metrics over ``period``, sorted.
    """
    period, sort, order = normalize_list_params(period, sort, order)
    now = now or datetime.now(timezone.utc)
    since = now - timedelta(hours=PERIOD_HOURS[period])

    items = []
    for firm in await uow.firms.list_firms():
        payouts = await firm_payouts_since(uow, archive, firm, since, now)
        items.append(
            {
                "id": firm.id,
                "name": firm.name,
                "logo": firm.logo,
                "website": firm.website,
                "metrics": firm_metrics(firm, payouts),
            }
        )

    items.sort(key=lambda item: _sort_value(item, sort), reverse=order == "desc")
    return items


def top_payouts(
    archived: Sequence[Any],
    recent: Sequence[Dict[str, Any]],
    limit: int = 10,
) -> List[Dict[str, Any]]:
    """
    Largest payouts from archive entries (``TopPayout``) and recent rows,
    counting each transaction once.
    """
    entries: Dict[str, Dict[str, Any]] = {
        t.tx_hash: t.model_dump() for t in archived
    }
    for p in recent:
        entries.setdefault(
            p["tx_hash"],
            {
                "id": p["tx_hash"],
                "date": p["timestamp"].astimezone(timezone.utc).date().isoformat(),
                "amount": round_usd(p["amount"]),
                "payment_method": p["payment_method"],
                "tx_hash": p["tx_hash"],
                "arbiscan_url": TX_URL.format(tx_hash=p["tx_hash"]),
            },
        )
    return sorted(entries.values(), key=lambda t: t["amount"], reverse=True)[:limit]
