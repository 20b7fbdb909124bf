"""
Read-side aggregation for the public trader routes.

Trader figures combine the trader month archive (full history) with
``trader_recent_payouts`` (the realtime window), counting each
transaction once.
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from app.db.models.payout import TraderRecentPayout
from app.db.models.trader import TraderProfile
from app.db.unit_of_work import UnitOfWork
from app.firms.service import merge_payouts
from app.payouts.archive import TraderPayoutArchive
from app.payouts.processor import round_half_up, to_datetime


def trader_payout_row(payout: TraderRecentPayout) -> Dict[str, Any]:
    return {
        "tx_hash": payout.tx_hash,
        "wallet_address": payout.wallet_address,
        "amount": float(payout.amount),
        "payment_method": payout.payment_method,
        "timestamp": to_datetime(payout.timestamp),
        "from_address": payout.from_address,
        "to_address": payout.to_address,
    }


async def trader_payouts(
    uow: UnitOfWork, archive: TraderPayoutArchive, wallet_address: str
) -> List[Dict[str, Any]]:
    """Every known payout to a wallet, newest first."""
    archived = archive.all_transactions(wallet_address)
    recent = await uow.trader_payouts.get_for_wallet(wallet_address)
    return merge_payouts(archived, (trader_payout_row(p) for p in recent))


def trader_stats(
    payouts: Sequence[Dict[str, Any]], now: Optional[datetime] = None
) -> Dict[str, Any]:
    """Totals over a wallet's payouts; amounts rounded to cents."""
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=30)
    total = sum(p["amount"] for p in payouts)
    recent_total = sum(p["amount"] for p in payouts if p["timestamp"] >= cutoff)

    return {
        "total_verified_payout": round_half_up(total, 2),
        "last_30_days_payout": round_half_up(recent_total, 2),
        "avg_payout": round_half_up(total / len(payouts), 2) if payouts else 0.0,
        "payout_count": len(payouts),
        "last_payout_at": max((p["timestamp"] for p in payouts), default=None),
    }


async def trader_with_stats(
    uow: UnitOfWork,
    archive: TraderPayoutArchive,
    profile: TraderProfile,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    payouts = await trader_payouts(uow, archive, profile.wallet_address)
    return {
        "id": profile.id,
        "display_name": profile.display_name,
        "handle": profile.handle,
        "wallet_address": profile.wallet_address,
        "created_at": profile.created_at,
        **trader_stats(payouts, now),
    }


async def build_leaderboard(
    uow: UnitOfWork, archive: TraderPayoutArchive, now: Optional[datetime] = None
) -> List[Dict[str, Any]]:
    """Public traders with verified payouts, largest total first."""
    traders = []
    for profile in await uow.traders.list_public():
        if not (profile.handle or "").strip():
            continue
        trader = await trader_with_stats(uow, archive, profile, now)
        if trader["total_verified_payout"] > 0:
            traders.append(trader)

    traders.sort(key=lambda t: t["total_verified_payout"], reverse=True)
    return traders
