"""
Monthly JSON payout archive.

One file per firm and month at ``<data_dir>/<firm_id>/<YYYY-MM>.json``,
and one per trader wallet and month at ``<trader_data_dir>/<wallet>/<YYYY-MM>.json``.
Firm months and daily buckets follow the firm's local timezone; trader
files use UTC. The files hold full history; the database only keeps the
realtime window.
"""

import asyncio
import json
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Type
from zoneinfo import ZoneInfo

import structlog
from pydantic import ValidationError

from app.explorer.clients import BaseExplorerClient, RawExplorerTx
from app.payouts.config import PayoutConfig, get_payout_config
from app.payouts.models import (
    ArchivedPayout,
    MonthData,
    MonthFile,
    PeriodData,
    TopPayout,
    TraderMonthData,
)
from app.payouts.processor import (
    TX_URL,
    build_daily_buckets,
    build_monthly_buckets,
    local_date,
    local_year_month,
    process_payouts,
    process_trader_payouts,
    round_usd,
    summarize_payouts,
)

logger = structlog.get_logger(__name__)

PERIODS = ("30d", "12m")
_EPOCH = datetime.fromtimestamp(0, tz=timezone.utc)


def shift_year_month(year_month: str, months: int) -> str:
    year, month = (int(part) for part in year_month.split("-"))
    index = year * 12 + (month - 1) + months
    return f"{index // 12:04d}-{index % 12 + 1:02d}"


def months_between(first: str, last: str) -> List[str]:
    """Every YYYY-MM from ``first`` through ``last``, oldest first."""
    months = [first]
    while months[-1] < last:
        months.append(shift_year_month(months[-1], 1))
    return months


def current_year_month(tz: str = "UTC", now: Optional[datetime] = None) -> str:
    """Current month (YYYY-MM) as seen in ``tz``."""
    return local_year_month(now or datetime.now(timezone.utc), tz)


def month_start_timestamp(year_month: str, tz: str = "UTC") -> int:
    """Unix time of local midnight on the first day of the month."""
    year, month = (int(part) for part in year_month.split("-"))
    return int(datetime(year, month, 1, tzinfo=ZoneInfo(tz)).timestamp())


def process_transactions_for_month(
    native: Sequence[RawExplorerTx],
    tokens: Sequence[RawExplorerTx],
    addresses: Sequence[str],
    firm_id: str,
    year_month: str,
    tz: str = "UTC",
    config: Optional[PayoutConfig] = None,
) -> List[Dict[str, Any]]:
    """Outgoing payouts that fall in ``year_month`` locally, newest first."""
    payouts = process_payouts(
        native, tokens, addresses, firm_id, since=_EPOCH, config=config
    )
    return _in_month(payouts, year_month, tz)


def process_trader_transactions_for_month(
    native: Sequence[RawExplorerTx],
    tokens: Sequence[RawExplorerTx],
    wallet_address: str,
    year_month: str,
    config: Optional[PayoutConfig] = None,
) -> List[Dict[str, Any]]:
    """Incoming payouts to a trader wallet in the UTC month, newest first."""
    payouts = process_trader_payouts(
        native, tokens, wallet_address, since=_EPOCH, config=config
    )
    return _in_month(payouts, year_month, "UTC")


def _in_month(
    payouts: Sequence[Dict[str, Any]], year_month: str, tz: str
) -> List[Dict[str, Any]]:
    in_month = [p for p in payouts if local_year_month(p["timestamp"], tz) == year_month]
    in_month.sort(key=lambda p: p["timestamp"], reverse=True)
    return in_month


def _month_fields(
    year_month: str,
    transactions: Sequence[Mapping[str, Any]],
    tz: str,
    now: Optional[datetime],
) -> Dict[str, Any]:
    return {
        "period": year_month,
        "timezone": tz,
        "generated_at": now or datetime.now(timezone.utc),
        "summary": summarize_payouts(transactions),
        "daily_buckets": build_daily_buckets(transactions, tz),
        "transactions": [ArchivedPayout.model_validate(dict(t)) for t in transactions],
    }


def build_month_data(
    firm_id: str,
    year_month: str,
    transactions: Sequence[Mapping[str, Any]],
    tz: str = "UTC",
    now: Optional[datetime] = None,
) -> MonthData:
    """Summary, local daily buckets and transactions for one month file."""
    return MonthData(firm_id=firm_id, **_month_fields(year_month, transactions, tz, now))


def build_trader_month_data(
    wallet_address: str,
    year_month: str,
    transactions: Sequence[Mapping[str, Any]],
    now: Optional[datetime] = None,
) -> TraderMonthData:
    """Month file contents for a trader wallet (UTC days)."""
    return TraderMonthData(
        wallet_address=wallet_address.lower(),
        **_month_fields(year_month, transactions, "UTC", now),
    )


class PayoutArchive:
    """Reads and writes the monthly archive files of one data directory."""

    month_model: Type[MonthFile] = MonthData
    owner_field = "firm_id"

    def __init__(self, data_dir: Optional[str] = None):
        self.data_dir = Path(data_dir or get_payout_config().data_dir)

    def owner_dir(self, owner_id: str) -> Path:
        return self.data_dir / owner_id

    def month_path(self, owner_id: str, year_month: str) -> Path:
        return self.owner_dir(owner_id) / f"{year_month}.json"

    def load_month_data(self, owner_id: str, year_month: str) -> Optional[Any]:
        """Parsed month file, or None if missing or unreadable."""
        path = self.month_path(owner_id, year_month)
        if not path.exists():
            return None

        try:
            return self.month_model.model_validate_json(path.read_text(encoding="utf-8"))
        except (OSError, ValidationError) as e:
            logger.warning("archive.load_failed", path=str(path), error=str(e))
            return None

    def save_month_data(self, data: MonthFile) -> Path:
        path = self.month_path(getattr(data, self.owner_field), data.period)
        path.parent.mkdir(parents=True, exist_ok=True)
        payload = data.model_dump(mode="json", by_alias=True)
        path.write_text(json.dumps(payload, indent=2), encoding="utf-8")
        return path

    def available_months(self, owner_id: str) -> List[str]:
        """Archived months for a firm or wallet, newest first."""
        owner_dir = self.owner_dir(owner_id)
        if not owner_dir.is_dir():
            return []
        return sorted((p.stem for p in owner_dir.glob("*.json")), reverse=True)

    def _load_transactions(self, owner_id: str, months: Sequence[str]) -> List[Dict[str, Any]]:
        transactions: List[Dict[str, Any]] = []
        for year_month in months:
            data = self.load_month_data(owner_id, year_month)
            if data is not None:
                transactions.extend(t.model_dump() for t in data.transactions)
        return transactions

    def transactions_since(
        self,
        owner_id: str,
        since: datetime,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> List[Dict[str, Any]]:
        """Archived payouts at or after ``since``, newest first."""
        now = now or datetime.now(timezone.utc)
        months = months_between(local_year_month(since, tz), current_year_month(tz, now))

        transactions = [
            t for t in self._load_transactions(owner_id, months) if t["timestamp"] >= since
        ]
        transactions.sort(key=lambda t: t["timestamp"], reverse=True)
        return transactions

    def _period_transactions(
        self, owner_id: str, period: str, tz: str, now: datetime
    ) -> List[Dict[str, Any]]:
        if period == "30d":
            return self.transactions_since(owner_id, now - timedelta(days=30), tz, now)

        current = current_year_month(tz, now)
        if period == "12m":
            months = [shift_year_month(current, -offset) for offset in range(11, -1, -1)]
            transactions = self._load_transactions(owner_id, months)
        else:
            return []

        transactions.sort(key=lambda t: t["timestamp"], reverse=True)
        return transactions

    def load_period_data(
        self,
        owner_id: str,
        period: str,
        tz: str = "UTC",
        now: Optional[datetime] = None,
        transaction_limit: int = 100,
    ) -> PeriodData:
        """
        Aggregate archive data over a rolling period.

        '30d' reads every month file the last 30 days touch and returns the
        daily buckets of those days. '12m' returns twelve monthly buckets,
        zero-filled where a month has no file.
        """
        now = now or datetime.now(timezone.utc)
        if period not in PERIODS:
            return PeriodData(period=period)

        transactions = self._period_transactions(owner_id, period, tz, now)
        summary = summarize_payouts(transactions)

        if period == "30d":
            cutoff = now - timedelta(days=30)
            cutoff_day = local_date(cutoff, tz).isoformat()
            months = months_between(local_year_month(cutoff, tz), current_year_month(tz, now))
            buckets = []
            for year_month in months:
                data = self.load_month_data(owner_id, year_month)
                if data is not None:
                    buckets.extend(b for b in data.daily_buckets if b.date >= cutoff_day)
            buckets.sort(key=lambda b: b.date)

            return PeriodData(
                period=period,
                summary=summary,
                daily_buckets=buckets,
                transactions=[
                    ArchivedPayout.model_validate(t) for t in transactions[:transaction_limit]
                ],
            )

        return PeriodData(
            period=period,
            summary=summary,
            monthly_buckets=build_monthly_buckets(transactions, 12, tz, now),
        )

    def top_payouts_from_archive(
        self,
        owner_id: str,
        period: str,
        limit: int = 10,
        tz: str = "UTC",
        now: Optional[datetime] = None,
    ) -> List[TopPayout]:
        """Largest archived payouts in the period."""
        now = now or datetime.now(timezone.utc)
        transactions = self._period_transactions(owner_id, period, tz, now)
        transactions.sort(key=lambda t: t["amount"], reverse=True)

        return [
            TopPayout(
                id=t["tx_hash"],
                date=t["timestamp"].astimezone(timezone.utc).date().isoformat(),
                amount=round_usd(t["amount"]),
                payment_method=t["payment_method"],
                tx_hash=t["tx_hash"],
                arbiscan_url=TX_URL.format(tx_hash=t["tx_hash"]),
            )
            for t in transactions[:limit]
        ]


class TraderPayoutArchive(PayoutArchive):
    """Month files of trader wallets, keyed by lowercased wallet address."""

    month_model = TraderMonthData
    owner_field = "wallet_address"

    def __init__(self, data_dir: Optional[str] = None):
        super().__init__(data_dir or get_payout_config().trader_data_dir)

    def owner_dir(self, owner_id: str) -> Path:
        return self.data_dir / owner_id.lower()

    def all_transactions(
        self, wallet_address: str, limit: Optional[int] = None
    ) -> List[Dict[str, Any]]:
        """Every archived payout of a wallet, newest first."""
        months = self.available_months(wallet_address)
        transactions = self._load_transactions(wallet_address, months)
        transactions.sort(key=lambda t: t["timestamp"], reverse=True)
        return transactions[:limit] if limit else transactions


async def fetch_full_history(
    client: BaseExplorerClient,
    addresses: Sequence[str],
    since_timestamp: int,
    delay: float,
) -> Tuple[List[RawExplorerTx], List[RawExplorerTx]]:
    """All native and token pages back to ``since_timestamp`` for each address."""
    native: List[RawExplorerTx] = []
    tokens: List[RawExplorerTx] = []
    for address in addresses:
        native.extend(await client.fetch_all_native_transactions(address, since_timestamp))
        tokens.extend(await client.fetch_all_token_transactions(address, since_timestamp))
        await asyncio.sleep(delay)
    return native, tokens


def store_if_changed(
    archive: PayoutArchive, owner_id: str, month_data: MonthFile
) -> Dict[str, Any]:
    """
    Write a month file when its payout count differs from the stored one.

    Returns:
        ``{"changed", "new_payouts", "previous_count", "path"}``
    """
    existing = archive.load_month_data(owner_id, month_data.period)
    existing_count = existing.summary.payout_count if existing else 0
    if existing_count == month_data.summary.payout_count:
        return {"changed": False, "new_payouts": 0, "previous_count": existing_count, "path": None}

    path = archive.save_month_data(month_data)
    return {
        "changed": True,
        "new_payouts": month_data.summary.payout_count - existing_count,
        "previous_count": existing_count,
        "path": str(path),
    }


async def update_firm_month(
    firm: Any,
    client: BaseExplorerClient,
    archive: Optional[PayoutArchive] = None,
    config: Optional[PayoutConfig] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Rebuild the current month file for a firm from full explorer history.

    The file is only written when the payout count differs from the
    existing file.

    Returns:
        ``{"firm_id", "year_month", "payouts", "changed", "new_payouts"}``
    """
    archive = archive or PayoutArchive()
    config = config or get_payout_config()
    tz = getattr(firm, "timezone", None) or "UTC"
    year_month = current_year_month(tz, now)

    logger.info("archive.update.started", firm_id=firm.id, year_month=year_month, timezone=tz)

    native, tokens = await fetch_full_history(
        client, firm.addresses, month_start_timestamp(year_month, tz), config.address_delay
    )
    transactions = process_transactions_for_month(
        native, tokens, firm.addresses, firm.id, year_month, tz, config
    )
    result: Dict[str, Any] = {
        "firm_id": firm.id,
        "year_month": year_month,
        "payouts": len(transactions),
        "changed": False,
        "new_payouts": 0,
    }
    if not transactions:
        logger.info("archive.update.empty", firm_id=firm.id, year_month=year_month)
        return result

    month_data = build_month_data(firm.id, year_month, transactions, tz, now)
    stored = store_if_changed(archive, firm.id, month_data)
    if not stored["changed"]:
        logger.info(
            "archive.update.unchanged", firm_id=firm.id, payout_count=stored["previous_count"]
        )
        return result

    result["changed"] = True
    result["new_payouts"] = stored["new_payouts"]
    logger.info(
        "archive.update.saved",
        firm_id=firm.id,
        path=stored["path"],
        previous_count=stored["previous_count"],
        payout_count=month_data.summary.payout_count,
        total_payouts=month_data.summary.total_payouts,
    )
    return result


async def update_trader_month(
    wallet_address: str,
    client: BaseExplorerClient,
    archive: Optional[TraderPayoutArchive] = None,
    config: Optional[PayoutConfig] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Rebuild the current UTC month file for a trader wallet.

    Returns:
        ``{"wallet_address", "year_month", "payouts", "changed", "new_payouts"}``
    """
    archive = archive or TraderPayoutArchive()
    config = config or get_payout_config()
    wallet = wallet_address.lower()
    year_month = current_year_month("UTC", now)

    native, tokens = await fetch_full_history(
        client, [wallet], month_start_timestamp(year_month), 0
    )
    transactions = process_trader_transactions_for_month(
        native, tokens, wallet, year_month, config
    )
    result: Dict[str, Any] = {
        "wallet_address": wallet,
        "year_month": year_month,
        "payouts": len(transactions),
        "changed": False,
        "new_payouts": 0,
    }
    if not transactions:
        return result

    stored = store_if_changed(
        archive, wallet, build_trader_month_data(wallet, year_month, transactions, now)
    )
    result["changed"] = stored["changed"]
    result["new_payouts"] = stored["new_payouts"]
    if stored["changed"]:
        logger.info(
            "archive.trader_update.saved",
            wallet=wallet,
            path=stored["path"],
            previous_count=stored["previous_count"],
            payout_count=len(transactions),
        )
    return result
