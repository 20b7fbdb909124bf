"""
Payout processor.

Turns raw explorer records into payout rows and display records, and
computes statistics and chart buckets over them. Everything here is pure:
callers pass ``now`` when they need deterministic output.
"""

from __future__ import annotations

import calendar
import re
from datetime import date, datetime, timedelta, timezone
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Any, Callable, Iterable, Mapping, Sequence
from zoneinfo import ZoneInfo

from app.explorer.clients.base import RawExplorerTx
from app.payouts.config import PayoutConfig
from app.payouts.models import (
    DailyBucket,
    DayTotal,
    EnrichedTransaction,
    FirmStats,
    MonthlyBucket,
    MonthTotal,
    PayoutSummary,
    TransactionStats,
)

MONTH_NAMES = [
    "Jan", "Feb", "Mar", "Apr", "May", "Jun",
    "Jul", "Aug", "Sep", "Oct", "Nov", "Dec",
]
TX_URL = "https://arbiscan.io/tx/{tx_hash}"
YEAR_MONTH_RE = re.compile(r"\d{4}-(0[1-9]|1[0-2])")

_DEFAULT_CONFIG = PayoutConfig()


# ---------------------------------------------------------------------------
# Conversions
# ---------------------------------------------------------------------------


def round_half_up(value: float | Decimal, ndigits: int = 0) -> float:
    """Round half away from zero (``round`` uses banker's rounding)."""
    quantum = Decimal(1).scaleb(-ndigits)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def round_usd(value: float | Decimal) -> int:
    return int(round_half_up(value))


def token_amount(value: str, decimals: int) -> Decimal:
    """Convert an integer base-unit string to a token amount."""
    try:
        raw = Decimal(value or "0")
    except InvalidOperation:
        return Decimal(0)
    return raw.scaleb(-decimals)


def convert_to_usd(
    amount: Decimal | float, token: str, config: PayoutConfig | None = None
) -> float:
    """USD value of a token amount; unknown tokens are worth nothing."""
    config = config or _DEFAULT_CONFIG
    price = config.prices.get(token.upper(), 0.0)
    return float(Decimal(str(amount)) * Decimal(str(price)))


def to_datetime(value: datetime | int | float | str) -> datetime:
    """Normalize a unix timestamp, ISO string or datetime to aware UTC."""
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def iso_timestamp(value: datetime | int) -> str:
    """ISO 8601 with millisecond precision and a ``Z`` suffix."""
    dt = to_datetime(value).astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def short_address(address: str) -> str:
    return f"{address[:6]}...{address[-4:]}" if address else ""


def _now(now: datetime | None) -> datetime:
    return now or datetime.now(timezone.utc)


# ---------------------------------------------------------------------------
# Filtering
# ---------------------------------------------------------------------------


def _token_value(
    tx: RawExplorerTx, native: bool, config: PayoutConfig
) -> tuple[str, Decimal] | None:
    """(token, amount) for a supported transfer, None otherwise."""
    if native:
        return "ETH", token_amount(tx.value, 18)

    symbol = (tx.token_symbol or "").upper()
    if symbol not in config.supported_tokens:
        return None

    try:
        decimals = int(tx.token_decimal or 0)
    except ValueError:
        decimals = 0
    return symbol, token_amount(tx.value, decimals or config.default_token_decimals)


def _select(
    native: Iterable[RawExplorerTx],
    tokens: Iterable[RawExplorerTx],
    matches: Callable[[RawExplorerTx], bool],
    cutoff: int | None,
    config: PayoutConfig,
) -> list[tuple[RawExplorerTx, str, Decimal, float]]:
    """Supported transfers passing ``matches`` and the cutoff, spam dropped."""
    selected = []
    for is_native, batch in ((True, native), (False, tokens)):
        for tx in batch:
            if not matches(tx):
                continue
            if cutoff is not None and tx.time_stamp < cutoff:
                continue
            value = _token_value(tx, is_native, config)
            if value is None:
                continue
            token, amount = value
            usd = convert_to_usd(amount, token, config)
            if usd < config.min_payout_usd:
                continue
            selected.append((tx, token, amount, usd))
    return selected


def _dedupe(rows: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    # Later rows replace earlier ones, first-seen order is kept
    unique: dict[str, dict[str, Any]] = {}
    for row in rows:
        unique[row["tx_hash"]] = row
    return list(unique.values())


def _sender_in(addresses: Iterable[str]) -> Callable[[RawExplorerTx], bool]:
    lowered = {a.lower() for a in addresses}
    return lambda tx: bool(tx.from_address) and tx.from_address.lower() in lowered


def _recipient_is(address: str) -> Callable[[RawExplorerTx], bool]:
    lowered = address.lower()
    return lambda tx: bool(tx.to_address) and tx.to_address.lower() == lowered


# ---------------------------------------------------------------------------
# Payout rows (database / archive)
# ---------------------------------------------------------------------------


def process_payouts(
    native: Sequence[RawExplorerTx],
    tokens: Sequence[RawExplorerTx],
    source_addresses: Sequence[str],
    firm_id: str,
    since: datetime | None = None,
    now: datetime | None = None,
    config: PayoutConfig | None = None,
) -> list[dict[str, Any]]:
    """
    Outgoing payouts from a firm's wallets, ready for ``recent_payouts``.

    Args:
        native: Native ETH transactions
        tokens: ERC-20 token transfers
        source_addresses: Firm wallet addresses (case-insensitive)
        firm_id: Firm identifier stamped on each row
        since: Oldest timestamp kept (default: realtime window before now)
        now: Reference time
        config: Payout configuration

    Returns:
        Payout rows, unique by tx_hash
    """
    config = config or _DEFAULT_CONFIG
    if since is None:
        since = _now(now) - timedelta(hours=config.realtime_window_hours)

    selected = _select(
        native, tokens, _sender_in(source_addresses), int(since.timestamp()), config
    )
    return _dedupe(
        {
            "tx_hash": tx.hash,
            "firm_id": firm_id,
            "amount": usd,
            "payment_method": config.method_for(token),
            "timestamp": to_datetime(tx.time_stamp),
            "from_address": tx.from_address,
            "to_address": tx.to_address,
        }
        for tx, token, _, usd in selected
    )


def process_trader_payouts(
    native: Sequence[RawExplorerTx],
    tokens: Sequence[RawExplorerTx],
    wallet_address: str,
    since: datetime | None = None,
    now: datetime | None = None,
    config: PayoutConfig | None = None,
) -> list[dict[str, Any]]:
    """Incoming payouts to a trader wallet, ready for ``trader_recent_payouts``."""
    config = config or _DEFAULT_CONFIG
    if since is None:
        since = _now(now) - timedelta(hours=config.realtime_window_hours)

    wallet = wallet_address.lower()
    selected = _select(
        native, tokens, _recipient_is(wallet), int(since.timestamp()), config
    )
    return _dedupe(
        {
            "tx_hash": tx.hash,
            "wallet_address": wallet,
            "amount": usd,
            "payment_method": config.method_for(token),
            "timestamp": to_datetime(tx.time_stamp),
            "from_address": tx.from_address,
            "to_address": tx.to_address,
        }
        for tx, token, _, usd in selected
    )


# ---------------------------------------------------------------------------
# Display records (live explorer views)
# ---------------------------------------------------------------------------


def _enrich(
    selected: Iterable[tuple[RawExplorerTx, str, Decimal, float]], config: PayoutConfig
) -> list[EnrichedTransaction]:
    records = [
        EnrichedTransaction(
            tx_hash=tx.hash,
            timestamp=tx.time_stamp,
            from_address=tx.from_address,
            to_address=tx.to_address,
            amount=float(amount),
            token=token,
            amount_usd=usd,
            date=iso_timestamp(tx.time_stamp),
            from_short=short_address(tx.from_address),
            to_short=short_address(tx.to_address),
            arbiscan_url=TX_URL.format(tx_hash=tx.hash),
            payment_method=config.method_for(token),
        )
        for tx, token, amount, usd in selected
    ]
    records.sort(key=lambda r: r.timestamp, reverse=True)
    return records[: config.view_limit]


def process_outgoing_transactions(
    native: Sequence[RawExplorerTx],
    tokens: Sequence[RawExplorerTx],
    source_addresses: Sequence[str],
    days: int = 7,
    now: datetime | None = None,
    config: PayoutConfig | None = None,
) -> list[EnrichedTransaction]:
    """Outgoing transfers from firm wallets in the last ``days``, newest first."""
    config = config or _DEFAULT_CONFIG
    cutoff = int((_now(now) - timedelta(days=days)).timestamp())
    selected = _select(native, tokens, _sender_in(source_addresses), cutoff, config)
    return _enrich(selected, config)


def process_incoming_transactions(
    native: Sequence[RawExplorerTx],
    tokens: Sequence[RawExplorerTx],
    target_address: str,
    config: PayoutConfig | None = None,
) -> list[EnrichedTransaction]:
    """Incoming transfers to a wallet, newest first."""
    config = config or _DEFAULT_CONFIG
    selected = _select(native, tokens, _recipient_is(target_address), None, config)
    return _enrich(selected, config)


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------


def calculate_stats(
    transactions: Sequence[EnrichedTransaction], now: datetime | None = None
) -> TransactionStats:
    """Totals, last-30-day totals and average over display records."""
    cutoff = (_now(now) - timedelta(days=30)).timestamp()
    total = sum(tx.amount_usd for tx in transactions)
    recent = [tx for tx in transactions if tx.timestamp >= cutoff]
    recent_total = sum(tx.amount_usd for tx in recent)

    return TransactionStats(
        total_transactions=len(transactions),
        total_payout_usd=round_half_up(total, 2),
        last_30_days_payout_usd=round_half_up(recent_total, 2),
        last_30_days_count=len(recent),
        avg_payout_usd=round_half_up(total / len(transactions), 2) if transactions else 0.0,
    )


def calculate_time_since(
    timestamp: datetime | int | float | str, now: datetime | None = None
) -> str:
    """Human readable age: '4hr 8min', or '2d 3hr' past 24 hours."""
    diff = (_now(now) - to_datetime(timestamp)).total_seconds()
    hours = int(diff // 3600)
    minutes = int((diff % 3600) // 60)

    if hours > 24:
        return f"{hours // 24}d {hours % 24}hr"
    return f"{hours}hr {minutes}min"


def calculate_firm_stats(
    transactions: Sequence[EnrichedTransaction], now: datetime | None = None
) -> FirmStats:
    """Totals and time since the newest payout; 'N/A' when there is none."""
    if not transactions:
        return FirmStats()

    amounts = [tx.amount_usd for tx in transactions]
    latest = max(tx.timestamp for tx in transactions)
    return FirmStats(
        total_payout_usd=round_half_up(sum(amounts), 2),
        total_payout_count=len(transactions),
        largest_payout_usd=round_half_up(max(amounts), 2),
        time_since_last_payout=calculate_time_since(latest, now),
    )


def summarize_payouts(payouts: Sequence[Mapping[str, Any]]) -> PayoutSummary:
    """Rounded total, count, largest and average of payout rows."""
    amounts = [float(p["amount"]) for p in payouts]
    if not amounts:
        return PayoutSummary()

    total = sum(amounts)
    return PayoutSummary(
        total_payouts=round_usd(total),
        payout_count=len(amounts),
        largest_payout=round_usd(max(amounts)),
        avg_payout=round_usd(total / len(amounts)),
    )


# ---------------------------------------------------------------------------
# Chart buckets
# ---------------------------------------------------------------------------


def group_by_day(
    transactions: Sequence[EnrichedTransaction],
    days: int = 7,
    now: datetime | None = None,
) -> list[DayTotal]:
    """UTC daily totals for the last ``days`` days, oldest first."""
    today = _now(now).astimezone(timezone.utc).date()
    totals: dict[date, dict[str, float]] = {}
    for tx in transactions:
        day = to_datetime(tx.timestamp).date()
        bucket = totals.setdefault(day, {"total": 0.0, "crypto": 0.0, "rise": 0.0})
        bucket["total"] += tx.amount_usd
        bucket[tx.payment_method if tx.payment_method == "rise" else "crypto"] += tx.amount_usd

    series = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        bucket = totals.get(day, {"total": 0.0, "crypto": 0.0, "rise": 0.0})
        series.append(
            DayTotal(
                date=day.isoformat(),
                total_usd=round_usd(bucket["total"]),
                crypto=round_usd(bucket["crypto"]),
                rise=round_usd(bucket["rise"]),
                wire_transfer=0,
            )
        )
    return series


def _shift_month(year: int, month: int, delta: int) -> tuple[int, int]:
    index = year * 12 + (month - 1) + delta
    return index // 12, index % 12 + 1


def group_by_month(transactions: Sequence[EnrichedTransaction]) -> list[MonthTotal]:
    """
    Six monthly totals ending at the month of the newest transaction.

    Anchoring on the data instead of the clock keeps the chart populated
    when the newest payout is old.
    """
    if not transactions:
        return []

    reference = to_datetime(max(tx.timestamp for tx in transactions))
    totals: dict[tuple[int, int], float] = {}
    for tx in transactions:
        dt = to_datetime(tx.timestamp)
        totals[(dt.year, dt.month)] = totals.get((dt.year, dt.month), 0.0) + tx.amount_usd

    series = []
    for delta in range(-5, 1):
        year, month = _shift_month(reference.year, reference.month, delta)
        series.append(
            MonthTotal(
                month=MONTH_NAMES[month - 1],
                amount=round_usd(totals.get((year, month), 0.0)),
            )
        )
    return series


def local_date(value: datetime | int | str, tz: str = "UTC") -> date:
    """Calendar date of a timestamp in an IANA timezone."""
    return to_datetime(value).astimezone(ZoneInfo(tz)).date()


def local_year_month(value: datetime | int | str, tz: str = "UTC") -> str:
    return local_date(value, tz).strftime("%Y-%m")


def _method_key(method: str) -> str:
    return method if method in ("rise", "crypto", "wire") else "crypto"


def build_daily_buckets(
    payouts: Sequence[Mapping[str, Any]],
    tz: str = "UTC",
    days: int | None = None,
    now: datetime | None = None,
) -> list[DailyBucket]:
    """
    Per-day payout totals in ``tz``, split by payment method, oldest first.

    Without ``days`` only days that have payouts are returned. With it the
    series covers exactly the last ``days`` local days, zero-filled.
    """
    sums: dict[str, dict[str, float]] = {}
    for payout in payouts:
        day = local_date(payout["timestamp"], tz).isoformat()
        bucket = sums.setdefault(day, {"total": 0.0, "rise": 0.0, "crypto": 0.0, "wire": 0.0})
        amount = float(payout["amount"])
        bucket["total"] += amount
        bucket[_method_key(payout.get("payment_method") or "crypto")] += amount

    if days is None:
        keys = sorted(sums)
    else:
        today = local_date(_now(now), tz)
        keys = [(today - timedelta(days=offset)).isoformat() for offset in range(days - 1, -1, -1)]

    empty = {"total": 0.0, "rise": 0.0, "crypto": 0.0, "wire": 0.0}
    return [
        DailyBucket(
            date=key,
            **{name: round_usd(value) for name, value in sums.get(key, empty).items()},
        )
        for key in keys
    ]


def build_monthly_buckets(
    payouts: Sequence[Mapping[str, Any]],
    months: int = 12,
    tz: str = "UTC",
    now: datetime | None = None,
) -> list[MonthlyBucket]:
    """Monthly totals for the last ``months`` months in ``tz``, oldest first."""
    sums: dict[str, dict[str, float]] = {}
    for payout in payouts:
        key = local_year_month(payout["timestamp"], tz)
        bucket = sums.setdefault(key, {"total": 0.0, "rise": 0.0, "crypto": 0.0, "wire": 0.0})
        amount = float(payout["amount"])
        bucket["total"] += amount
        bucket[_method_key(payout.get("payment_method") or "crypto")] += amount

    current = local_date(_now(now), tz)
    buckets = []
    for delta in range(-(months - 1), 1):
        year, month = _shift_month(current.year, current.month, delta)
        key = f"{year:04d}-{month:02d}"
        values = sums.get(key, {"total": 0.0, "rise": 0.0, "crypto": 0.0, "wire": 0.0})
        buckets.append(
            MonthlyBucket(
                month=f"{MONTH_NAMES[month - 1]} {year}",
                **{name: round_usd(value) for name, value in values.items()},
            )
        )
    return buckets


def is_year_month(value: str) -> bool:
    return YEAR_MONTH_RE.fullmatch(value) is not None


def month_bounds_utc(year_month: str) -> tuple[datetime, datetime]:
    """First and last instant of a calendar month in UTC."""
    year, month = (int(part) for part in year_month.split("-"))
    last_day = calendar.monthrange(year, month)[1]
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    end = datetime(year, month, last_day, 23, 59, 59, 999000, tzinfo=timezone.utc)
    return start, end
