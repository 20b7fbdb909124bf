"""
Tests for the payout processor.

Covers unit conversion and rounding, filtering of explorer records into
payout rows and display records, statistics and chart buckets.
"""

from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from app.explorer.clients.base import RawExplorerTx
from app.payouts.config import PayoutConfig
from app.payouts.processor import (
    calculate_firm_stats,
    calculate_stats,
    calculate_time_since,
    convert_to_usd,
    build_daily_buckets,
    build_monthly_buckets,
    group_by_day,
    group_by_month,
    iso_timestamp,
    month_bounds_utc,
    process_incoming_transactions,
    process_outgoing_transactions,
    process_payouts,
    process_trader_payouts,
    round_half_up,
    round_usd,
    short_address,
    summarize_payouts,
    to_datetime,
    token_amount,
)

NOW = datetime(2025, 6, 15, 12, 0, tzinfo=timezone.utc)
FIRM_WALLET = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
TRADER_WALLET = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"
OTHER_WALLET = "0xcccccccccccccccccccccccccccccccccccccccc"


def _ts(delta: timedelta) -> int:
    return int((NOW - delta).timestamp())


def native(tx_hash, eth, delta=timedelta(hours=1), sender=FIRM_WALLET, recipient=TRADER_WALLET):
    return RawExplorerTx(
        hash=tx_hash,
        from_address=sender,
        to_address=recipient,
        value=str(int(Decimal(str(eth)) * 10**18)),
        time_stamp=_ts(delta),
    )


def token(
    tx_hash,
    symbol,
    amount,
    decimals=6,
    delta=timedelta(hours=1),
    sender=FIRM_WALLET,
    recipient=TRADER_WALLET,
):
    return RawExplorerTx(
        hash=tx_hash,
        from_address=sender,
        to_address=recipient,
        value=str(int(Decimal(str(amount)) * 10**decimals)),
        time_stamp=_ts(delta),
        token_symbol=symbol,
        token_decimal=str(decimals) if decimals is not None else None,
    )


class TestConversions:
    """Tests for amount conversion and rounding helpers."""

    def test_token_amount(self):
        """Test base-unit strings are scaled by decimals."""
        assert token_amount("1500000", 6) == Decimal("1.5")
        assert token_amount("", 6) == Decimal(0)
        assert token_amount("not-a-number", 6) == Decimal(0)

    def test_convert_to_usd(self):
        """Test static prices are applied and unknown tokens are worthless."""
        assert convert_to_usd(Decimal("0.5"), "ETH") == 1250.0
        assert convert_to_usd(Decimal("42"), "usdc") == 42.0
        assert convert_to_usd(Decimal("42"), "DAI") == 0.0

    def test_round_half_up(self):
        """Test half values round away from zero."""
        assert round_half_up(2.5) == 3.0
        assert round_half_up(1.005, 2) == 1.01
        assert round_usd(1234.5) == 1235
        assert round_usd(Decimal("0.49")) == 0

    def test_to_datetime(self):
        """Test unix, ISO and naive inputs normalize to aware UTC."""
        expected = datetime(2023, 11, 14, 22, 13, 20, tzinfo=timezone.utc)
        assert to_datetime(1700000000) == expected
        assert to_datetime("2023-11-14T22:13:20Z") == expected
        assert to_datetime(datetime(2023, 11, 14, 22, 13, 20)) == expected

    def test_iso_timestamp(self):
        """Test millisecond ISO output with a Z suffix."""
        assert iso_timestamp(1700000000) == "2023-11-14T22:13:20.000Z"

    def test_short_address(self):
        """Test address shortening."""
        assert short_address(FIRM_WALLET) == "0xaaaa...aaaa"
        assert short_address("") == ""


class TestProcessPayouts:
    """Tests for firm payout rows."""

    def test_supported_transfers_become_payouts(self):
        """Test native, stablecoin and Rise transfers are converted."""
        rows = process_payouts(
            [native("0x1", 1)],
            [token("0x2", "USDC", 500), token("0x3", "RISEPAY", 100, decimals=18)],
            [FIRM_WALLET],
            "fundednext",
            now=NOW,
        )
        by_hash = {row["tx_hash"]: row for row in rows}

        assert by_hash["0x1"]["amount"] == 2500.0
        assert by_hash["0x1"]["payment_method"] == "crypto"
        assert by_hash["0x2"]["amount"] == 500.0
        assert by_hash["0x3"]["payment_method"] == "rise"
        assert all(row["firm_id"] == "fundednext" for row in rows)
        assert by_hash["0x2"]["timestamp"] == to_datetime(_ts(timedelta(hours=1)))

    def test_filters(self):
        """Test spam, unsupported tokens, incoming and stale transfers are dropped."""
        rows = process_payouts(
            [native("0xold", 1, delta=timedelta(hours=30))],
            [
                token("0xspam", "USDC", 5),
                token("0xdai", "DAI", 1000),
                token("0xin", "USDT", 1000, sender=OTHER_WALLET, recipient=FIRM_WALLET),
                token("0xok", "USDT", 1000),
            ],
            [FIRM_WALLET],
            "fundednext",
            now=NOW,
        )
        assert [row["tx_hash"] for row in rows] == ["0xok"]

    def test_min_payout_is_inclusive(self):
        """Test a payout of exactly the spam threshold is kept."""
        rows = process_payouts(
            [], [token("0xten", "USDC", 10)], [FIRM_WALLET], "f", now=NOW
        )
        assert len(rows) == 1

    def test_sender_match_is_case_insensitive(self):
        """Test firm wallets match regardless of checksum casing."""
        rows = process_payouts(
            [],
            [token("0x1", "USDC", 50, sender=FIRM_WALLET.upper().replace("0X", "0x"))],
            [FIRM_WALLET],
            "f",
            now=NOW,
        )
        assert len(rows) == 1

    def test_duplicate_hashes_collapse(self):
        """Test a hash seen twice yields one row."""
        rows = process_payouts(
            [],
            [token("0xdup", "USDC", 50), token("0xdup", "USDC", 50)],
            [FIRM_WALLET],
            "f",
            now=NOW,
        )
        assert len(rows) == 1

    def test_missing_decimals_use_default(self):
        """Test token transfers without tokenDecimal use 18 decimals."""
        tx = token("0x1", "USDC", 50, decimals=18)
        tx.token_decimal = None
        rows = process_payouts([], [tx], [FIRM_WALLET], "f", now=NOW)
        assert rows[0]["amount"] == 50.0

    def test_explicit_since(self):
        """Test an explicit lower bound overrides the realtime window."""
        rows = process_payouts(
            [native("0xold", 1, delta=timedelta(days=20))],
            [],
            [FIRM_WALLET],
            "f",
            since=NOW - timedelta(days=30),
            now=NOW,
        )
        assert len(rows) == 1


class TestProcessTraderPayouts:
    """Tests for trader payout rows."""

    def test_incoming_only(self):
        """Test only transfers received by the wallet are kept."""
        rows = process_trader_payouts(
            [native("0xout", 1, sender=TRADER_WALLET, recipient=OTHER_WALLET)],
            [token("0xin", "USDC", 250)],
            TRADER_WALLET.upper().replace("0X", "0x"),
            now=NOW,
        )
        assert [row["tx_hash"] for row in rows] == ["0xin"]
        assert rows[0]["wallet_address"] == TRADER_WALLET
        assert rows[0]["amount"] == 250.0


class TestDisplayRecords:
    """Tests for enriched records used by the live explorer views."""

    def test_outgoing_window_and_order(self):
        """Test the day window and newest-first order."""
        records = process_outgoing_transactions(
            [native("0xa", 0.1, delta=timedelta(days=2))],
            [
                token("0xb", "USDC", 300, delta=timedelta(hours=2)),
                token("0xc", "USDC", 300, delta=timedelta(days=8)),
            ],
            [FIRM_WALLET],
            days=7,
            now=NOW,
        )
        assert [r.tx_hash for r in records] == ["0xb", "0xa"]
        first = records[0]
        assert first.amount_usd == 300.0
        assert first.token == "USDC"
        assert first.arbiscan_url == "https://arbiscan.io/tx/0xb"
        assert first.from_short == "0xaaaa...aaaa"
        assert first.date.endswith("Z")

    def test_view_limit(self):
        """Test display lists are capped by view_limit."""
        config = PayoutConfig(view_limit=2)
        records = process_incoming_transactions(
            [],
            [token(f"0x{i}", "USDC", 100, delta=timedelta(days=i)) for i in range(5)],
            TRADER_WALLET,
            config=config,
        )
        assert [r.tx_hash for r in records] == ["0x0", "0x1"]

    def test_incoming_has_no_cutoff(self):
        """Test incoming history is not limited by age."""
        records = process_incoming_transactions(
            [native("0xa", 1, delta=timedelta(days=400))], [], TRADER_WALLET
        )
        assert len(records) == 1

    def test_camel_case_serialization(self):
        """Test display records serialize with wire field names."""
        record = process_incoming_transactions([], [token("0xa", "USDC", 100)], TRADER_WALLET)[0]
        payload = record.model_dump(by_alias=True)
        assert payload["amountUSD"] == 100.0
        assert payload["txHash"] == "0xa"
        assert payload["arbiscanUrl"] == "https://arbiscan.io/tx/0xa"


class TestStatistics:
    """Tests for statistics over payouts and display records."""

    def _records(self):
        return process_incoming_transactions(
            [],
            [
                token("0xa", "USDC", 100, delta=timedelta(days=1)),
                token("0xb", "USDC", 300, delta=timedelta(days=40)),
            ],
            TRADER_WALLET,
        )

    def test_calculate_stats(self):
        """Test totals, last 30 days and average."""
        stats = calculate_stats(self._records(), now=NOW)
        assert stats.total_transactions == 2
        assert stats.total_payout_usd == 400.0
        assert stats.last_30_days_payout_usd == 100.0
        assert stats.last_30_days_count == 1
        assert stats.avg_payout_usd == 200.0

    def test_calculate_stats_empty(self):
        """Test empty input yields zeros."""
        stats = calculate_stats([], now=NOW)
        assert stats.total_transactions == 0
        assert stats.avg_payout_usd == 0.0

    @pytest.mark.parametrize(
        "delta,expected",
        [
            (timedelta(hours=4, minutes=8), "4hr 8min"),
            (timedelta(hours=24), "24hr 0min"),
            (timedelta(hours=51), "2d 3hr"),
        ],
    )
    def test_calculate_time_since(self, delta, expected):
        """Test human readable ages."""
        assert calculate_time_since(NOW - delta, now=NOW) == expected

    def test_firm_stats(self):
        """Test firm totals and time since the newest payout."""
        stats = calculate_firm_stats(self._records(), now=NOW)
        assert stats.total_payout_count == 2
        assert stats.largest_payout_usd == 300.0
        assert stats.time_since_last_payout == "24hr 0min"

    def test_firm_stats_empty(self):
        """Test no payouts yields N/A."""
        stats = calculate_firm_stats([], now=NOW)
        assert stats.total_payout_count == 0
        assert stats.time_since_last_payout == "N/A"

    def test_summarize_payouts(self):
        """Test rounded summary of payout rows."""
        summary = summarize_payouts([{"amount": 100.25}, {"amount": 200.75}])
        assert summary.total_payouts == 301
        assert summary.payout_count == 2
        assert summary.largest_payout == 201
        assert summary.avg_payout == 151

    def test_summarize_empty(self):
        """Test empty summary is all zeros."""
        assert summarize_payouts([]).model_dump() == {
            "total_payouts": 0,
            "payout_count": 0,
            "largest_payout": 0,
            "avg_payout": 0,
        }


class TestChartSeries:
    """Tests for day and month series."""

    def test_group_by_day(self):
        """Test UTC day totals, zero-filled and oldest first."""
        records = process_incoming_transactions(
            [],
            [
                token("0xa", "RISEPAY", 100, decimals=18, delta=timedelta(hours=1)),
                token("0xb", "USDC", 50, delta=timedelta(days=1)),
            ],
            TRADER_WALLET,
        )
        series = group_by_day(records, days=3, now=NOW)

        assert [d.date for d in series] == ["2025-06-13", "2025-06-14", "2025-06-15"]
        assert series[0].total_usd == 0
        assert series[1].crypto == 50
        assert series[2].rise == 100
        assert series[2].wire_transfer == 0

    def test_group_by_month_anchors_on_newest(self):
        """Test six months ending at the newest transaction's month."""
        records = process_incoming_transactions(
            [], [token("0xa", "USDC", 100, delta=timedelta(days=90))], TRADER_WALLET
        )
        series = group_by_month(records)
        assert [m.month for m in series] == ["Oct", "Nov", "Dec", "Jan", "Feb", "Mar"]
        assert series[-1].amount == 100

    def test_group_by_month_empty(self):
        """Test no transactions yields no series."""
        assert group_by_month([]) == []

    def test_daily_buckets_use_local_day(self):
        """Test payouts are bucketed by the firm's local calendar day."""
        payouts = [
            {
                "amount": 120.4,
                "payment_method": "crypto",
                "timestamp": datetime(2025, 6, 15, 2, 0, tzinfo=timezone.utc),
            },
            {
                "amount": 80,
                "payment_method": "rise",
                "timestamp": datetime(2025, 6, 15, 5, 0, tzinfo=timezone.utc),
            },
        ]
        buckets = build_daily_buckets(payouts, "America/New_York")

        assert [b.date for b in buckets] == ["2025-06-14", "2025-06-15"]
        assert buckets[0].crypto == 120
        assert buckets[1].rise == 80

    def test_daily_buckets_zero_filled(self):
        """Test a fixed day count yields a contiguous series."""
        buckets = build_daily_buckets([], "UTC", days=30, now=NOW)
        assert len(buckets) == 30
        assert buckets[-1].date == "2025-06-15"
        assert all(b.total == 0 for b in buckets)

    def test_monthly_buckets(self):
        """Test month labels across a year boundary."""
        now = datetime(2025, 1, 10, tzinfo=timezone.utc)
        payouts = [{"amount": 99.5, "payment_method": "wire", "timestamp": now - timedelta(days=20)}]
        buckets = build_monthly_buckets(payouts, months=2, now=now)

        assert [b.month for b in buckets] == ["Dec 2024", "Jan 2025"]
        assert buckets[0].total == 100
        assert buckets[0].wire == 100
        assert buckets[1].total == 0

    def test_month_bounds_utc(self):
        """Test month bounds include leap days."""
        start, end = month_bounds_utc("2024-02")
        assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert end.day == 29
        assert end.hour == 23
