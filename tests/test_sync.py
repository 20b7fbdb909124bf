"""
Tests for the realtime payout sync.

Covers per-firm sync, failure isolation, pruning, metrics and the trader
wallet sync.
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.db.unit_of_work import UnitOfWork
from app.explorer.clients.base import RawExplorerTx
from app.payouts.config import PayoutConfig
from app.payouts.metrics import SyncMetrics, SyncStatus
from app.payouts.sync import PayoutSyncService, fetch_address_history
from app.payouts.traders import TraderSyncService

from tests.fixtures.explorer import StaticClient

FIRM_WALLET = "0xaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaaa"
SECOND_WALLET = "0xdddddddddddddddddddddddddddddddddddddddd"
BROKEN_WALLET = "0xeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeeee"
TRADER_WALLET = "0xbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbbb"

CONFIG = PayoutConfig(address_delay=0, firm_delay=0, trader_delay=0)


def _usdc(tx_hash, sender, recipient, usd, hours_ago=1.0) -> RawExplorerTx:
    timestamp = datetime.now(timezone.utc) - timedelta(hours=hours_ago)
    return RawExplorerTx(
        hash=tx_hash,
        from_address=sender,
        to_address=recipient,
        value=str(int(usd * 10**6)),
        time_stamp=int(timestamp.timestamp()),
        token_symbol="USDC",
        token_decimal="6",
    )


async def _seed_firms(*firms):
    async with UnitOfWork() as uow:
        for firm_id, addresses in firms:
            await uow.firms.upsert_firm(
                {"id": firm_id, "name": firm_id, "addresses": addresses}
            )


@pytest.mark.asyncio
class TestFetchAddressHistory:
    """Tests for fetching the latest pages of several addresses."""

    async def test_collects_native_and_tokens(self):
        """Test both record kinds are fetched for every address."""
        client = StaticClient(
            {
                FIRM_WALLET: [_usdc("0x1", FIRM_WALLET, TRADER_WALLET, 50)],
                SECOND_WALLET: [_usdc("0x2", SECOND_WALLET, TRADER_WALLET, 60)],
            }
        )
        native, tokens = await fetch_address_history(client, [FIRM_WALLET, SECOND_WALLET], 0)

        assert native == []
        assert [tx.hash for tx in tokens] == ["0x1", "0x2"]
        assert sorted(client.calls) == sorted(
            [
                f"native:{FIRM_WALLET}",
                f"token:{FIRM_WALLET}",
                f"native:{SECOND_WALLET}",
                f"token:{SECOND_WALLET}",
            ]
        )


@pytest.mark.asyncio
class TestPayoutSyncService:
    """Tests for the firm sync service."""

    async def test_sync_firm_upserts_and_updates_last_payout(self):
        """Test payouts are stored and the newest becomes the last payout."""
        await _seed_firms(("fundednext", [FIRM_WALLET]))
        client = StaticClient(
            {
                FIRM_WALLET: [
                    _usdc("0xnew", FIRM_WALLET, TRADER_WALLET, 500, hours_ago=1),
                    _usdc("0xold", FIRM_WALLET, TRADER_WALLET, 800, hours_ago=3),
                    _usdc("0xspam", FIRM_WALLET, TRADER_WALLET, 2, hours_ago=2),
                    _usdc("0xstale", FIRM_WALLET, TRADER_WALLET, 900, hours_ago=48),
                ]
            }
        )
        service = PayoutSyncService(client=client, config=CONFIG, metrics=SyncMetrics())

        async with UnitOfWork() as uow:
            firm = await uow.firms.get_by_id("fundednext")
        result = await service.sync_firm_payouts(firm)

        assert result == {"firm_id": "fundednext", "new_payouts": 2, "error": None}
        async with UnitOfWork() as uow:
            assert await uow.payouts.count(firm_id="fundednext") == 2
            firm = await uow.firms.get_by_id("fundednext")
            assert firm.last_payout_tx_hash == "0xnew"
            assert firm.last_payout_amount == 500.0

    async def test_resync_is_idempotent(self):
        """Test syncing the same history twice keeps one row per hash."""
        await _seed_firms(("fundednext", [FIRM_WALLET]))
        client = StaticClient({FIRM_WALLET: [_usdc("0x1", FIRM_WALLET, TRADER_WALLET, 100)]})
        service = PayoutSyncService(client=client, config=CONFIG, metrics=SyncMetrics())

        await service.sync_all_firms()
        await service.sync_all_firms()

        async with UnitOfWork() as uow:
            assert await uow.payouts.count() == 1

    async def test_failing_firm_does_not_stop_run(self):
        """Test one firm's explorer failure is reported and others still sync."""
        await _seed_firms(("broken", [BROKEN_WALLET]), ("fundednext", [FIRM_WALLET]))
        client = StaticClient(
            {FIRM_WALLET: [_usdc("0x1", FIRM_WALLET, TRADER_WALLET, 100)]},
            failing=[BROKEN_WALLET],
        )
        metrics = SyncMetrics()
        service = PayoutSyncService(client=client, config=CONFIG, metrics=metrics)

        summary = await service.sync_all_firms()

        assert summary["firms"] == 2
        assert summary["total_payouts"] == 1
        assert summary["errors"] == [{"firm_id": "broken", "error": f"down for {BROKEN_WALLET}"}]

        run = metrics.get_last_run("firms")
        assert run.status == SyncStatus.PARTIAL
        assert run.targets_failed == 1
        assert run.payouts_upserted == 1

    async def test_run_prunes_stale_rows(self):
        """Test rows outside the realtime window are deleted after the run."""
        await _seed_firms(("fundednext", [FIRM_WALLET]))
        async with UnitOfWork() as uow:
            await uow.payouts.upsert_payouts(
                [
                    {
                        "tx_hash": "0xstale",
                        "firm_id": "fundednext",
                        "amount": 100.0,
                        "payment_method": "crypto",
                        "timestamp": datetime.now(timezone.utc) - timedelta(hours=30),
                    }
                ]
            )

        service = PayoutSyncService(client=StaticClient({}), config=CONFIG, metrics=SyncMetrics())
        summary = await service.sync_all_firms()

        assert summary["deleted"] == 1
        assert summary["total_payouts"] == 0

    async def test_no_firms_is_skipped(self):
        """Test a run without firms is recorded as skipped."""
        metrics = SyncMetrics()
        service = PayoutSyncService(client=StaticClient({}), config=CONFIG, metrics=metrics)

        summary = await service.sync_all_firms()

        assert summary["firms"] == 0
        assert metrics.get_last_run("firms").status == SyncStatus.SKIPPED


@pytest.mark.asyncio
class TestTraderSyncService:
    """Tests for the trader wallet sync."""

    async def test_sync_all_traders(self):
        """Test incoming payouts of linked wallets are stored."""
        async with UnitOfWork() as uow:
            await uow.traders.create(handle="alice", wallet_address=TRADER_WALLET)
            await uow.traders.create(handle="bob")

        client = StaticClient(
            {
                TRADER_WALLET: [
                    _usdc("0xin", FIRM_WALLET, TRADER_WALLET, 250),
                    _usdc("0xout", TRADER_WALLET, FIRM_WALLET, 250),
                ]
            }
        )
        metrics = SyncMetrics()
        service = TraderSyncService(client=client, config=CONFIG, metrics=metrics)

        summary = await service.sync_all_traders()

        assert summary["wallets"] == 1
        assert summary["total_payouts"] == 1
        assert summary["errors"] == []
        async with UnitOfWork() as uow:
            payout = await uow.trader_payouts.get_by_field("tx_hash", "0xin")
            assert payout.wallet_address == TRADER_WALLET
        assert metrics.get_last_run("traders").status == SyncStatus.SUCCESS

    async def test_wallet_failure_reported(self):
        """Test a failing wallet is reported with its address."""
        async with UnitOfWork() as uow:
            await uow.traders.create(handle="alice", wallet_address=BROKEN_WALLET)

        service = TraderSyncService(
            client=StaticClient({}, failing=[BROKEN_WALLET]),
            config=CONFIG,
            metrics=SyncMetrics(),
        )
        summary = await service.sync_all_traders()

        assert summary["errors"] == [
            {"wallet": BROKEN_WALLET, "error": f"down for {BROKEN_WALLET}"}
        ]

    async def test_cleanup_failure_recorded(self, monkeypatch):
        """Test a failed prune of the trader table lands in the run errors."""
        async with UnitOfWork() as uow:
            await uow.traders.create(handle="alice", wallet_address=TRADER_WALLET)

        metrics = SyncMetrics()
        service = TraderSyncService(client=StaticClient({}), config=CONFIG, metrics=metrics)

        async def broken_cleanup(hours_to_keep=None):
            return {"deleted": 0, "error": "database is locked"}

        monkeypatch.setattr(service, "cleanup_old_trader_payouts", broken_cleanup)

        await service.sync_all_traders()

        assert metrics.get_last_run("traders").errors == ["cleanup: database is locked"]


class TestSyncMetrics:
    """Tests for in-memory run metrics."""

    def test_status_and_aggregate(self):
        """Test run status derivation and aggregate counts."""
        metrics = SyncMetrics()

        metrics.start_run("firms", targets=2)
        metrics.record_target("firms", 3)
        metrics.record_target("firms", 0, "boom")
        metrics.end_run("firms")

        metrics.start_run("firms", targets=1)
        metrics.record_target("firms", 1)
        metrics.end_run("firms")

        metrics.start_run("traders", targets=1)
        metrics.record_target("traders", 0, "down")
        metrics.end_run("traders")

        firms = metrics.get_aggregate_metrics(kind="firms")
        assert firms.total_runs == 2
        assert firms.partial_runs == 1
        assert firms.successful_runs == 1
        assert firms.total_payouts == 4
        assert metrics.get_success_rate(kind="firms") == 0.5
        assert metrics.get_last_run("traders").status == SyncStatus.FAILED
        assert metrics.get_history(limit=1)[0].kind == "traders"

    def test_end_without_start(self):
        """Test ending an unknown run is a no-op."""
        assert SyncMetrics().end_run("firms") is None

    def test_history_is_bounded(self):
        """Test history keeps at most history_size runs."""
        metrics = SyncMetrics(history_size=2)
        for _ in range(3):
            metrics.start_run("firms")
            metrics.end_run("firms")
        assert len(metrics.get_history()) == 2
