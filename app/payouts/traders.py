"""Trader wallet realtime sync: incoming payouts per linked wallet."""

import asyncio
import time
from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.unit_of_work import UnitOfWork
from app.explorer.clients import BaseExplorerClient, get_explorer_client
from app.payouts.config import PayoutConfig, get_payout_config
from app.payouts.metrics import SyncMetrics, SyncStatus, sync_metrics
from app.payouts.processor import process_trader_payouts
from app.payouts.sync import fetch_address_history

logger = structlog.get_logger(__name__)


class TraderSyncService:
    """Mirrors the firm sync for trader wallets (``trader_recent_payouts``)."""

    KIND = "traders"

    def __init__(
        self,
        client: Optional[BaseExplorerClient] = None,
        config: Optional[PayoutConfig] = None,
        session: Optional[AsyncSession] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        self._client = client
        self.config = config or get_payout_config()
        self._session = session
        self.metrics = metrics or sync_metrics

    @property
    def client(self) -> BaseExplorerClient:
        if self._client is None:
            self._client = get_explorer_client()
        return self._client

    async def sync_trader_wallet(self, wallet_address: str) -> Dict[str, Any]:
        """
        Sync the realtime window for one wallet.

        Returns:
            ``{"wallet_address", "new_payouts", "error"}``
        """
        wallet = wallet_address.lower()
        result: Dict[str, Any] = {"wallet_address": wallet, "new_payouts": 0, "error": None}

        try:
            native, tokens = await fetch_address_history(self.client, [wallet], 0)
            payouts = process_trader_payouts(native, tokens, wallet, config=self.config)
            if not payouts:
                return result

            async with UnitOfWork(session=self._session) as uow:
                await uow.trader_payouts.upsert_payouts(payouts)

            result["new_payouts"] = len(payouts)
            logger.info("sync.trader.completed", wallet=wallet, payout_count=len(payouts))

        except Exception as e:
            logger.error("sync.trader.failed", wallet=wallet, error=str(e))
            result["error"] = str(e)

        return result

    async def cleanup_old_trader_payouts(
        self, hours_to_keep: Optional[int] = None
    ) -> Dict[str, Any]:
        hours = hours_to_keep or self.config.realtime_window_hours
        try:
            async with UnitOfWork(session=self._session) as uow:
                deleted = await uow.trader_payouts.delete_older_than(hours)
        except Exception as e:
            logger.error("sync.trader_cleanup.failed", error=str(e))
            return {"deleted": 0, "error": str(e)}

        return {"deleted": deleted, "error": None}

    async def sync_all_traders(self) -> Dict[str, Any]:
        """
        Sync every profile with a linked wallet, then prune the table.

        Returns:
            Summary ``{"run_id", "wallets", "total_payouts", "deleted",
            "errors", "duration_ms"}``
        """
        start = time.perf_counter()
        client = self.client

        async with UnitOfWork(session=self._session) as uow:
            profiles = await uow.traders.get_with_wallet()
            wallets = [p.wallet_address for p in profiles if p.wallet_address]

        run_id = self.metrics.start_run(self.KIND, targets=len(wallets))
        logger.info(
            "sync.traders.started",
            run_id=run_id,
            wallet_count=len(wallets),
            source=client.get_source_name(),
        )

        results = []
        for wallet in wallets:
            result = await self.sync_trader_wallet(wallet)
            self.metrics.record_target(self.KIND, result["new_payouts"], result["error"])
            results.append(result)
            await asyncio.sleep(self.config.trader_delay)

        cleanup = await self.cleanup_old_trader_payouts()
        self.metrics.record_cleanup(self.KIND, cleanup["deleted"])
        if cleanup["error"]:
            self.metrics.record_error(self.KIND, f"cleanup: {cleanup['error']}")
        self.metrics.end_run(self.KIND, SyncStatus.SKIPPED if not wallets else None)

        summary = {
            "run_id": run_id,
            "wallets": len(wallets),
            "total_payouts": sum(r["new_payouts"] for r in results),
            "deleted": cleanup["deleted"],
            "errors": [
                {"wallet": r["wallet_address"], "error": r["error"]}
                for r in results
                if r["error"]
            ],
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }
        logger.info(
            "sync.traders.completed",
            run_id=run_id,
            total_payouts=summary["total_payouts"],
            error_count=len(summary["errors"]),
        )
        return summary


_service_instance: Optional[TraderSyncService] = None


def get_trader_sync_service() -> TraderSyncService:
    """Get or create the process-wide trader sync service."""
    global _service_instance
    if _service_instance is None:
        _service_instance = TraderSyncService()
    return _service_instance
