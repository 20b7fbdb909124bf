"""
Firm payout sync service.

Fetches the latest page of explorer history for every firm wallet, keeps
the payouts of the realtime window and upserts them into
``recent_payouts``. Runs from the scheduler, the cron route and the CLI.
"""

import asyncio
import time
from typing import Any, Dict, List, Optional, Protocol, Sequence, Tuple

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.unit_of_work import UnitOfWork
from app.explorer.clients import BaseExplorerClient, RawExplorerTx, get_explorer_client
from app.payouts.config import PayoutConfig, get_payout_config
from app.payouts.metrics import SyncMetrics, SyncStatus, sync_metrics
from app.payouts.processor import process_payouts

logger = structlog.get_logger(__name__)


class FirmLike(Protocol):
    id: str
    name: str
    addresses: List[str]


async def fetch_address_history(
    client: BaseExplorerClient, addresses: Sequence[str], delay: float
) -> Tuple[List[RawExplorerTx], List[RawExplorerTx]]:
    """
    Latest native and token pages for each address.

    Both pages of one address are requested together; addresses are
    visited one after another with ``delay`` seconds between them.
    """
    native: List[RawExplorerTx] = []
    tokens: List[RawExplorerTx] = []

    for address in addresses:
        native_page, token_page = await asyncio.gather(
            client.fetch_native_transactions(address),
            client.fetch_token_transactions(address),
        )
        native.extend(native_page)
        tokens.extend(token_page)

        if len(addresses) > 1:
            await asyncio.sleep(delay)

    return native, tokens


class PayoutSyncService:
    """
    Realtime payout sync for all firms.

    Per-firm failures are captured in that firm's result; they never stop
    the run.
    """

    KIND = "firms"

    def __init__(
        self,
        client: Optional[BaseExplorerClient] = None,
        config: Optional[PayoutConfig] = None,
        session: Optional[AsyncSession] = None,
        metrics: Optional[SyncMetrics] = None,
    ):
        """
        Initialize the service.

        Args:
            client: Explorer client (built from settings on first use if None)
            config: Payout configuration
            session: Optional database session for testing
            metrics: Metrics tracker (defaults to the process-wide one)
        """
        self._client = client
        self.config = config or get_payout_config()
        self._session = session
        self.metrics = metrics or sync_metrics

    @property
    def client(self) -> BaseExplorerClient:
        # Raises ExplorerConfigError when the API key is missing
        if self._client is None:
            self._client = get_explorer_client()
        return self._client

    async def sync_firm_payouts(self, firm: FirmLike) -> Dict[str, Any]:
        """
        Sync the realtime window for one firm.

        Returns:
            ``{"firm_id", "new_payouts", "error"}``
        """
        result: Dict[str, Any] = {"firm_id": firm.id, "new_payouts": 0, "error": None}

        try:
            logger.info(
                "sync.firm.started",
                firm_id=firm.id,
                address_count=len(firm.addresses),
            )
            native, tokens = await fetch_address_history(
                self.client, firm.addresses, self.config.address_delay
            )
            payouts = process_payouts(
                native, tokens, firm.addresses, firm.id, config=self.config
            )
            logger.info(
                "sync.firm.processed",
                firm_id=firm.id,
                native_count=len(native),
                token_count=len(tokens),
                payout_count=len(payouts),
            )

            if not payouts:
                return result

            async with UnitOfWork(session=self._session) as uow:
                await uow.payouts.upsert_payouts(payouts)
                latest = max(payouts, key=lambda p: p["timestamp"])
                await uow.firms.update_last_payout(firm.id, latest)

            result["new_payouts"] = len(payouts)
            logger.info("sync.firm.completed", firm_id=firm.id, payout_count=len(payouts))

        except Exception as e:
            logger.error(
                "sync.firm.failed",
                firm_id=firm.id,
                error=str(e),
                error_type=type(e).__name__,
            )
            result["error"] = str(e)

        return result

    async def cleanup_old_payouts(self, hours_to_keep: Optional[int] = None) -> Dict[str, Any]:
        """Delete payouts older than the realtime window."""
        hours = hours_to_keep or self.config.realtime_window_hours
        try:
            async with UnitOfWork(session=self._session) as uow:
                deleted = await uow.payouts.delete_older_than(hours)
        except Exception as e:
            logger.error("sync.cleanup.failed", error=str(e))
            return {"deleted": 0, "error": str(e)}

        logger.info("sync.cleanup.completed", deleted=deleted, hours_to_keep=hours)
        return {"deleted": deleted, "error": None}

    async def sync_all_firms(self) -> Dict[str, Any]:
        """
        Sync every firm, then prune the realtime table.

        Returns:
            Summary ``{"run_id", "firms", "total_payouts", "deleted",
            "errors", "duration_ms"}``

        Raises:
            ExplorerConfigError: If the explorer client cannot be built
        """
        start = time.perf_counter()
        client = self.client

        async with UnitOfWork(session=self._session) as uow:
            firms = await uow.firms.list_firms()

        run_id = self.metrics.start_run(self.KIND, targets=len(firms))
        logger.info(
            "sync.run.started",
            run_id=run_id,
            firm_count=len(firms),
            source=client.get_source_name(),
        )

        results = []
        for firm in firms:
            result = await self.sync_firm_payouts(firm)
            self.metrics.record_target(self.KIND, result["new_payouts"], result["error"])
            results.append(result)
            await asyncio.sleep(self.config.firm_delay)

        cleanup = await self.cleanup_old_payouts()
        self.metrics.record_cleanup(self.KIND, cleanup["deleted"])
        if cleanup["error"]:
            self.metrics.record_error(self.KIND, f"cleanup: {cleanup['error']}")

        self.metrics.end_run(self.KIND, SyncStatus.SKIPPED if not firms else None)

        summary = {
            "run_id": run_id,
            "firms": len(firms),
            "total_payouts": sum(r["new_payouts"] for r in results),
            "deleted": cleanup["deleted"],
            "errors": [
                {"firm_id": r["firm_id"], "error": r["error"]} for r in results if r["error"]
            ],
            "duration_ms": int((time.perf_counter() - start) * 1000),
        }

        logger.info(
            "sync.run.completed",
            run_id=run_id,
            total_payouts=summary["total_payouts"],
            error_count=len(summary["errors"]),
            duration_ms=summary["duration_ms"],
        )
        if summary["errors"]:
            logger.warning("sync.run.errors", run_id=run_id, errors=summary["errors"])

        return summary


_service_instance: Optional[PayoutSyncService] = None


def get_sync_service() -> PayoutSyncService:
    """Get or create the process-wide firm sync service."""
    global _service_instance
    if _service_instance is None:
        _service_instance = PayoutSyncService()
    return _service_instance
