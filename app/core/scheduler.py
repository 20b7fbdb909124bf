"""
Background sync scheduler.

Runs the realtime sync cycle on a fixed interval:
1. Sync firm payouts (and clean the realtime window)
2. Sync trader wallet payouts

A failing step is recorded in the cycle stats and the loop keeps going.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog

from app.core.config import get_settings
from app.payouts.sync import get_sync_service
from app.payouts.traders import get_trader_sync_service

logger = structlog.get_logger("scheduler")

SyncStep = Callable[[], Awaitable[Dict[str, Any]]]


async def _sync_firms() -> Dict[str, Any]:
    return await get_sync_service().sync_all_firms()


async def _sync_traders() -> Dict[str, Any]:
    return await get_trader_sync_service().sync_all_traders()


class SyncScheduler:
    """
    Periodic runner for the firm and trader sync jobs.

    Only one loop runs per process; ``start`` on a running scheduler is a
    no-op that reports the current state.
    """

    def __init__(
        self,
        interval_seconds: int = 600,
        sync_firms: SyncStep = _sync_firms,
        sync_traders: SyncStep = _sync_traders,
    ):
        """
        Initialize the scheduler.

        Args:
            interval_seconds: Time between cycles (default: 10 minutes)
            sync_firms: Coroutine running the firm sync
            sync_traders: Coroutine running the trader sync
        """
        self.interval_seconds = interval_seconds
        self._sync_firms = sync_firms
        self._sync_traders = sync_traders
        self._running = False
        self._task: Optional[asyncio.Task] = None
        self._last_run: Optional[datetime] = None
        self._last_error: Optional[str] = None
        self._last_stats: Optional[Dict[str, Any]] = None

        self.total_cycles = 0
        self.successful_cycles = 0
        self.failed_cycles = 0

    @property
    def running(self) -> bool:
        return self._running

    async def start(self, interval_seconds: Optional[int] = None) -> dict:
        """Start the loop; the first cycle runs immediately."""
        if self._running:
            logger.warning("scheduler.already_running")
            return {
                "success": False,
                "message": "Scheduler is already running",
                "running": True,
            }

        if interval_seconds is not None:
            self.interval_seconds = interval_seconds

        self._running = True
        self._task = asyncio.create_task(self._loop())
        logger.info("scheduler.started", interval_seconds=self.interval_seconds)

        return {
            "success": True,
            "message": f"Scheduler started (interval: {self.interval_seconds}s)",
            "running": True,
            "interval_seconds": self.interval_seconds,
        }

    async def stop(self) -> dict:
        """Cancel the loop and wait for it to finish."""
        if not self._running:
            return {
                "success": False,
                "message": "Scheduler is not running",
                "running": False,
            }

        logger.info("scheduler.stopping")
        self._running = False

        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        logger.info("scheduler.stopped")
        return {
            "success": True,
            "message": "Scheduler stopped",
            "running": False,
            "total_cycles": self.total_cycles,
            "successful_cycles": self.successful_cycles,
            "failed_cycles": self.failed_cycles,
        }

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.run_cycle()
                await asyncio.sleep(self.interval_seconds)
            except asyncio.CancelledError:
                logger.info("scheduler.loop_cancelled")
                break
            except Exception as exc:
                logger.exception("scheduler.loop_error", error=str(exc))
                self._last_error = str(exc)
                await asyncio.sleep(self.interval_seconds)

    async def run_cycle(self) -> Dict[str, Any]:
        """
        Run one sync cycle.

        Returns:
            Cycle stats with one entry per step; a step that raised carries
            ``{"error": ...}`` and marks the cycle as failed.
        """
        started = datetime.now(timezone.utc)
        self.total_cycles += 1
        logger.info("scheduler.cycle_start", cycle=self.total_cycles)

        stats: Dict[str, Any] = {
            "cycle": self.total_cycles,
            "started_at": started.isoformat(),
        }
        failed = False

        for name, step in (("firms", self._sync_firms), ("traders", self._sync_traders)):
            try:
                stats[name] = await step()
            except Exception as exc:
                logger.error("scheduler.step_error", step=name, error=str(exc))
                stats[name] = {"error": str(exc)}
                self._last_error = str(exc)
                failed = True

        finished = datetime.now(timezone.utc)
        stats["completed_at"] = finished.isoformat()
        stats["duration_seconds"] = (finished - started).total_seconds()
        stats["success"] = not failed

        if failed:
            self.failed_cycles += 1
        else:
            self.successful_cycles += 1
        self._last_run = finished
        self._last_stats = stats

        logger.info(
            "scheduler.cycle_complete",
            cycle=self.total_cycles,
            success=not failed,
            duration_seconds=stats["duration_seconds"],
        )
        return stats

    def get_status(self) -> dict:
        return {
            "running": self._running,
            "interval_seconds": self.interval_seconds,
            "cycles_completed": self.total_cycles,
            "successful_cycles": self.successful_cycles,
            "failed_cycles": self.failed_cycles,
            "last_run": self._last_run.isoformat() if self._last_run else None,
            "last_error": self._last_error,
            "last_cycle": self._last_stats,
        }


_scheduler: Optional[SyncScheduler] = None


def get_scheduler() -> SyncScheduler:
    """Get the global scheduler instance."""
    global _scheduler
    if _scheduler is None:
        settings = get_settings()
        _scheduler = SyncScheduler(interval_seconds=settings.SYNC_INTERVAL_MINUTES * 60)
    return _scheduler


def set_scheduler(scheduler: Optional[SyncScheduler]) -> None:
    """Replace the global scheduler instance."""
    global _scheduler
    _scheduler = scheduler
