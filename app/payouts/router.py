"""
Cron and admin routes for the payout pipeline.

Cron routes trigger the realtime syncs (protected by the cron secret in
production). Admin routes expose explorer usage, sync status, scheduler
control, archive validation and a manual incident run.
"""

import time
from datetime import date, datetime, timezone
from typing import Any, Dict, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.api.security import require_admin, require_cron_secret
from app.core.scheduler import get_scheduler
from app.explorer.clients import ExplorerConfigError
from app.explorer.clients.arbiscan import circuit_breaker, usage_tracker
from app.intelligence.incidents import run_weekly_incidents
from app.payouts.metrics import sync_metrics
from app.payouts.processor import is_year_month
from app.payouts.sync import get_sync_service
from app.payouts.traders import get_trader_sync_service
from app.payouts.validation import validate_month_data

logger = structlog.get_logger(__name__)

cron_router = APIRouter(
    prefix="/api/cron", tags=["cron"], dependencies=[Depends(require_cron_secret)]
)
admin_router = APIRouter(
    prefix="/api/admin", tags=["admin"], dependencies=[Depends(require_admin)]
)


class UsageResponse(BaseModel):
    calls: int
    limit: int
    percentage: int
    day: str


class IncidentRunRequest(BaseModel):
    week_start: Optional[date] = Field(
        default=None, description="Any day of the week to process; last complete week if omitted"
    )
    firm_ids: Optional[list[str]] = None


async def _run_cron(job: str, runner) -> JSONResponse:
    started = time.perf_counter()
    logger.info("cron.started", job=job)
    try:
        result = await runner()
    except ExplorerConfigError:
        raise
    except Exception as e:
        logger.error("cron.failed", job=job, error=str(e), exc_info=True)
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={
                "success": False,
                "error": str(e),
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "duration": int((time.perf_counter() - started) * 1000),
            },
        )

    body: Dict[str, Any] = {
        "success": True,
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "duration": int((time.perf_counter() - started) * 1000),
        **result,
    }
    logger.info("cron.completed", job=job, duration=body["duration"])
    return JSONResponse(content=body)


@cron_router.get("/sync-payouts")
async def cron_sync_payouts():
    """Sync every firm's realtime payouts and prune the realtime table."""
    return await _run_cron("sync-payouts", get_sync_service().sync_all_firms)


@cron_router.get("/sync-traders")
async def cron_sync_traders():
    """Sync every trader wallet's realtime payouts."""
    return await _run_cron("sync-traders", get_trader_sync_service().sync_all_traders)


@admin_router.get("/arbiscan-usage", response_model=UsageResponse)
async def arbiscan_usage():
    """Explorer calls made today against the daily limit."""
    return usage_tracker.get_usage()


@admin_router.get("/sync-status")
async def sync_status(hours: Optional[int] = 24):
    """Last runs, aggregate metrics, circuit breaker and scheduler state."""
    last_runs = {}
    for kind in ("firms", "traders"):
        run = sync_metrics.get_last_run(kind)
        last_runs[kind] = run.to_dict() if run else None

    return {
        "last_runs": last_runs,
        "aggregate": sync_metrics.get_aggregate_metrics(hours=hours).to_dict(),
        "success_rate": sync_metrics.get_success_rate(hours=hours),
        "circuit_breaker": circuit_breaker.get_state(),
        "usage": usage_tracker.get_usage(),
        "scheduler": get_scheduler().get_status(),
    }


@admin_router.post("/scheduler/start")
async def start_scheduler():
    return await get_scheduler().start()


@admin_router.post("/scheduler/stop")
async def stop_scheduler():
    return await get_scheduler().stop()


@admin_router.get("/validate/{firm_id}/{year_month}")
async def validate_month(firm_id: str, year_month: str):
    """Compare a month archive file with the database rows of that month."""
    if not is_year_month(year_month):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Month must be YYYY-MM"
        )
    return await validate_month_data(firm_id, year_month)


@admin_router.post("/incidents/run")
async def run_incidents(request: Optional[IncidentRunRequest] = Body(default=None)):
    """Detect and store weekly incidents for every firm (or the given firms)."""
    request = request or IncidentRunRequest()
    return await run_weekly_incidents(week_start=request.week_start, firm_ids=request.firm_ids)
