from __future__ import annotations

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.core.config import get_settings
from app.core.logging import configure_logging, request_id_middleware
from app.core.scheduler import get_scheduler
from app.explorer.clients import ExplorerConfigError, ExplorerError
from app.firms.router import live_router
from app.firms.router import router as firms_router
from app.payouts.router import admin_router, cron_router
from app.traders.router import router as traders_router

settings = get_settings()
configure_logging(settings.ENV, settings.DEBUG, service="propproof-api")

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the sync scheduler when enabled; stop it on shutdown."""
    logger.info(
        "app.startup",
        app=settings.APP_NAME,
        env=settings.ENV,
        explorer_client=settings.EXPLORER_CLIENT,
        scheduler_enabled=settings.SCHEDULER_ENABLED,
    )

    scheduler = get_scheduler()
    if settings.SCHEDULER_ENABLED:
        await scheduler.start()

    yield

    if scheduler.running:
        await scheduler.stop()
    logger.info("app.shutdown")


app = FastAPI(title=settings.APP_NAME, version="0.1.0", lifespan=lifespan)
app.middleware("http")(request_id_middleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_methods=["GET", "OPTIONS"],
    allow_headers=["Content-Type"],
)
app.include_router(firms_router)
app.include_router(live_router)
app.include_router(traders_router)
app.include_router(cron_router)
app.include_router(admin_router)


@app.exception_handler(ExplorerConfigError)
async def explorer_config_error_handler(request: Request, exc: ExplorerConfigError):
    logger.error("explorer.not_configured", error=str(exc))
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"detail": "Explorer API key not configured"},
    )


@app.exception_handler(ExplorerError)
async def explorer_error_handler(request: Request, exc: ExplorerError):
    logger.error("explorer.request_failed", error=str(exc), error_type=type(exc).__name__)
    return JSONResponse(
        status_code=status.HTTP_502_BAD_GATEWAY,
        content={"detail": f"Explorer request failed: {exc}"},
    )


@app.get("/")
def health_check():
    return {"status": "ok"}


@app.get("/healthz")
def healthz():
    return {"status": "healthy", "env": settings.ENV}
