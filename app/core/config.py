from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables and .env file.

    Uses pydantic-settings so every value is type-validated and has a
    sensible default for local development.
    """

    # App basics
    ENV: Literal["development", "staging", "production"] = "development"
    """Environment mode: affects logging, cron auth and mock data."""

    DEBUG: bool = True
    """Enable debug mode: verbose logging and development features."""

    APP_NAME: str = "PropProof Payout Tracker"

    # DB
    DATABASE_URL: Optional[str] = None
    """Database connection URL. If None, uses SQLite for development."""

    DB_QUERY_TIMEOUT_SECONDS: float = 5.0
    """Hard timeout applied to guarded database queries."""

    DB_SLOW_QUERY_SECONDS: float = 1.0
    """Guarded queries slower than this are logged as slow."""

    # Block explorer (Etherscan V2 API, Arbitrum)
    ARBISCAN_API_KEY: Optional[str] = None
    """API key for the Etherscan V2 API. Sync is refused without it."""

    ARBISCAN_API_BASE: str = "https://api.etherscan.io/v2/api"
    ARBISCAN_CHAIN_ID: str = "42161"
    ARBISCAN_DAILY_LIMIT: int = 100_000
    """Daily call quota used to compute usage percentage."""

    EXPLORER_CLIENT: Literal["arbiscan", "mock"] = "arbiscan"
    """Which explorer client the services use."""

    # Security
    CRON_SECRET: Optional[str] = None
    """Bearer token required on cron endpoints in production."""

    ADMIN_API_TOKEN: Optional[str] = None
    """Token expected in the x-admin-token header on admin endpoints."""

    ALLOWED_ORIGINS: list[str] = ["https://propproof.app"]
    """Browser origins allowed on public read endpoints."""

    PUBLIC_RATE_LIMIT: int = 60
    """Requests per minute per client IP on public read endpoints."""

    # Alerts
    SLACK_WEBHOOK_URL: Optional[str] = None
    """Incoming webhook for usage and circuit breaker alerts."""

    # Archive
    PAYOUTS_DATA_DIR: str = "data/propfirms"
    """Directory holding <firm_id>/<YYYY-MM>.json archive files."""

    TRADERS_DATA_DIR: str = "data/traders"
    """Directory holding <wallet_address>/<YYYY-MM>.json trader archive files."""

    FIRMS_FILE: str = "data/propfirms.json"
    """Seed file listing firms and their wallet addresses."""

    # LLM (incident summaries)
    LLM_API_KEY: Optional[str] = None
    LLM_API_URL: str = "https://api.openai.com/v1/chat/completions"
    LLM_MODEL: str = "gpt-4o-mini"

    # Scheduler
    SCHEDULER_ENABLED: bool = False
    """Start the background sync loop on application startup."""

    SYNC_INTERVAL_MINUTES: int = 10
    """Minutes between background sync cycles."""

    # Model config
    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return a cached Settings instance to avoid re-parsing .env repeatedly."""
    return Settings()
