"""
Block explorer client configuration.

Defines retry, circuit breaker and pagination settings for calls to the
Etherscan V2 API.
"""

from typing import Optional

from pydantic import BaseModel, Field

from app.core.config import get_settings


class RetryConfig(BaseModel):
    """Retry behavior for a single explorer request."""

    max_retries: int = Field(
        default=3, ge=0, description="Retries after the first attempt"
    )
    backoff_seconds: list[float] = Field(
        default_factory=lambda: [1.0, 2.0, 4.0],
        description="Delay before each retry; the last value repeats",
    )
    max_delay: float = Field(
        default=30.0, ge=0, description="Upper bound on any single delay"
    )
    request_timeout: float = Field(
        default=10.0, gt=0, description="Timeout per attempt in seconds"
    )

    def delay_for(self, attempt: int) -> float:
        """Delay before retry number ``attempt`` (0-based)."""
        if not self.backoff_seconds:
            return 0.0
        index = min(attempt, len(self.backoff_seconds) - 1)
        return min(self.backoff_seconds[index], self.max_delay)


class CircuitBreakerConfig(BaseModel):
    """Configuration for the explorer circuit breaker."""

    failure_threshold: int = Field(
        default=5, ge=1, description="Consecutive failures before opening"
    )
    reset_timeout: float = Field(
        default=60.0, ge=0, description="Seconds the circuit stays open"
    )


class ExplorerConfig(BaseModel):
    """Main explorer client configuration."""

    api_base: str = Field(default="https://api.etherscan.io/v2/api")
    chain_id: str = Field(default="42161", description="Arbitrum One")
    api_key: Optional[str] = Field(default=None)

    page_size: int = Field(
        default=10_000, ge=1, le=10_000, description="Results per page (API max)"
    )
    page_delay: float = Field(
        default=0.5, ge=0, description="Seconds to wait between pages"
    )

    daily_limit: int = Field(default=100_000, ge=1)
    usage_alert_thresholds: list[int] = Field(
        default_factory=lambda: [80, 90, 95],
        description="Usage percentages that trigger a once-a-day alert",
    )

    retry: RetryConfig = Field(default_factory=RetryConfig)
    circuit_breaker: CircuitBreakerConfig = Field(default_factory=CircuitBreakerConfig)

    tx_url_template: str = Field(default="https://arbiscan.io/tx/{tx_hash}")


def get_explorer_config() -> ExplorerConfig:
    """Build explorer configuration from application settings."""
    settings = get_settings()
    return ExplorerConfig(
        api_base=settings.ARBISCAN_API_BASE,
        chain_id=settings.ARBISCAN_CHAIN_ID,
        api_key=settings.ARBISCAN_API_KEY,
        daily_limit=settings.ARBISCAN_DAILY_LIMIT,
    )
