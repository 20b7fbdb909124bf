"""
Payout pipeline configuration.

Token prices, spam threshold, retention window and pacing delays used by
the processor, the realtime sync and the monthly archive.
"""

from pydantic import BaseModel, Field

from app.core.config import get_settings


class PayoutConfig(BaseModel):
    """Settings for turning explorer records into payouts."""

    supported_tokens: list[str] = Field(
        default_factory=lambda: ["USDC", "USDT", "RISEPAY"],
        description="ERC-20 symbols counted as payouts",
    )
    prices: dict[str, float] = Field(
        default_factory=lambda: {
            "ETH": 2500.0,
            "USDC": 1.0,
            "USDT": 1.0,
            "RISEPAY": 1.0,
        },
        description="Static USD prices per token",
    )
    token_to_method: dict[str, str] = Field(
        default_factory=lambda: {
            "RISEPAY": "rise",
            "USDC": "crypto",
            "USDT": "crypto",
            "ETH": "crypto",
        },
    )
    default_token_decimals: int = Field(default=18, ge=0)
    min_payout_usd: float = Field(
        default=10.0, ge=0, description="Payouts below this are treated as spam"
    )

    realtime_window_hours: int = Field(
        default=24, ge=1, description="Hours kept in the realtime payout tables"
    )
    view_limit: int = Field(
        default=100, ge=1, description="Max records in enriched transaction lists"
    )

    address_delay: float = Field(
        default=0.5, ge=0, description="Seconds between wallet addresses"
    )
    firm_delay: float = Field(default=1.0, ge=0, description="Seconds between firms")
    trader_delay: float = Field(default=0.5, ge=0, description="Seconds between traders")

    data_dir: str = Field(default="data/propfirms")
    trader_data_dir: str = Field(default="data/traders")

    def method_for(self, token: str) -> str:
        return self.token_to_method.get(token, "crypto")


def get_payout_config() -> PayoutConfig:
    """Build payout configuration from application settings."""
    settings = get_settings()
    return PayoutConfig(
        data_dir=settings.PAYOUTS_DATA_DIR, trader_data_dir=settings.TRADERS_DATA_DIR
    )
