"""Incident detection configuration."""

from typing import Optional

from pydantic import BaseModel, Field

from app.core.config import get_settings


class IncidentConfig(BaseModel):
    """Thresholds and LLM settings for weekly incident detection."""

    min_reviews_for_spike: int = Field(
        default=3, ge=1, description="Reviews in one spike category needed for an incident"
    )
    min_reviews_for_high_risk: int = Field(
        default=1, ge=1, description="Reviews needed for a high-risk allegation incident"
    )

    api_key: Optional[str] = Field(default=None, description="LLM key; template summaries without it")
    api_url: str = Field(default="https://api.openai.com/v1/chat/completions")
    model: str = Field(default="gpt-4o-mini")
    temperature: float = Field(default=0.2, ge=0.0, le=2.0)
    timeout: float = Field(default=30.0, gt=0)
    max_retries: int = Field(default=2, ge=0)
    batch_size: int = Field(default=10, ge=1, description="Clusters per LLM call")


def get_incident_config() -> IncidentConfig:
    settings = get_settings()
    return IncidentConfig(
        api_key=settings.LLM_API_KEY,
        api_url=settings.LLM_API_URL,
        model=settings.LLM_MODEL,
    )
