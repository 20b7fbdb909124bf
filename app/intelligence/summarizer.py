"""
Incident summaries.

Turns clusters of classified review summaries into a headline, a short
aggregated summary and an affected-users estimate. Uses an OpenAI-style
chat completions endpoint when ``LLM_API_KEY`` is set and a deterministic
template otherwise.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

import httpx
import structlog

from app.intelligence.config import IncidentConfig, get_incident_config

logger = structlog.get_logger(__name__)

TITLE_MAX = 500
SUMMARY_MAX = 2000
AFFECTED_USERS_MAX = 100

FALLBACK_TITLES = {
    "payout_delay": "Payout delays reported",
    "payout_denied": "Denied payouts reported",
    "kyc_withdrawal_issue": "KYC and withdrawal issues reported",
    "platform_technical_issue": "Platform technical issues reported",
    "support_issue": "Support complaints reported",
    "rules_dispute": "Rule disputes reported",
    "pricing_fee_complaint": "Pricing and fee complaints reported",
    "execution_conditions": "Execution condition complaints reported",
    "high_risk_allegation": "High-risk allegations reported",
}


@dataclass
class IncidentCluster:
    incident_type: str
    review_summaries: List[str]
    review_count: int


@dataclass
class IncidentSummary:
    title: str
    summary: str
    affected_users: str

    @classmethod
    def build(cls, title, summary, affected_users, review_count: int) -> "IncidentSummary":
        """Coerce raw values and clamp them to the stored column sizes."""
        return cls(
            title=str(title or "Incident")[:TITLE_MAX],
            summary=str(summary or "")[:SUMMARY_MAX],
            affected_users=str(affected_users or f"~{review_count}")[:AFFECTED_USERS_MAX],
        )


def fallback_summary(cluster: IncidentCluster) -> IncidentSummary:
    """Template summary used without an LLM or when the LLM call fails."""
    title = FALLBACK_TITLES.get(
        cluster.incident_type, cluster.incident_type.replace("_", " ").capitalize() + " reported"
    )
    noun = "review" if cluster.review_count == 1 else "reviews"
    summary = f"{cluster.review_count} {noun} this week."
    details = [s for s in cluster.review_summaries if s and s != "(no summary)"]
    if details:
        summary = f"{summary} {' '.join(details[:3])}"
    return IncidentSummary.build(title, summary, None, cluster.review_count)


class IncidentSummarizer:
    """Summarizes incident clusters in batches."""

    def __init__(
        self,
        config: Optional[IncidentConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
    ):
        self.config = config or get_incident_config()
        self._http_client = http_client

    @property
    def enabled(self) -> bool:
        return bool(self.config.api_key)

    async def summarize(self, clusters: Sequence[IncidentCluster]) -> List[IncidentSummary]:
        """One summary per cluster, in order."""
        if not clusters:
            return []
        if not self.enabled:
            return [fallback_summary(c) for c in clusters]

        results: List[IncidentSummary] = []
        size = self.config.batch_size
        for start in range(0, len(clusters), size):
            chunk = list(clusters[start : start + size])
            try:
                results.extend(await self._summarize_batch(chunk))
            except (httpx.HTTPError, ValueError, KeyError) as e:
                logger.warning(
                    "incidents.summary_failed",
                    batch_size=len(chunk),
                    error=str(e),
                )
                results.extend(fallback_summary(c) for c in chunk)
        return results

    async def _summarize_batch(self, chunk: List[IncidentCluster]) -> List[IncidentSummary]:
        content = await self._call_llm(
            self._build_prompt(chunk), max_tokens=min(4096, 400 * len(chunk))
        )
        items = self._parse_response(content, expected=len(chunk))
        return [
            IncidentSummary.build(
                item.get("title"),
                item.get("summary"),
                item.get("affected_users"),
                cluster.review_count,
            )
            for item, cluster in zip(items, chunk)
        ]

    def _build_prompt(self, chunk: List[IncidentCluster]) -> str:
        parts = []
        for idx, cluster in enumerate(chunk, start=1):
            lines = "\n".join(
                f"{i}. {s}" for i, s in enumerate(cluster.review_summaries, start=1)
            )
            parts.append(
                f"--- Incident {idx} (type: {cluster.incident_type}, "
                f"review_count: {cluster.review_count}) ---\n{lines}"
            )

        n = len(chunk)
        header = f"""You are summarizing clusters of reviews for a prop trading firm. There are exactly {n} incident clusters below. For each cluster, produce:
- title: Short headline (max 80 chars), e.g. "Crypto payout delays reported"
- summary: 2-3 sentence aggregated summary (max 300 chars)
- affected_users: Estimate like "~10-15" or "~5-8" based on review count

Respond with a JSON object with one key "results" whose value is an array of exactly {n} objects, each: {{"title":"...","summary":"...","affected_users":"..."}} in the same order as the clusters. No other text."""

        return header + "\n\n" + "\n\n".join(parts)

    def _parse_response(self, content: str, expected: int) -> List[dict]:
        match = re.search(r"\{.*\}", content, re.DOTALL)
        if not match:
            raise ValueError("No JSON found in response")
        data = json.loads(match.group(0))
        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list) or len(results) < expected:
            got = len(results) if isinstance(results, list) else 0
            raise ValueError(f"Expected at least {expected} results, got {got}")
        return [r if isinstance(r, dict) else {} for r in results[:expected]]

    async def _call_llm(self, prompt: str, max_tokens: int) -> str:
        headers = {
            "Authorization": f"Bearer {self.config.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": self.config.model,
            "messages": [{"role": "user", "content": prompt}],
            "temperature": self.config.temperature,
            "max_tokens": max_tokens,
            "response_format": {"type": "json_object"},
        }

        client = self._http_client or httpx.AsyncClient(timeout=self.config.timeout)
        try:
            for attempt in range(self.config.max_retries + 1):
                try:
                    response = await client.post(
                        self.config.api_url, headers=headers, json=payload
                    )
                    response.raise_for_status()
                    content = response.json()["choices"][0]["message"]["content"]
                    if not content:
                        raise ValueError("Empty LLM response")
                    return content.strip()
                except httpx.HTTPError as e:
                    logger.error(
                        "incidents.llm_error", attempt=attempt + 1, error=str(e)
                    )
                    if attempt == self.config.max_retries:
                        raise
        finally:
            if self._http_client is None:
                await client.aclose()

        raise RuntimeError("Failed to call LLM after all retries")
