"""
Weekly incident detection.

Groups a firm's classified reviews for one week by (normalized) category.
A spike category becomes an incident once it reaches the spike threshold,
a high-risk allegation as soon as one review carries it. Each incident is
summarized and the firm's incidents for that week are replaced.
"""

from datetime import date, datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.unit_of_work import UnitOfWork
from app.intelligence.config import IncidentConfig, get_incident_config
from app.intelligence.summarizer import IncidentCluster, IncidentSummarizer
from app.intelligence.taxonomy import (
    INCIDENT_QUERY_CATEGORIES,
    is_severity_override_category,
    is_spike_category,
    max_severity,
    normalize_category,
)
from app.intelligence.weeks import previous_week, week_bounds, week_number, week_year

logger = structlog.get_logger(__name__)


def _threshold(category: str, config: IncidentConfig) -> Optional[int]:
    if is_severity_override_category(category):
        return config.min_reviews_for_high_risk
    if is_spike_category(category):
        return config.min_reviews_for_spike
    return None


def group_reviews(reviews: Sequence[Any], config: IncidentConfig) -> Dict[str, List[Any]]:
    """
    Reviews grouped by normalized category, keeping only groups that
    reach their incident threshold. Group order follows first appearance.
    """
    groups: Dict[str, List[Any]] = {}
    for review in reviews:
        category = normalize_category(review.category)
        if category is None:
            continue
        groups.setdefault(category, []).append(review)

    eligible = {}
    for category, group in groups.items():
        threshold = _threshold(category, config)
        if threshold is not None and len(group) >= threshold:
            eligible[category] = group
    return eligible


async def detect_incidents(
    firm_id: str,
    week_start: date,
    week_end: date,
    session: Optional[AsyncSession] = None,
    summarizer: Optional[IncidentSummarizer] = None,
    config: Optional[IncidentConfig] = None,
) -> List[Dict[str, Any]]:
    """
    Detect and store incidents for one firm and week.

    Args:
        firm_id: Firm identifier
        week_start: First review date of the window (a Monday)
        week_end: Last review date of the window, inclusive
        session: Optional session to run in (caller commits)
        summarizer: Summarizer to use; built from settings if None
        config: Thresholds; built from settings if None

    Returns:
        The stored incident rows as dicts
    """
    config = config or get_incident_config()
    summarizer = summarizer or IncidentSummarizer(config)
    number = week_number(week_start)
    year = week_year(week_start)

    async with UnitOfWork(session=session) as uow:
        reviews = await uow.reviews.get_for_firm(
            firm_id,
            week_start,
            week_end,
            categories=INCIDENT_QUERY_CATEGORIES,
        )
        groups = group_reviews(reviews, config)

        clusters = [
            IncidentCluster(
                incident_type=category,
                review_summaries=[r.ai_summary or "(no summary)" for r in group],
                review_count=len(group),
            )
            for category, group in groups.items()
        ]
        summaries = await summarizer.summarize(clusters)

        incidents: List[Dict[str, Any]] = []
        for (category, group), summary in zip(groups.items(), summaries):
            incidents.append(
                {
                    "firm_id": firm_id,
                    "week_number": number,
                    "year": year,
                    "incident_type": category,
                    "severity": max_severity(r.severity for r in group),
                    "title": summary.title,
                    "summary": summary.summary,
                    "review_count": len(group),
                    "affected_users": summary.affected_users,
                    "review_ids": [r.id for r in group],
                }
            )

        await uow.incidents.replace_week(firm_id, year, number, incidents)

    logger.info(
        "incidents.detected",
        firm_id=firm_id,
        year=year,
        week_number=number,
        reviews=len(reviews),
        incidents=len(incidents),
    )
    return incidents


async def run_weekly_incidents(
    week_start: Optional[date] = None,
    firm_ids: Optional[Sequence[str]] = None,
    summarizer: Optional[IncidentSummarizer] = None,
    today: Optional[date] = None,
) -> Dict[str, Any]:
    """
    Run incident detection for every firm (or ``firm_ids``) for one week.

    Defaults to the last complete ISO week. A failing firm is logged and
    reported without stopping the others.
    """
    if week_start is None:
        start, end = previous_week(today or datetime.now(timezone.utc).date())
    else:
        start, end = week_bounds(week_start)

    if firm_ids is None:
        async with UnitOfWork() as uow:
            firm_ids = [firm.id for firm in await uow.firms.list_firms()]

    summarizer = summarizer or IncidentSummarizer()
    results: List[Dict[str, Any]] = []
    errors: List[Dict[str, str]] = []

    for firm_id in firm_ids:
        try:
            incidents = await detect_incidents(firm_id, start, end, summarizer=summarizer)
            results.append({"firm_id": firm_id, "incidents": len(incidents)})
        except Exception as e:
            logger.error("incidents.firm_failed", firm_id=firm_id, error=str(e), exc_info=True)
            errors.append({"firm_id": firm_id, "error": str(e)})

    return {
        "week_start": start.isoformat(),
        "week_end": end.isoformat(),
        "year": week_year(start),
        "week_number": week_number(start),
        "firms": results,
        "errors": errors,
    }
