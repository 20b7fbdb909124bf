"""
Review classification taxonomy.

Category values written by the review classifier, the rules that turn
them into incidents, and the sentiment buckets used by firm signals.
Rows classified before the current taxonomy carry legacy values which
are mapped onto their current equivalents before grouping.
"""

from typing import Dict, Optional, Tuple

# Negative categories that raise an incident on a spike of reviews
SPIKE_CATEGORIES: Tuple[str, ...] = (
    "payout_delay",
    "payout_denied",
    "kyc_withdrawal_issue",
    "platform_technical_issue",
    "support_issue",
    "rules_dispute",
    "pricing_fee_complaint",
    "execution_conditions",
)

# A single review in these categories is enough for an incident
SEVERITY_OVERRIDE_CATEGORIES: Tuple[str, ...] = ("high_risk_allegation",)

NEVER_INCIDENT_CATEGORIES: Tuple[str, ...] = (
    "spam_template",
    "low_info",
    "off_topic",
    "positive_experience",
    "neutral_mixed",
)

INCIDENT_CATEGORIES: Tuple[str, ...] = SPIKE_CATEGORIES + SEVERITY_OVERRIDE_CATEGORIES

CLASSIFICATION_CATEGORIES: Tuple[str, ...] = INCIDENT_CATEGORIES + NEVER_INCIDENT_CATEGORIES

LEGACY_CATEGORY_MAP: Dict[str, str] = {
    "payout_issue": "payout_delay",
    "scam_warning": "high_risk_allegation",
    "platform_issue": "platform_technical_issue",
    "rule_violation": "rules_dispute",
    "positive": "positive_experience",
    "neutral": "neutral_mixed",
    "noise": "off_topic",
}

# Raw values to query for incident candidates, legacy rows included
INCIDENT_QUERY_CATEGORIES: Tuple[str, ...] = INCIDENT_CATEGORIES + (
    "payout_issue",
    "scam_warning",
    "platform_issue",
    "rule_violation",
)

POSITIVE_SENTIMENT = ("positive_experience", "positive")
NEUTRAL_SENTIMENT = ("neutral_mixed", "neutral")
NEGATIVE_SENTIMENT = INCIDENT_QUERY_CATEGORIES

SEVERITY_ORDER: Dict[str, int] = {"low": 0, "medium": 1, "high": 2}


def normalize_category(category: Optional[str]) -> Optional[str]:
    """Map a legacy category onto the current taxonomy; None stays None."""
    if not category:
        return None
    return LEGACY_CATEGORY_MAP.get(category, category)


def is_spike_category(category: Optional[str]) -> bool:
    return normalize_category(category) in SPIKE_CATEGORIES


def is_severity_override_category(category: Optional[str]) -> bool:
    return normalize_category(category) in SEVERITY_OVERRIDE_CATEGORIES


def is_never_incident_category(category: Optional[str]) -> bool:
    if not category:
        return True
    return normalize_category(category) in NEVER_INCIDENT_CATEGORIES


def sentiment_bucket(category: Optional[str]) -> Optional[str]:
    """Sentiment bucket (positive, neutral, negative) of a raw category, None for noise."""
    if category in POSITIVE_SENTIMENT:
        return "positive"
    if category in NEUTRAL_SENTIMENT:
        return "neutral"
    if category in NEGATIVE_SENTIMENT:
        return "negative"
    return None


def max_severity(severities) -> str:
    """Highest of the given severities; unknown or missing values count as low."""
    highest = 0
    for severity in severities:
        highest = max(highest, SEVERITY_ORDER.get(severity or "", 0))
    for name, rank in SEVERITY_ORDER.items():
        if rank == highest:
            return name
    return "low"


def count_sentiment(categories) -> Dict[str, int]:
    """Positive / neutral / negative counts over raw review categories."""
    counts = {"positive": 0, "neutral": 0, "negative": 0}
    for category in categories:
        bucket = sentiment_bucket(category)
        if bucket:
            counts[bucket] += 1
    return counts
