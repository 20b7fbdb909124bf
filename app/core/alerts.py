"""Operational alerts posted to a Slack incoming webhook."""

from __future__ import annotations

from typing import Any, Dict, Optional

import httpx
import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

SEVERITIES = ("INFO", "WARNING", "CRITICAL")


async def send_slack_message(text: str, webhook_url: Optional[str] = None) -> bool:
    """Post a plain text message to the configured webhook.

    Returns False when no webhook is configured or delivery fails. Delivery
    failures are logged and never raised so callers such as the circuit
    breaker are not broken by an alert.
    """
    url = webhook_url or get_settings().SLACK_WEBHOOK_URL
    if not url:
        return False

    try:
        async with httpx.AsyncClient(timeout=5.0) as client:
            response = await client.post(url, json={"text": text})
            response.raise_for_status()
    except httpx.HTTPError as e:
        logger.error("alerts.slack_failed", error=str(e))
        return False

    return True


async def send_alert(
    service: str,
    message: str,
    severity: str = "INFO",
    details: Optional[Dict[str, Any]] = None,
    webhook_url: Optional[str] = None,
) -> bool:
    """Log an alert and forward it to Slack when a webhook is configured."""
    level = severity if severity in SEVERITIES else "INFO"
    details = details or {}

    log = logger.critical if level == "CRITICAL" else logger.warning
    log("alerts.sent", service=service, message=message, severity=level, **details)

    lines = [f"[{level}] {service}: {message}"]
    lines.extend(f"• {key}: {value}" for key, value in details.items())
    return await send_slack_message("\n".join(lines), webhook_url=webhook_url)
