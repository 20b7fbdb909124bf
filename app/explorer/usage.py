"""Daily explorer API call tracking with threshold alerts."""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional, Sequence, Set

import structlog

from app.core.alerts import send_slack_message

logger = structlog.get_logger(__name__)


class UsageTracker:
    """
    Counts explorer API calls per UTC day.

    The count resets when the UTC date changes. Crossing any alert
    threshold logs a warning and posts to Slack, once per threshold per day.
    """

    def __init__(
        self,
        limit: int = 100_000,
        thresholds: Sequence[int] = (80, 90, 95),
        notify: Optional[Callable[[str], Awaitable[Any]]] = send_slack_message,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.limit = limit
        self.thresholds = sorted(thresholds)
        self._notify = notify
        self._clock = clock
        self._calls = 0
        self._day_key: Optional[str] = None
        self._alerted: Set[int] = set()

    def _today(self) -> str:
        return self._clock().strftime("%Y-%m-%d")

    async def track_call(self) -> Dict[str, Any]:
        """Record one API call and fire any newly crossed threshold alerts."""
        day_key = self._today()
        if day_key != self._day_key:
            self._day_key = day_key
            self._calls = 0
            self._alerted.clear()

        self._calls += 1
        usage = self.get_usage()
        await self._maybe_alert(usage)
        return usage

    def get_usage(self) -> Dict[str, Any]:
        """Current usage snapshot: calls, limit, percentage, day."""
        day_key = self._today()
        if day_key != self._day_key:
            return {"calls": 0, "limit": self.limit, "percentage": 0, "day": day_key}

        percentage = int(self._calls / self.limit * 100 + 0.5) if self.limit > 0 else 0
        return {
            "calls": self._calls,
            "limit": self.limit,
            "percentage": percentage,
            "day": self._day_key,
        }

    async def _maybe_alert(self, usage: Dict[str, Any]) -> None:
        for threshold in self.thresholds:
            if usage["percentage"] < threshold or threshold in self._alerted:
                continue

            self._alerted.add(threshold)
            logger.warning("explorer.usage_threshold", threshold=threshold, **usage)

            if self._notify is None:
                continue
            text = (
                f"Arbiscan usage at {threshold}%: {usage['calls']}/{usage['limit']} "
                f"calls today ({usage['day']})"
            )
            try:
                await self._notify(text)
            except Exception as e:
                logger.error("explorer.usage_alert_failed", error=str(e))

    def reset(self) -> None:
        self._calls = 0
        self._day_key = None
        self._alerted.clear()
