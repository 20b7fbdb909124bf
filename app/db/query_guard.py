"""Timeout and slow-query logging for database calls."""

import asyncio
import time
from typing import Awaitable, Optional, TypeVar

import structlog

from app.core.config import get_settings

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class QueryTimeoutError(Exception):
    """Raised when a guarded query exceeds its timeout."""

    pass


async def with_query_guard(
    awaitable: Awaitable[T],
    timeout_seconds: Optional[float] = None,
    slow_threshold_seconds: Optional[float] = None,
    context: str = "query",
) -> T:
    """
    Await a database call with a timeout and slow-query warning.

    Args:
        awaitable: The pending query (e.g. ``session.execute(stmt)``)
        timeout_seconds: Max wait before raising QueryTimeoutError
        slow_threshold_seconds: Log a warning when the call takes longer
        context: Label for log lines

    Returns:
        Result of the awaitable

    Raises:
        QueryTimeoutError: If the query does not finish in time
    """
    settings = get_settings()
    if timeout_seconds is None:
        timeout_seconds = settings.DB_QUERY_TIMEOUT_SECONDS
    if slow_threshold_seconds is None:
        slow_threshold_seconds = settings.DB_SLOW_QUERY_SECONDS

    start = time.perf_counter()
    try:
        result = await asyncio.wait_for(awaitable, timeout=timeout_seconds)
    except asyncio.TimeoutError as e:
        logger.warning("db.query_timeout", context=context, timeout_seconds=timeout_seconds)
        raise QueryTimeoutError(f"Query timeout after {timeout_seconds}s ({context})") from e

    duration = time.perf_counter() - start
    if duration >= slow_threshold_seconds:
        logger.warning(
            "db.slow_query",
            context=context,
            duration_seconds=round(duration, 3),
            slow_threshold_seconds=slow_threshold_seconds,
        )
    return result
