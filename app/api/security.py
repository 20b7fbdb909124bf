"""
Access checks for the HTTP routes.

Public read routes check the browser origin against an allow-list and apply
a best-effort in-memory rate limit per client IP. Cron routes require the
cron bearer secret in production; admin routes require the admin token.
"""

from __future__ import annotations

import math
import secrets
import time
from typing import Optional

import structlog
from fastapi import Header, HTTPException, Request, status
from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import FixedWindowRateLimiter as _FixedWindow

from app.core.config import get_settings

logger = structlog.get_logger(__name__)


class FixedWindowRateLimiter:
    """
    Per-key fixed-window limit over an in-memory ``limits`` storage.

    State lives in process memory, so limits apply per worker.
    """

    def __init__(self, limit: int = 60, window_seconds: int = 60):
        self.limit = limit
        self.window_seconds = window_seconds
        self._storage = MemoryStorage()
        self._strategy = _FixedWindow(self._storage)

    def hit(self, key: str) -> tuple[bool, float]:
        """
        Count one request for ``key``.

        Returns:
            (limited, seconds until the window resets)
        """
        item = RateLimitItemPerSecond(self.limit, self.window_seconds)
        allowed = self._strategy.hit(item, key)
        reset_time, _ = self._strategy.get_window_stats(item, key)
        return not allowed, max(0.0, reset_time - time.time())

    def reset(self) -> None:
        self._storage.reset()


public_rate_limiter = FixedWindowRateLimiter(limit=get_settings().PUBLIC_RATE_LIMIT)


def get_client_ip(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        return forwarded.split(",")[0].strip()
    if request.client and request.client.host:
        return request.client.host
    return "unknown"


def verify_origin(request: Request) -> None:
    """Reject browser requests from origins outside the allow-list.

    Requests without an Origin header (server to server) pass.
    """
    origin = request.headers.get("origin")
    if origin and origin not in get_settings().ALLOWED_ORIGINS:
        logger.warning("security.forbidden_origin", origin=origin)
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden origin")


def enforce_rate_limit(request: Request) -> None:
    ip = get_client_ip(request)
    limited, retry_after = public_rate_limiter.hit(ip)
    if limited:
        logger.warning("security.rate_limited", client_ip=ip)
        raise HTTPException(
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
            detail="Rate limit exceeded",
            headers={"Retry-After": str(max(1, math.ceil(retry_after)))},
        )


def public_access(request: Request) -> None:
    """Dependency for public read routes: origin check then rate limit."""
    verify_origin(request)
    enforce_rate_limit(request)


def require_cron_secret(authorization: Optional[str] = Header(default=None)) -> None:
    """Require ``Bearer <CRON_SECRET>`` in production when a secret is configured."""
    settings = get_settings()
    if settings.ENV != "production" or not settings.CRON_SECRET:
        return
    expected = f"Bearer {settings.CRON_SECRET}"
    if not authorization or not secrets.compare_digest(
        authorization.encode(), expected.encode()
    ):
        logger.warning("security.cron_unauthorized")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """
    Require the admin token header.

    Without a configured token admin routes are open in development and
    refused everywhere else.
    """
    settings = get_settings()
    if not settings.ADMIN_API_TOKEN:
        if settings.ENV == "development":
            return
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin API disabled")

    if not x_admin_token:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthorized")
    if not secrets.compare_digest(
        x_admin_token.encode(), settings.ADMIN_API_TOKEN.encode()
    ):
        logger.warning("security.admin_forbidden")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Forbidden")
