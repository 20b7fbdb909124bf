from __future__ import annotations

import logging
import sys
import time
import uuid
from typing import Any, Callable, Dict

import structlog
from fastapi import Request

# httpx logs every request line at INFO; explorer URLs carry the API key
QUIET_LOGGERS = ("httpx", "httpcore", "sqlalchemy.engine", "aiosqlite")

UNLOGGED_PATHS = frozenset({"/", "/healthz"})


def _add_log_level(
    logger: Any, method_name: str, event_dict: Dict[str, Any]
) -> Dict[str, Any]:
    event_dict["level"] = method_name
    return event_dict


def _add_service(service: str) -> Callable[..., Dict[str, Any]]:
    def processor(logger: Any, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
        event_dict.setdefault("service", service)
        return event_dict

    return processor


def configure_logging(
    env: str = "development", debug: bool = False, service: str = "propproof"
) -> None:
    """Configure structlog for stdout.

    Development gets the colored console renderer; staging and production
    emit one JSON object per line with a ``service`` field so sync, cron and
    API events can be filtered in the hosting platform.
    """
    processors: list[Any] = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        _add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if env == "development":
        processors.append(structlog.dev.ConsoleRenderer(colors=True))
    else:
        processors.insert(3, _add_service(service))
        processors.append(structlog.processors.JSONRenderer())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=logging.DEBUG if debug else logging.INFO,
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_request_id(request: Request) -> str:
    """Return the caller's x-request-id or mint a new one."""
    return request.headers.get("x-request-id") or str(uuid.uuid4())


async def request_id_middleware(request: Request, call_next):  # type: ignore[no-untyped-def]
    """Bind request_id/path into log context and log request latency.

    Health checks are not logged; server errors are logged as warnings.
    """
    started = time.perf_counter()
    request_id = get_request_id(request)
    path = request.url.path
    request.state.request_id = request_id
    structlog.contextvars.bind_contextvars(request_id=request_id, path=path)

    response = None
    try:
        response = await call_next(request)
    finally:
        status = response.status_code if response is not None else 500
        if path not in UNLOGGED_PATHS:
            log = structlog.get_logger("request")
            emit = log.warning if status >= 500 else log.info
            emit(
                "request.completed",
                method=request.method,
                status=status,
                duration_ms=round((time.perf_counter() - started) * 1000, 2),
            )
        structlog.contextvars.clear_contextvars()

    response.headers["x-request-id"] = request_id
    return response
