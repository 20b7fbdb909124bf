"""
Retry and circuit breaker utilities for explorer calls.

Implements fixed-schedule exponential backoff with a per-attempt timeout
and a circuit breaker that blocks all calls after repeated failures.
"""

import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple, Type, TypeVar

import structlog

from app.core.alerts import send_alert
from app.explorer.clients.base import ExplorerConnectionError, ExplorerError, InvalidApiKeyError
from app.explorer.config import CircuitBreakerConfig, RetryConfig

logger = structlog.get_logger(__name__)

T = TypeVar("T")


class CircuitState(str, Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation
    OPEN = "open"  # Failing, reject requests
    HALF_OPEN = "half_open"  # One trial request allowed


class CircuitOpenError(ExplorerError):
    """Raised when circuit breaker is open."""

    pass


class CircuitBreaker:
    """
    Circuit breaker for the explorer API.

    CLOSED counts consecutive failures. After ``failure_threshold`` of them
    the circuit opens and blocks every call for ``reset_timeout`` seconds.
    The first call after that runs as a HALF_OPEN trial: success closes the
    circuit, failure opens it again.
    """

    def __init__(
        self,
        config: Optional[CircuitBreakerConfig] = None,
        alert: Optional[Callable[..., Awaitable[Any]]] = send_alert,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self.config = config or CircuitBreakerConfig()
        self._alert = alert
        self._clock = clock
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.last_failure_time: Optional[datetime] = None
        self.next_attempt_at: Optional[datetime] = None
        self.last_state_change: datetime = clock()

    async def call_async(self, func: Callable[[], Awaitable[T]]) -> T:
        """
        Execute an async function with circuit breaker protection.

        Raises:
            CircuitOpenError: If circuit is open
            Exception: Original exception from function
        """
        self._maybe_half_open()

        if self.state == CircuitState.OPEN:
            logger.warning(
                "explorer.circuit_blocked",
                next_attempt_at=self.next_attempt_at.isoformat()
                if self.next_attempt_at
                else None,
            )
            raise CircuitOpenError(
                f"Explorer circuit open until {self.next_attempt_at.isoformat() if self.next_attempt_at else 'unknown'}"
            )

        try:
            result = await func()
        except Exception:
            tripped = self._on_failure()
            if tripped:
                await self._notify_open()
            raise

        self._on_success()
        return result

    def _maybe_half_open(self) -> None:
        if self.state != CircuitState.OPEN or self.next_attempt_at is None:
            return
        if self._clock() >= self.next_attempt_at:
            self.state = CircuitState.HALF_OPEN
            self.failure_count = 0
            self.last_state_change = self._clock()
            logger.warning("explorer.circuit_half_open")

    def _on_success(self) -> None:
        if self.state == CircuitState.HALF_OPEN:
            self._transition_to_closed()
            logger.warning("explorer.circuit_closed")
        self.failure_count = 0

    def _on_failure(self) -> bool:
        """Record a failure; returns True if the circuit just opened."""
        self.failure_count += 1
        self.last_failure_time = self._clock()

        if (
            self.state == CircuitState.HALF_OPEN
            or self.failure_count >= self.config.failure_threshold
        ):
            self._transition_to_open()
            return True
        return False

    def _transition_to_open(self) -> None:
        now = self._clock()
        self.state = CircuitState.OPEN
        self.next_attempt_at = datetime.fromtimestamp(
            now.timestamp() + self.config.reset_timeout, tz=timezone.utc
        )
        self.last_state_change = now
        logger.critical(
            "explorer.circuit_opened",
            failure_count=self.failure_count,
            reset_timeout=self.config.reset_timeout,
        )

    def _transition_to_closed(self) -> None:
        self.state = CircuitState.CLOSED
        self.failure_count = 0
        self.next_attempt_at = None
        self.last_state_change = self._clock()

    async def _notify_open(self) -> None:
        if self._alert is None:
            return
        try:
            await self._alert(
                "Arbiscan API",
                "Circuit breaker opened - too many consecutive failures",
                "CRITICAL",
                {
                    "failure_count": self.failure_count,
                    "reset_timeout": self.config.reset_timeout,
                    "next_attempt_at": self.next_attempt_at.isoformat()
                    if self.next_attempt_at
                    else None,
                },
            )
        except Exception as e:
            logger.error("explorer.circuit_alert_failed", error=str(e))

    def reset(self) -> None:
        """Force the circuit back to CLOSED."""
        self._transition_to_closed()
        self.last_failure_time = None

    def get_state(self) -> dict[str, Any]:
        """Get current circuit breaker state."""
        return {
            "state": self.state.value,
            "failure_count": self.failure_count,
            "last_failure_time": (
                self.last_failure_time.isoformat() if self.last_failure_time else None
            ),
            "next_attempt_at": (
                self.next_attempt_at.isoformat() if self.next_attempt_at else None
            ),
            "last_state_change": self.last_state_change.isoformat(),
        }


async def retry_with_backoff(
    func: Callable[[], Awaitable[T]],
    config: RetryConfig,
    operation_name: str = "operation",
    on_attempt: Optional[Callable[[], Awaitable[Any]]] = None,
    non_retryable: Tuple[Type[BaseException], ...] = (InvalidApiKeyError,),
) -> T:
    """
    Execute a function with retries and a per-attempt timeout.

    Args:
        func: Async function performing one attempt
        config: Retry configuration
        operation_name: Name for logging
        on_attempt: Awaited before every attempt (usage tracking)
        non_retryable: Exceptions raised immediately

    Returns:
        Function result

    Raises:
        Exception: Last exception if all retries exhausted
    """
    attempts = config.max_retries + 1

    for attempt in range(attempts):
        if on_attempt is not None:
            await on_attempt()

        try:
            return await asyncio.wait_for(func(), timeout=config.request_timeout)
        except non_retryable:
            raise
        except Exception as e:
            error: Exception = e
            if isinstance(e, asyncio.TimeoutError):
                error = ExplorerConnectionError(
                    f"Request timeout after {config.request_timeout}s"
                )

            if attempt + 1 >= attempts:
                logger.error(
                    "explorer.retry_exhausted",
                    operation=operation_name,
                    attempts=attempt + 1,
                    error=str(error),
                )
                if error is e:
                    raise
                raise error from e

            delay = config.delay_for(attempt)
            logger.warning(
                "explorer.retry_attempt",
                operation=operation_name,
                attempt=attempt + 1,
                max_retries=config.max_retries,
                delay_seconds=delay,
                error=str(error),
            )
            await asyncio.sleep(delay)

    raise RuntimeError("Retry failed without exception")
