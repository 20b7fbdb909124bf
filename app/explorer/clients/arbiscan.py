"""
Etherscan V2 API client for Arbitrum (Arbiscan).

Every page request goes through the shared circuit breaker, the retry loop
and the daily usage tracker.
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from app.explorer.clients.base import (
    BaseExplorerClient,
    ExplorerConfigError,
    ExplorerConnectionError,
    ExplorerResponseError,
    InvalidApiKeyError,
    RateLimitError,
    RawExplorerTx,
)
from app.explorer.config import ExplorerConfig
from app.explorer.retry import CircuitBreaker, retry_with_backoff
from app.explorer.usage import UsageTracker

logger = structlog.get_logger(__name__)

# Process-wide state shared by every client instance
circuit_breaker = CircuitBreaker()
usage_tracker = UsageTracker()

_EMPTY_MESSAGES = ("no transactions found", "no token transfers found")


def parse_explorer_response(data: Dict[str, Any], address: str = "") -> List[Dict[str, Any]]:
    """
    Extract the result list from an Etherscan-style response body.

    ``status == "0"`` covers both "no data" and real errors, so the message
    decides: empty-history messages yield an empty list, rate limit and
    invalid key messages raise, anything else yields an empty list.
    """
    if data.get("status") != "0":
        result = data.get("result") or []
        if not isinstance(result, list):
            raise ExplorerResponseError(f"Unexpected result for {address}: {result!r}")
        return result

    raw_message = data.get("message") or ""
    message = raw_message.lower()

    if any(text in message for text in _EMPTY_MESSAGES):
        return []

    if "rate limit" in message:
        raise RateLimitError(f"Rate limit for {address}")

    if "invalid api key" in message or raw_message == "NOTOK":
        raise InvalidApiKeyError(raw_message or "Invalid API Key")

    return []


class ArbiscanClient(BaseExplorerClient):
    """Explorer client backed by the Etherscan V2 multichain API."""

    def __init__(
        self,
        config: Optional[ExplorerConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        breaker: Optional[CircuitBreaker] = None,
        tracker: Optional[UsageTracker] = None,
    ):
        """
        Initialize the client.

        Args:
            config: Explorer configuration (API key, base URL, retry policy)
            http_client: Injected client; a new one is opened per request if None
            breaker: Circuit breaker (defaults to the process-wide one)
            tracker: Usage tracker (defaults to the process-wide one)
        """
        super().__init__(config)
        if not self.config.api_key:
            raise ExplorerConfigError("ARBISCAN_API_KEY is not configured")

        self._http_client = http_client
        self.breaker = breaker or circuit_breaker
        self.tracker = tracker or usage_tracker
        if tracker is None:
            self.tracker.limit = self.config.daily_limit

    def get_source_name(self) -> str:
        return "arbiscan"

    async def fetch_native_transactions(
        self,
        address: str,
        page: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[RawExplorerTx]:
        return await self._fetch("txlist", address, page, offset)

    async def fetch_token_transactions(
        self,
        address: str,
        page: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[RawExplorerTx]:
        return await self._fetch("tokentx", address, page, offset)

    def _build_params(
        self, action: str, address: str, page: Optional[int], offset: Optional[int]
    ) -> Dict[str, Any]:
        params: Dict[str, Any] = {
            "chainid": self.config.chain_id,
            "module": "account",
            "action": action,
            "address": address,
            "sort": "desc",
            "apikey": self.config.api_key,
        }
        if page is not None:
            params["page"] = page
        if offset is not None:
            params["offset"] = offset
        return params

    async def _fetch(
        self, action: str, address: str, page: Optional[int], offset: Optional[int]
    ) -> List[RawExplorerTx]:
        params = self._build_params(action, address, page, offset)

        async def attempt() -> List[Dict[str, Any]]:
            return await self._request(params, address)

        rows = await self.breaker.call_async(
            lambda: retry_with_backoff(
                attempt,
                self.config.retry,
                operation_name=f"{action} {address}",
                on_attempt=self.tracker.track_call,
            )
        )
        return [RawExplorerTx.model_validate(row) for row in rows]

    async def _request(self, params: Dict[str, Any], address: str) -> List[Dict[str, Any]]:
        try:
            if self._http_client is not None:
                response = await self._http_client.get(self.config.api_base, params=params)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.get(self.config.api_base, params=params)
        except httpx.HTTPError as e:
            raise ExplorerConnectionError(f"Explorer request failed: {e}") from e

        if response.status_code == 429:
            raise RateLimitError("HTTP 429")

        try:
            data = response.json()
        except ValueError as e:
            raise ExplorerResponseError(
                f"Invalid JSON from explorer (HTTP {response.status_code})"
            ) from e

        return parse_explorer_response(data, address)
