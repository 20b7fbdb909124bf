"""
Base block explorer client interface.

Defines the raw record shape returned by the explorer, the error taxonomy
and the pagination loop shared by every client.
"""

import asyncio
from abc import ABC, abstractmethod
from typing import List, Optional

import structlog
from pydantic import BaseModel, ConfigDict, Field

from app.explorer.config import ExplorerConfig

logger = structlog.get_logger(__name__)


class RawExplorerTx(BaseModel):
    """
    One transaction row as returned by ``txlist`` or ``tokentx``.

    Native transfers have no token fields. Values are kept as the API's
    decimal strings so no precision is lost before conversion.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    hash: str
    from_address: str = Field(default="", alias="from")
    to_address: str = Field(default="", alias="to")
    value: str = "0"
    time_stamp: int = Field(alias="timeStamp")
    token_symbol: Optional[str] = Field(default=None, alias="tokenSymbol")
    token_decimal: Optional[str] = Field(default=None, alias="tokenDecimal")

    @property
    def is_token_transfer(self) -> bool:
        return self.token_symbol is not None


class BaseExplorerClient(ABC):
    """
    Abstract base class for block explorer clients.

    Subclasses implement single-page fetches; full-history pagination is
    shared here.
    """

    def __init__(self, config: Optional[ExplorerConfig] = None):
        self.config = config or ExplorerConfig()

    @abstractmethod
    async def fetch_native_transactions(
        self,
        address: str,
        page: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[RawExplorerTx]:
        """
        Fetch one page of native (ETH) transactions, newest first.

        Args:
            address: Wallet address (0x...)
            page: 1-indexed page number
            offset: Results per page

        Raises:
            InvalidApiKeyError: If the API key is rejected
            RateLimitError: If the explorer keeps rate limiting
            ExplorerConnectionError: If the request cannot complete
            CircuitOpenError: If the circuit breaker is open
        """
        pass

    @abstractmethod
    async def fetch_token_transactions(
        self,
        address: str,
        page: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[RawExplorerTx]:
        """Fetch one page of ERC-20 token transfers, newest first."""
        pass

    @abstractmethod
    def get_source_name(self) -> str:
        """Source identifier (e.g. 'arbiscan', 'mock')."""
        pass

    async def fetch_all_native_transactions(
        self, address: str, cutoff_timestamp: Optional[int] = None
    ) -> List[RawExplorerTx]:
        """All native transactions since ``cutoff_timestamp`` (unix seconds)."""
        return await self._fetch_all(
            self.fetch_native_transactions, address, cutoff_timestamp, kind="native"
        )

    async def fetch_all_token_transactions(
        self, address: str, cutoff_timestamp: Optional[int] = None
    ) -> List[RawExplorerTx]:
        """All token transfers since ``cutoff_timestamp`` (unix seconds)."""
        return await self._fetch_all(
            self.fetch_token_transactions, address, cutoff_timestamp, kind="token"
        )

    async def _fetch_all(
        self,
        fetch_page,
        address: str,
        cutoff_timestamp: Optional[int],
        kind: str,
    ) -> List[RawExplorerTx]:
        """
        Page through an address's history, newest first.

        Stops on an empty page, a short page, or once the oldest record of a
        page is older than the cutoff. Records older than the cutoff are
        dropped from the result.
        """
        page_size = self.config.page_size
        transactions: List[RawExplorerTx] = []
        page = 1

        logger.info(
            "explorer.paginate.started",
            kind=kind,
            address=address,
            cutoff_timestamp=cutoff_timestamp,
        )

        while True:
            txs = await fetch_page(address, page=page, offset=page_size)
            if not txs:
                break

            transactions.extend(txs)
            logger.debug(
                "explorer.paginate.page",
                kind=kind,
                address=address,
                page=page,
                fetched=len(txs),
                total=len(transactions),
            )

            if cutoff_timestamp and txs[-1].time_stamp < cutoff_timestamp:
                break

            if len(txs) < page_size:
                break

            await asyncio.sleep(self.config.page_delay)
            page += 1

        if cutoff_timestamp:
            filtered = [tx for tx in transactions if tx.time_stamp >= cutoff_timestamp]
        else:
            filtered = transactions

        logger.info(
            "explorer.paginate.completed",
            kind=kind,
            address=address,
            pages=page,
            fetched=len(transactions),
            kept=len(filtered),
        )
        return filtered


class ExplorerError(Exception):
    """Base exception for block explorer errors."""

    pass


class InvalidApiKeyError(ExplorerError):
    """Raised when the explorer rejects the API key. Never retried."""

    pass


class RateLimitError(ExplorerError):
    """Raised when the explorer rate limits the caller."""

    pass


class ExplorerConnectionError(ExplorerError):
    """Raised when a request fails to complete (network error or timeout)."""

    pass


class ExplorerResponseError(ExplorerError):
    """Raised when the explorer returns a body that cannot be parsed."""

    pass


class ExplorerConfigError(ExplorerError):
    """Raised when the explorer client cannot be built (e.g. no API key)."""

    pass
