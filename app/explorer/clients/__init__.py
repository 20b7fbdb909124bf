"""Block explorer client implementations."""

from typing import Optional

from app.core.config import get_settings
from app.explorer.clients.arbiscan import ArbiscanClient
from app.explorer.clients.base import (
    BaseExplorerClient,
    ExplorerConfigError,
    ExplorerConnectionError,
    ExplorerError,
    ExplorerResponseError,
    InvalidApiKeyError,
    RateLimitError,
    RawExplorerTx,
)
from app.explorer.clients.mock_client import MockExplorerClient
from app.explorer.config import ExplorerConfig, get_explorer_config


def get_explorer_client(config: Optional[ExplorerConfig] = None) -> BaseExplorerClient:
    """
    Build the explorer client selected by ``EXPLORER_CLIENT``.

    Raises:
        ExplorerConfigError: If the Arbiscan client is selected without a key
    """
    config = config or get_explorer_config()
    if get_settings().EXPLORER_CLIENT == "mock":
        return MockExplorerClient(config)
    return ArbiscanClient(config)


__all__ = [
    "ArbiscanClient",
    "BaseExplorerClient",
    "ExplorerConfigError",
    "ExplorerConnectionError",
    "ExplorerError",
    "ExplorerResponseError",
    "InvalidApiKeyError",
    "MockExplorerClient",
    "RateLimitError",
    "RawExplorerTx",
    "get_explorer_client",
]
