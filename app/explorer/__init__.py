"""Block explorer (Etherscan V2 / Arbiscan) access."""

from app.explorer.clients import (
    ArbiscanClient,
    BaseExplorerClient,
    MockExplorerClient,
    RawExplorerTx,
    get_explorer_client,
)

__all__ = [
    "ArbiscanClient",
    "BaseExplorerClient",
    "MockExplorerClient",
    "RawExplorerTx",
    "get_explorer_client",
]
