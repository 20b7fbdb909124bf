"""
Mock explorer client for development.

Generates deterministic payout history for any address so the sync
pipeline, archive and API can run without an API key.
"""

import asyncio
import hashlib
import random
import time
from typing import List, Optional

from app.explorer.clients.base import BaseExplorerClient, ExplorerConnectionError, RawExplorerTx
from app.explorer.config import ExplorerConfig

_TOKENS = (("USDC", 6), ("USDT", 6), ("RISEPAY", 18))


class MockExplorerClient(BaseExplorerClient):
    """
    Mock client that emits outgoing payouts from the queried address.

    One payout is generated per ``interval_seconds`` slot, aligned to the
    unix epoch, so the same slot always yields the same hash and amount and
    repeated syncs upsert instead of duplicating.
    """

    def __init__(
        self,
        config: Optional[ExplorerConfig] = None,
        interval_seconds: int = 3 * 3600,
        history_days: int = 400,
        failure_rate: float = 0.0,
        latency_ms: int = 0,
    ):
        """
        Initialize mock client.

        Args:
            config: Explorer configuration (only page_size is used)
            interval_seconds: Seconds between generated payouts
            history_days: How far back history goes
            failure_rate: Probability of a simulated connection failure
            latency_ms: Simulated network latency in milliseconds
        """
        super().__init__(config)
        self.interval_seconds = interval_seconds
        self.history_days = history_days
        self.failure_rate = failure_rate
        self.latency_ms = latency_ms

    def get_source_name(self) -> str:
        return "mock"

    async def fetch_native_transactions(
        self,
        address: str,
        page: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[RawExplorerTx]:
        return await self._page(address, native=True, page=page, offset=offset)

    async def fetch_token_transactions(
        self,
        address: str,
        page: Optional[int] = None,
        offset: Optional[int] = None,
    ) -> List[RawExplorerTx]:
        return await self._page(address, native=False, page=page, offset=offset)

    async def _page(
        self, address: str, native: bool, page: Optional[int], offset: Optional[int]
    ) -> List[RawExplorerTx]:
        if self.latency_ms:
            await asyncio.sleep(self.latency_ms / 1000)
        if self.failure_rate and random.random() < self.failure_rate:
            raise ExplorerConnectionError("Simulated explorer connection failure")

        history = self._history(address.lower(), native)
        size = offset or len(history)
        start = ((page or 1) - 1) * size
        return history[start : start + size]

    def _history(self, address: str, native: bool) -> List[RawExplorerTx]:
        now = int(time.time())
        latest_slot = now // self.interval_seconds
        earliest_slot = (now - self.history_days * 86400) // self.interval_seconds

        txs: List[RawExplorerTx] = []
        for slot in range(latest_slot, earliest_slot, -1):
            digest = hashlib.sha256(f"{address}:{slot}".encode()).hexdigest()
            rng = random.Random(digest)
            # Roughly one slot in eight is a native ETH payout
            is_native = rng.random() < 0.125
            if is_native != native:
                continue

            timestamp = slot * self.interval_seconds + rng.randrange(self.interval_seconds)
            if timestamp > now:
                continue

            recipient = "0x" + hashlib.sha256(f"trader:{digest}".encode()).hexdigest()[:40]
            usd = round(rng.lognormvariate(7.0, 1.0), 2)

            if native:
                wei = int(usd / 2500 * 10**18)
                txs.append(
                    RawExplorerTx(
                        hash="0x" + digest,
                        from_address=address,
                        to_address=recipient,
                        value=str(wei),
                        time_stamp=timestamp,
                    )
                )
            else:
                symbol, decimals = rng.choice(_TOKENS)
                txs.append(
                    RawExplorerTx(
                        hash="0x" + digest,
                        from_address=address,
                        to_address=recipient,
                        value=str(int(usd * 10**decimals)),
                        time_stamp=timestamp,
                        token_symbol=symbol,
                        token_decimal=str(decimals),
                    )
                )

        return txs
