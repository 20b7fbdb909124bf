"""Repositories for the realtime payout tables."""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select

from app.db.models.payout import RecentPayout, TraderRecentPayout
from app.db.repository import BaseRepository

_PAYOUT_UPDATE_COLUMNS = (
    "amount",
    "payment_method",
    "timestamp",
    "from_address",
    "to_address",
)


class PayoutRepository(BaseRepository[RecentPayout]):
    """Repository for firm payouts (recent_payouts)."""

    async def upsert_payouts(self, payouts: Sequence[Dict[str, Any]]) -> int:
        """Insert or refresh payouts keyed by tx_hash."""
        return await self.upsert_many(
            payouts,
            conflict_column="tx_hash",
            update_columns=("firm_id", *_PAYOUT_UPDATE_COLUMNS),
        )

    async def get_by_tx_hash(self, tx_hash: str) -> Optional[RecentPayout]:
        return await self.get_by_field("tx_hash", tx_hash)

    async def get_since(
        self,
        since: datetime,
        firm_id: Optional[str] = None,
        until: Optional[datetime] = None,
        order_by: str = "timestamp",
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[RecentPayout]:
        """
        Payouts at or after ``since``, optionally for one firm.

        Args:
            since: Inclusive lower bound on timestamp
            firm_id: Restrict to one firm
            until: Inclusive upper bound on timestamp
            order_by: 'timestamp' or 'amount'
            descending: Sort direction
            limit: Maximum rows to return
        """
        query = select(self.model).where(self.model.timestamp >= since)
        if firm_id is not None:
            query = query.where(self.model.firm_id == firm_id)
        if until is not None:
            query = query.where(self.model.timestamp <= until)

        column = getattr(self.model, order_by)
        query = query.order_by(column.desc() if descending else column.asc())
        if limit:
            query = query.limit(limit)

        result = await self._execute(query)
        return list(result.scalars().all())

    async def delete_older_than(self, hours: int) -> int:
        """Delete payouts older than ``hours``; returns the number removed."""
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        return await self.delete_all(timestamp__lt=cutoff)


class TraderPayoutRepository(BaseRepository[TraderRecentPayout]):
    """Repository for trader payouts (trader_recent_payouts)."""

    async def upsert_payouts(self, payouts: Sequence[Dict[str, Any]]) -> int:
        return await self.upsert_many(
            payouts,
            conflict_column="tx_hash",
            update_columns=("wallet_address", *_PAYOUT_UPDATE_COLUMNS),
        )

    async def get_for_wallet(self, wallet_address: str) -> List[TraderRecentPayout]:
        query = (
            select(self.model)
            .where(self.model.wallet_address == wallet_address.lower())
            .order_by(self.model.timestamp.desc())
        )
        result = await self._execute(query)
        return list(result.scalars().all())

    async def delete_older_than(self, hours: int) -> int:
        cutoff = datetime.now(timezone.utc) - timedelta(hours=hours)
        return await self.delete_all(timestamp__lt=cutoff)
