"""Firm repository with payout metadata helpers."""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sqlalchemy import select

from app.db.models.firm import Firm
from app.db.repository import BaseRepository


class FirmRepository(BaseRepository[Firm]):
    """Repository for Firm model."""

    async def list_firms(self) -> List[Firm]:
        """All firms ordered by name."""
        result = await self._execute(select(self.model).order_by(self.model.name))
        return list(result.scalars().all())

    async def upsert_firm(self, firm_data: Dict[str, Any]) -> Firm:
        """
        Create a firm or refresh its descriptive fields.

        Payout metadata is never touched here so reloading the firms file
        cannot move last_payout_at backwards.
        """
        existing = await self.get_by_id(firm_data["id"])
        if existing is None:
            return await self.create(**firm_data)

        fields = {
            key: value
            for key, value in firm_data.items()
            if key in ("name", "logo", "website", "addresses", "timezone")
        }
        return await self.update(existing.id, **fields)  # type: ignore[return-value]

    async def update_last_payout(
        self, firm_id: str, latest_payout: Dict[str, Any]
    ) -> bool:
        """
        Record the firm's newest payout if it is newer than the stored one.

        Always refreshes last_synced_at.

        Args:
            firm_id: Firm identifier
            latest_payout: Payout row (tx_hash, amount, payment_method, timestamp)

        Returns:
            True if the last payout fields were advanced
        """
        firm = await self.get_by_id(firm_id)
        if firm is None:
            return False

        now = datetime.now(timezone.utc)
        existing = _as_utc(firm.last_payout_at)
        candidate = _as_utc(latest_payout["timestamp"])

        if existing is None or candidate > existing:
            await self.update(
                firm_id,
                last_payout_at=candidate,
                last_payout_amount=latest_payout["amount"],
                last_payout_tx_hash=latest_payout["tx_hash"],
                last_payout_method=latest_payout["payment_method"],
                last_synced_at=now,
                updated_at=now,
            )
            return True

        await self.update(firm_id, last_synced_at=now, updated_at=now)
        return False


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    # SQLite drops tzinfo on round trip
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
