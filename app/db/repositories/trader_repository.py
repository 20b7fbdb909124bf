"""Trader profile repository."""

from typing import List, Optional

from sqlalchemy import func, select

from app.db.models.trader import TraderProfile
from app.db.repository import BaseRepository


class TraderRepository(BaseRepository[TraderProfile]):
    """Repository for TraderProfile model."""

    async def get_with_wallet(self) -> List[TraderProfile]:
        """Profiles that have linked a wallet address."""
        query = (
            select(self.model)
            .where(self.model.wallet_address.isnot(None))
            .order_by(self.model.id)
        )
        result = await self._execute(query)
        return list(result.scalars().all())

    async def get_public_by_handle(self, handle: str) -> Optional[TraderProfile]:
        """Case-insensitive handle lookup among public profiles."""
        query = self._public().where(func.lower(self.model.handle) == handle.lower())
        result = await self._execute(query)
        return result.scalars().first()

    async def list_public(self) -> List[TraderProfile]:
        """Profiles with a wallet and a display name (leaderboard entries)."""
        result = await self._execute(self._public().order_by(self.model.id))
        return list(result.scalars().all())

    def _public(self):
        return select(self.model).where(
            self.model.wallet_address.isnot(None),
            self.model.display_name.isnot(None),
        )
