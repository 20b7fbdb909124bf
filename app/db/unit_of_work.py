"""Unit of Work pattern for managing database transactions."""

from typing import AsyncGenerator, Optional

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.db import base as db_base
from app.db.models import (
    Firm,
    FirmReview,
    RecentPayout,
    TraderProfile,
    TraderRecentPayout,
    WeeklyIncident,
)
from app.db.repositories import (
    FirmRepository,
    IncidentRepository,
    PayoutRepository,
    ReviewRepository,
    TraderPayoutRepository,
    TraderRepository,
)


class UnitOfWork:
    """
    Unit of Work pattern implementation for managing database transactions.

    All repositories inside one context share a session and transaction.

    Usage:
        async with UnitOfWork() as uow:
            firm = await uow.firms.get_by_id("fundednext")
            await uow.payouts.upsert_payouts(rows)
            await uow.firms.update_last_payout(firm.id, rows[0])
    """

    def __init__(self, session: Optional[AsyncSession] = None):
        """
        Initialize Unit of Work.

        Args:
            session: Optional existing session (useful for testing)
        """
        self._session = session
        self._owned_session = session is None

        self.firms: FirmRepository = None  # type: ignore
        self.payouts: PayoutRepository = None  # type: ignore
        self.trader_payouts: TraderPayoutRepository = None  # type: ignore
        self.traders: TraderRepository = None  # type: ignore
        self.reviews: ReviewRepository = None  # type: ignore
        self.incidents: IncidentRepository = None  # type: ignore

    @property
    def session(self) -> AsyncSession:
        assert self._session is not None, "Unit of work not entered"
        return self._session

    async def __aenter__(self):
        if self._owned_session:
            self._session = db_base.AsyncSessionLocal()

        assert self._session is not None, "Session must be initialized"
        self.firms = FirmRepository(Firm, self._session)
        self.payouts = PayoutRepository(RecentPayout, self._session)
        self.trader_payouts = TraderPayoutRepository(TraderRecentPayout, self._session)
        self.traders = TraderRepository(TraderProfile, self._session)
        self.reviews = ReviewRepository(FirmReview, self._session)
        self.incidents = IncidentRepository(WeeklyIncident, self._session)

        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type is not None:
            await self.rollback()
        elif self._owned_session:
            await self.commit()

        if self._owned_session and self._session:
            await self._session.close()

    async def commit(self):
        """Commit the current transaction."""
        if self._session:
            await self._session.commit()

    async def rollback(self):
        """Rollback the current transaction."""
        if self._session:
            await self._session.rollback()

    async def flush(self):
        """Flush pending changes to the database without committing."""
        if self._session:
            await self._session.flush()


async def get_uow(
    session: AsyncSession = Depends(db_base.get_db),
) -> AsyncGenerator[UnitOfWork, None]:
    """FastAPI dependency yielding a unit of work over the request session."""
    async with UnitOfWork(session=session) as uow:
        yield uow
