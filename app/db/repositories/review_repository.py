"""Review and incident repositories."""

from datetime import date
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import select

from app.db.models.review import FirmReview, WeeklyIncident
from app.db.repository import BaseRepository


class ReviewRepository(BaseRepository[FirmReview]):
    """Repository for FirmReview model."""

    async def get_for_firm(
        self,
        firm_id: str,
        start_date: date,
        end_date: Optional[date] = None,
        categories: Optional[Sequence[str]] = None,
    ) -> List[FirmReview]:
        """
        Reviews for a firm within an inclusive date range.

        Args:
            firm_id: Firm identifier
            start_date: First review date included
            end_date: Last review date included (open-ended if None)
            categories: Restrict to these classifier categories
        """
        query = select(self.model).where(
            self.model.firm_id == firm_id,
            self.model.review_date >= start_date,
        )
        if end_date is not None:
            query = query.where(self.model.review_date <= end_date)
        if categories is not None:
            query = query.where(self.model.category.in_(list(categories)))

        result = await self._execute(query.order_by(self.model.review_date))
        return list(result.scalars().all())


class IncidentRepository(BaseRepository[WeeklyIncident]):
    """Repository for WeeklyIncident model."""

    async def replace_week(
        self,
        firm_id: str,
        year: int,
        week_number: int,
        incidents: Sequence[Dict[str, Any]],
    ) -> int:
        """Delete the firm's incidents for a week and insert the new set."""
        await self.delete_all(firm_id=firm_id, year=year, week_number=week_number)
        for incident in incidents:
            self.session.add(self.model(**incident))
        await self.session.flush()
        return len(incidents)

    async def get_for_firm(self, firm_id: str) -> List[WeeklyIncident]:
        """Incidents for a firm, newest week first."""
        query = (
            select(self.model)
            .where(self.model.firm_id == firm_id)
            .order_by(self.model.year.desc(), self.model.week_number.desc())
        )
        result = await self._execute(query)
        return list(result.scalars().all())
