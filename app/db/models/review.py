"""Review and incident models for firm intelligence."""

from datetime import date, datetime, timezone
from typing import Optional
from sqlalchemy import JSON, Date, DateTime, ForeignKey, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class FirmReview(Base):
    """
    A public review of a firm, optionally classified.

    Classification (category, severity, ai_summary) is written by the
    external classifier; incident detection only reads it.
    """

    __tablename__ = "firm_reviews"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    firm_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("firms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    source: Mapped[str] = mapped_column(String(50), nullable=False, default="trustpilot")
    rating: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    title: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    body: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    review_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)

    category: Mapped[Optional[str]] = mapped_column(
        String(50), nullable=True, index=True, comment="Classifier category"
    )
    severity: Mapped[Optional[str]] = mapped_column(
        String(10), nullable=True, comment="low, medium or high"
    )
    ai_summary: Mapped[Optional[str]] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_firm_reviews_firm_date", "firm_id", "review_date"),
    )

    def __repr__(self) -> str:
        return (
            f"<FirmReview(id={self.id}, firm_id={self.firm_id}, "
            f"category={self.category}, date={self.review_date})>"
        )


class WeeklyIncident(Base):
    """An incident detected for a firm in one ISO week."""

    __tablename__ = "weekly_incidents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)

    firm_id: Mapped[str] = mapped_column(
        String(100),
        ForeignKey("firms.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    week_number: Mapped[int] = mapped_column(Integer, nullable=False)
    year: Mapped[int] = mapped_column(Integer, nullable=False)

    incident_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(10), nullable=False)
    title: Mapped[str] = mapped_column(String(500), nullable=False)
    summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    review_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    affected_users: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    review_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
        default=lambda: datetime.now(timezone.utc),
    )

    __table_args__ = (
        Index("idx_weekly_incidents_firm_week", "firm_id", "year", "week_number"),
    )

    def __repr__(self) -> str:
        return (
            f"<WeeklyIncident(firm_id={self.firm_id}, {self.year}-W{self.week_number}, "
            f"type={self.incident_type}, severity={self.severity})>"
        )
