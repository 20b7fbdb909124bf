"""Database models for the payout tracker."""

from .firm import Firm
from .payout import RecentPayout, TraderRecentPayout
from .trader import TraderProfile
from .review import FirmReview, WeeklyIncident

__all__ = [
    "Firm",
    "RecentPayout",
    "TraderRecentPayout",
    "TraderProfile",
    "FirmReview",
    "WeeklyIncident",
]
