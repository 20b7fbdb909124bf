"""Repository exports."""

from .firm_repository import FirmRepository
from .payout_repository import PayoutRepository, TraderPayoutRepository
from .trader_repository import TraderRepository
from .review_repository import IncidentRepository, ReviewRepository

__all__ = [
    "FirmRepository",
    "PayoutRepository",
    "TraderPayoutRepository",
    "TraderRepository",
    "ReviewRepository",
    "IncidentRepository",
]
