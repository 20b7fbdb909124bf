"""
Public trader routes.

Profiles and the leaderboard are served from persisted data only (trader
archive plus ``trader_recent_payouts``), behind the origin check and rate
limit.
"""

from fastapi import APIRouter, Depends, HTTPException, status

from app.api.security import public_access
from app.db.unit_of_work import UnitOfWork, get_uow
from app.payouts.archive import TraderPayoutArchive
from app.traders.schemas import LeaderboardResponse, TraderResponse
from app.traders.service import build_leaderboard, trader_with_stats

router = APIRouter(prefix="/api", tags=["traders"], dependencies=[Depends(public_access)])


def get_trader_archive() -> TraderPayoutArchive:
    return TraderPayoutArchive()


@router.get("/trader/{handle}", response_model=TraderResponse)
async def get_trader(
    handle: str,
    uow: UnitOfWork = Depends(get_uow),
    archive: TraderPayoutArchive = Depends(get_trader_archive),
):
    """A public trader profile with verified payout statistics."""
    profile = await uow.traders.get_public_by_handle(handle)
    if profile is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Trader not found")
    return {"trader": await trader_with_stats(uow, archive, profile)}


@router.get("/leaderboard", response_model=LeaderboardResponse)
async def leaderboard(
    uow: UnitOfWork = Depends(get_uow),
    archive: TraderPayoutArchive = Depends(get_trader_archive),
):
    """Public traders ranked by total verified payout."""
    return {"traders": await build_leaderboard(uow, archive)}
