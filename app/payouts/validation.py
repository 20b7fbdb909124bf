"""Reconciliation between the JSON archive and the realtime payout table."""

from typing import Any, Dict, Optional

import structlog
from sqlalchemy.ext.asyncio import AsyncSession

from app.db.unit_of_work import UnitOfWork
from app.payouts.archive import PayoutArchive
from app.payouts.processor import month_bounds_utc

logger = structlog.get_logger(__name__)


async def validate_month_data(
    firm_id: str,
    year_month: str,
    archive: Optional[PayoutArchive] = None,
    session: Optional[AsyncSession] = None,
) -> Dict[str, Any]:
    """
    Compare archived tx hashes with database rows for the same UTC month.

    The database only retains the realtime window, so the comparison is
    meaningful for the current month. ``match_rate`` is the share of
    database rows also present in the archive, None when the database has
    no rows for the month.
    """
    archive = archive or PayoutArchive()
    start, end = month_bounds_utc(year_month)

    month = archive.load_month_data(firm_id, year_month)
    archived = month.transactions if month else []
    archived_hashes = {t.tx_hash for t in archived}

    try:
        async with UnitOfWork(session=session) as uow:
            rows = await uow.payouts.get_since(start, firm_id=firm_id, until=end)
    except Exception as e:
        logger.warning(
            "validation.db_query_failed", firm_id=firm_id, year_month=year_month, error=str(e)
        )
        return {
            "firm_id": firm_id,
            "year_month": year_month,
            "json_count": len(archived_hashes),
            "db_count": 0,
            "missing_in_json": [],
            "missing_in_db": [{"tx_hash": t.tx_hash} for t in archived],
            "match_rate": None,
            "error": str(e),
        }

    db_hashes = {row.tx_hash for row in rows}
    missing_in_json = [
        {"tx_hash": row.tx_hash, "amount": row.amount}
        for row in rows
        if row.tx_hash not in archived_hashes
    ]
    missing_in_db = [{"tx_hash": t.tx_hash} for t in archived if t.tx_hash not in db_hashes]
    match_rate = (len(rows) - len(missing_in_json)) / len(rows) if rows else None

    result = {
        "firm_id": firm_id,
        "year_month": year_month,
        "json_count": len(archived_hashes),
        "db_count": len(rows),
        "missing_in_json": missing_in_json,
        "missing_in_db": missing_in_db,
        "match_rate": match_rate,
    }
    logger.info(
        "validation.completed",
        firm_id=firm_id,
        year_month=year_month,
        json_count=result["json_count"],
        db_count=result["db_count"],
        match_rate=match_rate,
    )
    return result
