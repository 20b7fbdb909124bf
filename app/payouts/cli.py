"""
Payout pipeline CLI commands.

Runs the syncs, the monthly archive update, archive validation, firm
loading and incident detection from the command line.
"""

import asyncio
import sys
from datetime import date
from typing import List, Optional

import structlog

from app.db.init import load_firms
from app.db.unit_of_work import UnitOfWork
from app.explorer.clients import get_explorer_client
from app.intelligence.incidents import run_weekly_incidents
from app.payouts.archive import (
    PayoutArchive,
    TraderPayoutArchive,
    update_firm_month,
    update_trader_month,
)
from app.payouts.config import get_payout_config
from app.payouts.processor import is_year_month
from app.payouts.sync import PayoutSyncService
from app.payouts.traders import TraderSyncService
from app.payouts.validation import validate_month_data

logger = structlog.get_logger()

USAGE = """Usage: python -m app.payouts.cli <command> [options]

Commands:
  sync                       Sync realtime payouts for every firm
  traders                    Sync realtime payouts for every trader wallet
  update-monthly [--firm ID] Rebuild the current month archive file(s)
  update-trader-monthly [--wallet ADDRESS]
                             Rebuild the current month file(s) of trader wallets
  validate FIRM YYYY-MM      Compare a month archive with the database
  load-firms [PATH]          Upsert firms from the seed file
  incidents [YYYY-MM-DD]     Detect incidents for the week containing the date
                             (last complete week if omitted)

Examples:
  python -m app.payouts.cli sync
  python -m app.payouts.cli update-monthly --firm fundednext
  python -m app.payouts.cli validate fundednext 2025-01
"""


def print_sync_summary(title: str, summary: dict, count_key: str):
    print(f"\n=== {title} ===\n")
    print(f"Run ID: {summary['run_id']}")
    print(f"{count_key.capitalize()}: {summary[count_key]}")
    print(f"Payouts: {summary['total_payouts']}")
    print(f"Deleted: {summary['deleted']}")
    print(f"Duration: {summary['duration_ms']}ms")
    if summary["errors"]:
        print(f"\n--- Errors ({len(summary['errors'])}) ---")
        for error in summary["errors"]:
            target = error.get("firm_id") or error.get("wallet")
            print(f"{target}: {error['error']}")
    print()


async def sync_command() -> int:
    summary = await PayoutSyncService().sync_all_firms()
    print_sync_summary("Firm Payout Sync", summary, "firms")
    return 1 if summary["errors"] else 0


async def traders_command() -> int:
    summary = await TraderSyncService().sync_all_traders()
    print_sync_summary("Trader Payout Sync", summary, "wallets")
    return 1 if summary["errors"] else 0


async def update_monthly_command(firm_id: Optional[str] = None) -> int:
    """Rebuild the current month file for one firm or all firms."""
    client = get_explorer_client()
    archive = PayoutArchive()
    config = get_payout_config()

    async with UnitOfWork() as uow:
        firms = await uow.firms.list_firms()
    if firm_id:
        firms = [f for f in firms if f.id == firm_id]
        if not firms:
            print(f"Unknown firm: {firm_id}")
            return 1

    failed = 0
    for firm in firms:
        try:
            result = await update_firm_month(firm, client, archive, config)
        except Exception as e:
            failed += 1
            logger.error("archive.update.failed", firm_id=firm.id, error=str(e))
            print(f"{firm.id}: FAILED ({e})")
            continue

        state = f"+{result['new_payouts']} payouts" if result["changed"] else "unchanged"
        print(f"{firm.id} {result['year_month']}: {result['payouts']} payouts, {state}")
        await asyncio.sleep(config.firm_delay)

    return 1 if failed else 0


async def update_trader_monthly_command(wallet: Optional[str] = None) -> int:
    """Rebuild the current month file for one trader wallet or all linked wallets."""
    client = get_explorer_client()
    archive = TraderPayoutArchive()
    config = get_payout_config()

    if wallet:
        wallets = [wallet.lower()]
    else:
        async with UnitOfWork() as uow:
            profiles = await uow.traders.get_with_wallet()
        wallets = [p.wallet_address for p in profiles if p.wallet_address]

    failed = 0
    for address in wallets:
        try:
            result = await update_trader_month(address, client, archive, config)
        except Exception as e:
            failed += 1
            logger.error("archive.trader_update.failed", wallet=address, error=str(e))
            print(f"{address}: FAILED ({e})")
            continue

        state = f"+{result['new_payouts']} payouts" if result["changed"] else "unchanged"
        print(f"{address} {result['year_month']}: {result['payouts']} payouts, {state}")
        await asyncio.sleep(config.trader_delay)

    print(f"Wallets: {len(wallets)}, failed: {failed}")
    return 1 if failed else 0


async def validate_command(firm_id: str, year_month: str) -> int:
    report = await validate_month_data(firm_id, year_month)
    print(f"\n=== Validation {firm_id} {year_month} ===\n")
    print(f"JSON payouts: {report['json_count']}")
    print(f"DB payouts: {report['db_count']}")
    print(f"Missing in JSON: {len(report['missing_in_json'])}")
    print(f"Missing in DB: {len(report['missing_in_db'])}")
    rate = report["match_rate"]
    print(f"Match rate: {'N/A' if rate is None else f'{rate:.1%}'}")
    if report.get("error"):
        print(f"Error: {report['error']}")
        return 1
    print()
    return 0


async def load_firms_command(path: Optional[str] = None) -> int:
    count = await load_firms(path)
    print(f"Loaded {count} firms")
    return 0


async def incidents_command(day: Optional[str] = None) -> int:
    week_start = date.fromisoformat(day) if day else None
    result = await run_weekly_incidents(week_start=week_start)
    print(f"\n=== Incidents {result['year']}-W{result['week_number']:02d} ===\n")
    for firm in result["firms"]:
        print(f"{firm['firm_id']}: {firm['incidents']} incidents")
    for error in result["errors"]:
        print(f"{error['firm_id']}: FAILED ({error['error']})")
    print()
    return 1 if result["errors"] else 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    args = list(sys.argv[1:] if argv is None else argv)
    if not args:
        print(USAGE)
        return 1

    command, rest = args[0], args[1:]

    try:
        if command == "sync":
            return asyncio.run(sync_command())
        elif command == "traders":
            return asyncio.run(traders_command())
        elif command == "update-monthly":
            firm_id = None
            if rest[:1] == ["--firm"]:
                if len(rest) < 2:
                    print("--firm requires a firm id")
                    return 1
                firm_id = rest[1]
            return asyncio.run(update_monthly_command(firm_id))
        elif command == "update-trader-monthly":
            wallet = None
            if rest[:1] == ["--wallet"]:
                if len(rest) < 2:
                    print("--wallet requires an address")
                    return 1
                wallet = rest[1]
            return asyncio.run(update_trader_monthly_command(wallet))
        elif command == "validate":
            if len(rest) != 2:
                print("Usage: python -m app.payouts.cli validate FIRM YYYY-MM")
                return 1
            if not is_year_month(rest[1]):
                print(f"Invalid month: {rest[1]} (expected YYYY-MM)")
                return 1
            return asyncio.run(validate_command(rest[0], rest[1]))
        elif command == "load-firms":
            return asyncio.run(load_firms_command(rest[0] if rest else None))
        elif command == "incidents":
            return asyncio.run(incidents_command(rest[0] if rest else None))
        else:
            print(f"Unknown command: {command}")
            print(USAGE)
            return 1
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130
    except Exception as e:
        print(f"Error: {str(e)}")
        logger.exception("cli_error", command=command)
        return 1


if __name__ == "__main__":
    sys.exit(main())
