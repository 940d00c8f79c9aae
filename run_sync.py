#!/usr/bin/env python3
"""
Meta ads sync

Usage:
  python run_sync.py                               # yesterday
  python run_sync.py --days 7                      # last 7 days, ending yesterday
  python run_sync.py --from 2026-01-01 --to 2026-01-31
  python run_sync.py --backfill 90                 # 90 days in 14-day batches
  python run_sync.py --schedule                    # daily job at SYNC_TIME
"""
import argparse
import asyncio
import sys
from datetime import date
from typing import Optional, List

from dotenv import load_dotenv

load_dotenv()

from adsync.core.config import settings  # noqa: E402
from adsync.core.logger import setup_logging  # noqa: E402
from adsync.models.enums import InsightLevel  # noqa: E402


def _date(value: str) -> date:
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"invalid date {value!r}, expected YYYY-MM-DD")


def _levels(value: str) -> List[str]:
    levels = [part.strip() for part in value.split(",") if part.strip()]
    try:
        return [InsightLevel.parse(level).value for level in levels]
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Sync Meta ads structure and insights into the database")
    parser.add_argument("--days", type=int, help="Sync the last N days ending yesterday")
    parser.add_argument("--from", dest="date_from", type=_date, help="Range start (YYYY-MM-DD)")
    parser.add_argument("--to", dest="date_to", type=_date, help="Range end (YYYY-MM-DD)")
    parser.add_argument("--backfill", type=int, help="Backfill the last N days in batches, without breakdowns")
    parser.add_argument("--levels", type=_levels, help="Comma separated insight levels (account,campaign,ad_set,ad)")
    parser.add_argument("--skip-breakdowns", action="store_true", help="Do not sync breakdowns")
    parser.add_argument("--force-structure", action="store_true", help="Re-sync structure even if synced today")
    parser.add_argument("--schedule", action="store_true", help="Run the daily sync on a schedule")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    modes = [args.days is not None, bool(args.date_from or args.date_to), args.backfill is not None, args.schedule]
    if sum(modes) > 1:
        parser.error("--days, --from/--to, --backfill and --schedule are mutually exclusive")
    if args.backfill is not None and args.backfill < 1:
        parser.error("--backfill must be at least 1")

    # Imported after argument parsing so --help works without a database driver
    from adsync.tasks.sync_tasks import resolve_sync_plan, run_meta_sync

    plan = None
    if args.backfill is None and not args.schedule:
        try:
            plan = resolve_sync_plan(
                days=args.days,
                date_from=args.date_from,
                date_to=args.date_to,
                levels=args.levels,
                skip_breakdowns=args.skip_breakdowns,
                force_structure=args.force_structure,
            )
        except ValueError as e:
            parser.error(str(e))

    logger = setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)

    missing = settings.missing_required()
    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        return 1

    logger.info("=" * 60)
    logger.info(f"{settings.APP_NAME} - Meta ads sync (API {settings.META_API_VERSION}, org {settings.ORG_ID})")
    logger.info("=" * 60)

    if args.schedule:
        from adsync.tasks.scheduler import start_scheduler
        start_scheduler()
        return 0

    asyncio.run(run_meta_sync(
        plan=plan,
        backfill_days=args.backfill,
        force_structure=args.force_structure,
        levels=args.levels,
    ))
    # Per-account failures are reported in the audit row, not the exit code
    return 0


if __name__ == "__main__":
    sys.exit(main())
