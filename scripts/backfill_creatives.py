#!/usr/bin/env python
"""
Backfill creatives for ads stored without a creative_url.

Mechanism:
- For each active ad account (or only --account):
  - Take ads with no creative_url, newest first, up to the remaining --limit
  - Fetch the creative of each ad; prefer the page post's full_picture
  - Write non-empty fields only, existing values are never cleared

Usage:
  python scripts/backfill_creatives.py
  python scripts/backfill_creatives.py --limit 100 --dry-run
  python scripts/backfill_creatives.py --account 1234567890
"""
import argparse
import asyncio
import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from adsync.core.config import settings  # noqa: E402
from adsync.core.database import get_session  # noqa: E402
from adsync.core.logger import setup_logging  # noqa: E402
from adsync.schemas.sync import SyncReport  # noqa: E402
from adsync.services.meta import MetaAPI, MetaFetcher, MetaWriter, MetaSyncService  # noqa: E402

logger = setup_logging(settings.LOG_LEVEL, settings.LOG_DIR)


async def backfill(limit: int, dry_run: bool, account_id: str = None) -> SyncReport:
    db = get_session()
    api = MetaAPI()
    try:
        writer = MetaWriter(db, settings.ORG_ID)
        service = MetaSyncService(MetaFetcher(api), writer)

        accounts = writer.get_accounts()
        if account_id:
            account_id = account_id.replace("act_", "")
            accounts = [a for a in accounts if a.platform_account_id == account_id]
        if not accounts:
            logger.warning("No matching active ad accounts.")
            return SyncReport()

        report = SyncReport()
        remaining = limit
        for account in accounts:
            if remaining <= 0:
                break
            pending = len(writer.ads_missing_creative(account, limit=remaining))
            try:
                result = await service.backfill_creatives(account, limit=remaining, dry_run=dry_run)
            except Exception as e:
                logger.error(f"[ERROR] {account.name} ({account.platform_account_id}): {e}")
                continue
            report = report.merge(result)
            remaining -= pending
        return report
    finally:
        await api.close()
        db.close()


def main():
    ap = argparse.ArgumentParser(description=__doc__, formatter_class=argparse.RawDescriptionHelpFormatter)
    ap.add_argument("--limit", type=int, default=settings.SYNC_CREATIVE_LIMIT)
    ap.add_argument("--dry-run", action="store_true")
    ap.add_argument("--account", help="Only this platform account id")
    args = ap.parse_args()

    missing = settings.missing_required()
    if missing:
        logger.error(f"Missing required configuration: {', '.join(missing)}")
        sys.exit(1)

    report = asyncio.run(backfill(max(1, args.limit), args.dry_run, args.account))
    logger.info(f"Done. Creatives updated: {report.creatives} | Errors: {report.errors}")


if __name__ == "__main__":
    main()
