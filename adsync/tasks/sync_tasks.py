"""
Meta sync run controller

Resolves the date range of a run, walks the organization's accounts one at
a time and records the run's audit row.
"""
import asyncio
import logging
import time
from datetime import date, timedelta
from typing import Optional, List, Tuple, Callable, Awaitable

from adsync.core.config import settings
from adsync.core.database import get_session
from adsync.models.enums import SyncType
from adsync.schemas.sync import SyncPlan, SyncReport, RunSummary, ErrorDetail
from adsync.services.meta.meta_api import MetaAPI
from adsync.services.meta.meta_fetchers import MetaFetcher
from adsync.services.meta.meta_writer import MetaWriter
from adsync.services.meta.meta_sync import MetaSyncService

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


# ============================================
# Date ranges
# ============================================

def yesterday(today: Optional[date] = None) -> date:
    return (today or date.today()) - timedelta(days=1)


def resolve_sync_plan(
    days: Optional[int] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    today: Optional[date] = None,
    rolling_breakdown_days: Optional[int] = None,
    levels: Optional[List[str]] = None,
    skip_breakdowns: bool = False,
    force_structure: bool = False,
) -> SyncPlan:
    """
    Build the plan for a non-backfill run.

    - explicit range: as given, breakdowns over the whole range ("full")
    - trailing N days: ends yesterday, breakdowns only for the last few days
    - default: yesterday only
    Today is never included by default: its numbers are still moving.
    """
    today = today or date.today()
    end = yesterday(today)

    if date_from or date_to:
        if not (date_from and date_to):
            raise ValueError("--from and --to must be given together")
        if date_from > date_to:
            raise ValueError(f"--from {date_from} is after --to {date_to}")
        return SyncPlan(
            date_start=date_from,
            date_end=date_to,
            sync_type=SyncType.FULL,
            skip_breakdowns=skip_breakdowns,
            force_structure=force_structure,
            levels=levels,
        )

    if days is not None:
        if days < 1:
            raise ValueError("--days must be at least 1")
        b_days = rolling_breakdown_days if rolling_breakdown_days is not None else settings.SYNC_ROLLING_BREAKDOWN_DAYS
        return SyncPlan(
            date_start=today - timedelta(days=days),
            date_end=end,
            sync_type=SyncType.INCREMENTAL,
            skip_breakdowns=skip_breakdowns,
            breakdown_start=today - timedelta(days=b_days),
            force_structure=force_structure,
            levels=levels,
        )

    return SyncPlan(
        date_start=end,
        date_end=end,
        sync_type=SyncType.INCREMENTAL,
        skip_breakdowns=skip_breakdowns,
        force_structure=force_structure,
        levels=levels,
    )


def backfill_windows(total_days: int, batch_days: int, today: Optional[date] = None) -> List[Tuple[date, date]]:
    """
    Split the total_days ending yesterday into inclusive windows of at most
    batch_days, oldest first, with no gaps and no overlaps.
    """
    if total_days < 1 or batch_days < 1:
        raise ValueError("backfill days and batch size must be at least 1")

    last = yesterday(today)
    first = last - timedelta(days=total_days - 1)
    windows = []
    start = first
    while start <= last:
        end = min(start + timedelta(days=batch_days - 1), last)
        windows.append((start, end))
        start = end + timedelta(days=1)
    return windows


# ============================================
# Runs
# ============================================

async def run_sync(
    plan: SyncPlan,
    service: MetaSyncService,
    writer: MetaWriter,
    account_throttle: Optional[float] = None,
    sleep: Optional[SleepFunc] = None,
    summary_view: Optional[str] = None,
) -> RunSummary:
    """
    Sync every active account sequentially, then log the run and refresh the view.

    Args:
        plan: Resolved date range, levels and breakdown policy
        service: Per-account sync service
        writer: Writer used for the account list, the run row and the view
        account_throttle: Seconds to wait between accounts (default: SYNC_ACCOUNT_THROTTLE_SECONDS)
        sleep: Awaitable sleep, injectable for tests
        summary_view: Materialized view to refresh (default: SUMMARY_VIEW_NAME)

    Returns:
        RunSummary for the whole run
    """
    account_throttle = settings.SYNC_ACCOUNT_THROTTLE_SECONDS if account_throttle is None else account_throttle
    sleep = sleep or asyncio.sleep
    started = time.monotonic()

    accounts = writer.get_accounts()
    logger.info(
        f"Starting {plan.sync_type.value} sync for {len(accounts)} accounts "
        f"({plan.date_start} -> {plan.date_end})"
    )

    report = SyncReport()
    for i, account in enumerate(accounts):
        logger.info(f"━━━ [{i + 1}/{len(accounts)}] {account.name} ({account.platform_account_id}) ━━━")
        report = report.merge(await service.sync_account(
            account,
            plan.date_start,
            plan.date_end,
            levels=plan.levels,
            skip_breakdowns=plan.skip_breakdowns,
            breakdown_start=plan.breakdown_start,
            force_structure=plan.force_structure,
        ))
        # Accounts share the organization's rate limit bucket
        if i < len(accounts) - 1 and account_throttle > 0:
            await sleep(account_throttle)

    summary = RunSummary(
        plan=plan,
        report=report,
        duration_ms=int((time.monotonic() - started) * 1000),
    )

    writer.record_sync_run(summary)
    try:
        writer.refresh_summary_view(summary_view or settings.SUMMARY_VIEW_NAME)
        logger.info("Materialized view refreshed")
    except Exception as e:
        logger.error(f"Materialized view refresh failed: {e}")

    logger.info(f"Sync complete in {summary.duration_ms / 1000:.1f}s ({summary.status.value})")
    logger.info(f"  {report.summary_line()}")
    return summary


async def run_backfill(
    total_days: int,
    service: MetaSyncService,
    writer: MetaWriter,
    batch_days: Optional[int] = None,
    today: Optional[date] = None,
    levels: Optional[List[str]] = None,
    force_structure: bool = False,
    **run_kwargs,
) -> List[RunSummary]:
    """
    Backfill in bounded windows; breakdowns are skipped to save API calls.

    Args:
        total_days: Days to cover, ending yesterday
        service: Per-account sync service
        writer: Writer shared by every batch
        batch_days: Window size (default: SYNC_BACKFILL_BATCH_DAYS)
        today: Reference day, injectable for tests
        levels: Insight levels to sync
        force_structure: Re-sync structure in every batch
        **run_kwargs: Passed through to run_sync

    Returns:
        One RunSummary per window, oldest first
    """
    batch_days = batch_days or settings.SYNC_BACKFILL_BATCH_DAYS
    windows = backfill_windows(total_days, batch_days, today)
    logger.info(f"Backfilling {total_days} days in {len(windows)} batches of {batch_days} days")

    summaries = []
    for start, end in windows:
        logger.info(f"━━━ Batch: {start} -> {end} ━━━")
        plan = SyncPlan(
            date_start=start,
            date_end=end,
            sync_type=SyncType.BACKFILL,
            skip_breakdowns=True,
            force_structure=force_structure,
            levels=levels,
        )
        try:
            summaries.append(await run_sync(plan, service, writer, **run_kwargs))
        except Exception as e:
            logger.error(f"Backfill batch {start} -> {end} failed: {e}", exc_info=True)
            summaries.append(RunSummary(
                plan=plan,
                report=SyncReport(errors=1, error_details=[ErrorDetail(step="batch", error=str(e))]),
            ))
    return summaries


async def run_meta_sync(
    plan: Optional[SyncPlan] = None,
    backfill_days: Optional[int] = None,
    force_structure: bool = False,
    levels: Optional[List[str]] = None,
) -> List[RunSummary]:
    """Wire API client, session and services from settings and run"""
    db = get_session()
    api = MetaAPI()
    try:
        writer = MetaWriter(db, settings.ORG_ID)
        service = MetaSyncService(MetaFetcher(api), writer)
        if backfill_days:
            return await run_backfill(
                backfill_days, service, writer, levels=levels, force_structure=force_structure
            )
        return [await run_sync(plan or resolve_sync_plan(), service, writer)]
    finally:
        await api.close()
        db.close()
