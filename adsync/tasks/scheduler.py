"""
Daily sync scheduler using APScheduler
"""
import asyncio
import logging

from apscheduler.schedulers.blocking import BlockingScheduler
from apscheduler.triggers.cron import CronTrigger

from adsync.core.config import settings

logger = logging.getLogger(__name__)


def parse_sync_time(value: str):
    """'HH:MM' -> (hour, minute)"""
    try:
        hour, minute = (int(part) for part in value.split(":"))
    except ValueError:
        raise ValueError(f"SYNC_TIME must be HH:MM, got {value!r}")
    if not (0 <= hour < 24 and 0 <= minute < 60):
        raise ValueError(f"SYNC_TIME out of range: {value!r}")
    return hour, minute


def build_scheduler() -> BlockingScheduler:
    """Scheduler with the daily rolling sync job"""
    hour, minute = parse_sync_time(settings.SYNC_TIME)
    scheduler = BlockingScheduler(timezone=settings.SYNC_TIMEZONE)

    # ============================================
    # Daily rolling sync
    # ============================================
    scheduler.add_job(
        func=sync_meta_job,
        trigger=CronTrigger(hour=hour, minute=minute, timezone=settings.SYNC_TIMEZONE),
        id="sync_meta",
        name=f"Sync Meta ads (last {settings.SCHEDULED_SYNC_DAYS} days)",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    return scheduler


def start_scheduler():
    """Run the scheduler in the foreground until interrupted"""
    if not settings.SCHEDULER_ENABLED:
        logger.warning("Scheduler disabled (SCHEDULER_ENABLED=false), nothing to run")
        return

    scheduler = build_scheduler()
    logger.info(
        f"Scheduler started: daily sync at {settings.SYNC_TIME} {settings.SYNC_TIMEZONE}"
    )
    try:
        scheduler.start()
    except (KeyboardInterrupt, SystemExit):
        logger.info("Scheduler stopped")


# ============================================
# Job Functions
# ============================================

def sync_meta_job():
    """Rolling sync of the last SCHEDULED_SYNC_DAYS days"""
    logger.info("Running scheduled Meta sync...")
    try:
        # Import here to avoid circular imports
        from adsync.tasks.sync_tasks import run_meta_sync, resolve_sync_plan
        plan = resolve_sync_plan(days=settings.SCHEDULED_SYNC_DAYS)
        summaries = asyncio.run(run_meta_sync(plan))
        logger.info(f"Scheduled sync completed: {summaries[-1].status.value}")
    except Exception as e:
        logger.error(f"Scheduled sync failed: {e}", exc_info=True)
