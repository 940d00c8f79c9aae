"""
Meta Sync Service
Drives one ad account through structure -> creatives -> insights ->
breakdowns -> freshness stamp.
"""
import logging
from datetime import date, datetime, timezone
from typing import Optional, List, Sequence

from adsync.core.config import settings
from adsync.models import AdAccount
from adsync.models.enums import InsightLevel, BreakdownType
from adsync.schemas.sync import SyncReport, ErrorDetail, BatchResult
from adsync.services.meta.errors import MetaAPIError, ErrorKind
from adsync.services.meta.meta_fetchers import MetaFetcher, BREAKDOWN_CONFIGS
from adsync.services.meta.meta_writer import MetaWriter
from adsync.services.meta import meta_normalizer as normalizer

logger = logging.getLogger(__name__)


class MetaSyncService:
    """
    Per-account sync orchestration.

    Each step returns a SyncReport; sync_account folds them. Failures are
    recovered where they happen (per ad, per day, per breakdown type) and
    an exception escaping a step is recorded against the account without
    stopping the caller's loop.
    """

    def __init__(
        self,
        fetcher: MetaFetcher,
        writer: MetaWriter,
        creative_limit: Optional[int] = None,
        breakdown_level: Optional[str] = None,
    ):
        self.fetcher = fetcher
        self.writer = writer
        self.creative_limit = creative_limit if creative_limit is not None else settings.SYNC_CREATIVE_LIMIT
        self.breakdown_level = InsightLevel.parse(breakdown_level or settings.SYNC_BREAKDOWN_LEVEL)

    @staticmethod
    def _failures_report(account: AdAccount, step: str, result: BatchResult) -> SyncReport:
        return SyncReport(
            errors=len(result.failures),
            error_details=[
                ErrorDetail(
                    account=account.name,
                    account_id=account.platform_account_id,
                    step=step,
                    error=f"{f.item}: {f.error}",
                )
                for f in result.failures
            ],
        )

    @staticmethod
    def synced_today(account: AdAccount, today: Optional[date] = None) -> bool:
        if not account.last_synced_at:
            return False
        last = account.last_synced_at
        if last.tzinfo is None:
            last = last.replace(tzinfo=timezone.utc)
        today = today or datetime.now(timezone.utc).date()
        return last.astimezone(timezone.utc).date() == today

    # ========================================
    # Structure
    # ========================================

    async def sync_structure(self, account: AdAccount) -> SyncReport:
        """Campaigns, ad sets and ads (ads fall back to per-campaign fetches)"""
        account_id = account.platform_account_id
        logger.info(f"Syncing structure for {account.name}...")
        report = SyncReport()

        try:
            info = await self.fetcher.fetch_account_info(account_id)
            self.writer.update_account_info(account, info)
        except MetaAPIError as e:
            logger.warning(f"Account info fetch failed for {account.name}: {e}")
            report = report.merge(SyncReport(errors=1, error_details=[ErrorDetail(
                account=account.name, account_id=account_id, step="account_info", error=str(e),
            )]))

        campaigns = await self.fetcher.fetch_campaigns(account_id)
        written = self.writer.upsert_campaigns(account, campaigns)
        logger.info(f"  {written} campaigns")
        report = report.merge(SyncReport(campaigns=written))

        ad_sets = await self.fetcher.fetch_ad_sets(account_id)
        written = self.writer.upsert_ad_sets(account, ad_sets)
        logger.info(f"  {written} ad sets")
        report = report.merge(SyncReport(ad_sets=written))

        ads = await self.fetcher.fetch_ads_with_fallback(account_id, [c.id for c in campaigns])
        written = self.writer.upsert_ads(account, ads.items)
        logger.info(f"  {written} ads")
        report = report.merge(SyncReport(ads=written))
        return report.merge(self._failures_report(account, "ads", ads))

    # ========================================
    # Creatives
    # ========================================

    async def sync_creatives(self, account: AdAccount) -> SyncReport:
        """Fetch creatives for ads stored without a creative_url"""
        ad_ids = self.writer.ads_missing_creative(account, limit=self.creative_limit)
        if not ad_ids:
            logger.info("  All ads have creatives")
            return SyncReport()

        logger.info(f"  Fetching creatives for {len(ad_ids)} ads...")
        creatives = await self.fetcher.fetch_creatives(ad_ids)
        updated = self.writer.update_creatives(account.id, creatives.items)
        logger.info(f"  Updated creatives for {updated}/{len(ad_ids)} ads")
        return SyncReport(creatives=updated).merge(self._failures_report(account, "creatives", creatives))

    async def backfill_creatives(self, account: AdAccount, limit: int, dry_run: bool = False) -> SyncReport:
        """
        One-off creative repair for ads stored without a creative_url.

        Prefers the permanent picture of the creative's page post over the
        creative's own (expiring) image URLs.
        """
        ad_ids = self.writer.ads_missing_creative(account, limit=limit)
        logger.info(f"{account.name}: {len(ad_ids)} ads without creative")
        if not ad_ids:
            return SyncReport()

        creatives = await self.fetcher.fetch_creatives(ad_ids)
        resolved = []
        for creative in creatives.items:
            if creative.effective_object_story_id:
                try:
                    post_image = await self.fetcher.fetch_post_image(creative.effective_object_story_id)
                except MetaAPIError as e:
                    logger.warning(f"  Post image fetch failed for ad {creative.ad_id}: {e}")
                    post_image = None
                if post_image:
                    creative = creative.model_copy(update={"image_url": post_image})
            resolved.append(creative)

        found = sum(1 for c in resolved if not c.is_empty)
        if dry_run:
            logger.info(f"  [DRY RUN] would update {found}/{len(ad_ids)} ads")
            return SyncReport().merge(self._failures_report(account, "creatives", creatives))

        updated = self.writer.update_creatives(account.id, resolved)
        logger.info(f"  Updated {updated}/{len(ad_ids)} ads")
        return SyncReport(creatives=updated).merge(self._failures_report(account, "creatives", creatives))

    # ========================================
    # Insights
    # ========================================

    async def sync_insights(
        self,
        account: AdAccount,
        level: InsightLevel,
        date_start: date,
        date_end: date,
    ) -> SyncReport:
        """
        Insights for the full range at one level.

        A range the API refuses as too large is re-fetched one day at a
        time; failed days are recorded and skipped.
        """
        logger.info(f"  {level.value}-level insights {date_start} -> {date_end}...")
        report = SyncReport()

        try:
            rows = await self.fetcher.fetch_insights(account.platform_account_id, level, date_start, date_end)
        except MetaAPIError as e:
            if e.kind != ErrorKind.PAYLOAD_TOO_LARGE:
                raise
            logger.warning(f"  Range too large ({e}), splitting into daily requests...")
            by_day = await self.fetcher.fetch_insights_by_day(
                account.platform_account_id, level, date_start, date_end
            )
            rows = by_day.items
            report = self._failures_report(account, f"insights:{level.value}", by_day)

        normalized = [normalizer.normalize_insight_row(r, account.primary_action_type) for r in rows]
        written = self.writer.upsert_insights(account, level.value, normalized)
        logger.info(f"    {written} rows")
        return report.merge(SyncReport(insights=written))

    # ========================================
    # Breakdowns
    # ========================================

    async def sync_breakdowns(
        self,
        account: AdAccount,
        date_start: date,
        date_end: date,
        breakdown_types: Sequence[BreakdownType] = tuple(BREAKDOWN_CONFIGS),
    ) -> SyncReport:
        """Each breakdown type independently; one failing type never blocks the rest"""
        level = self.breakdown_level
        report = SyncReport()

        for breakdown_type in breakdown_types:
            logger.info(f"  {level.value} {breakdown_type.value} breakdown {date_start} -> {date_end}...")
            try:
                rows = await self.fetcher.fetch_breakdowns(
                    account.platform_account_id, level, date_start, date_end, breakdown_type
                )
                normalized = [
                    normalizer.normalize_breakdown_row(r, breakdown_type, account.primary_action_type)
                    for r in rows
                ]
                written = self.writer.upsert_breakdowns(account, level.value, normalized)
            except Exception as e:
                logger.warning(f"    {breakdown_type.value} failed: {e}")
                report = report.merge(SyncReport(errors=1, error_details=[ErrorDetail(
                    account=account.name,
                    account_id=account.platform_account_id,
                    step=f"breakdown:{breakdown_type.value}",
                    error=str(e),
                )]))
                continue
            logger.info(f"    {written} rows")
            report = report.merge(SyncReport(breakdowns=written))

        return report

    # ========================================
    # Account
    # ========================================

    async def sync_account(
        self,
        account: AdAccount,
        date_start: date,
        date_end: date,
        levels: Optional[List[str]] = None,
        skip_breakdowns: bool = False,
        breakdown_start: Optional[date] = None,
        force_structure: bool = False,
    ) -> SyncReport:
        """
        Full sync for one account; never raises for account-level failures.

        A creative sync failure is recorded and the insights still run.

        Args:
            account: Ad account to sync
            date_start: First day of the insights range
            date_end: Last day of the insights range (inclusive)
            levels: Insight levels to sync (default: SYNC_LEVELS)
            skip_breakdowns: Skip the breakdown step entirely
            breakdown_start: First day for breakdowns, clamped to date_start
            force_structure: Re-sync structure even if already synced today

        Returns:
            SyncReport with counters and error details for this account
        """
        levels = [InsightLevel.parse(level) for level in (levels or settings.SYNC_LEVELS)]
        report = SyncReport(accounts=1)
        step = "structure"

        try:
            if not force_structure and self.synced_today(account):
                logger.info("  Structure already synced today, skipping...")
            else:
                report = report.merge(await self.sync_structure(account))

            step = "creatives"
            try:
                report = report.merge(await self.sync_creatives(account))
            except Exception as e:
                logger.error(f"Creative sync error for {account.name}: {e}")
                report = report.merge(SyncReport(errors=1, error_details=[ErrorDetail(
                    account=account.name,
                    account_id=account.platform_account_id,
                    step="creatives",
                    error=str(e),
                )]))

            # Full range every time: attribution revises past days
            for level in levels:
                step = f"insights:{level.value}"
                report = report.merge(await self.sync_insights(account, level, date_start, date_end))

            if not skip_breakdowns:
                step = "breakdowns"
                b_start = max(breakdown_start, date_start) if breakdown_start else date_start
                if b_start <= date_end:
                    report = report.merge(await self.sync_breakdowns(account, b_start, date_end))

            step = "freshness"
            self.writer.mark_synced(account)

        except Exception as e:
            logger.error(f"Error on {account.name} ({account.platform_account_id}) during {step}: {e}")
            report = report.merge(SyncReport(errors=1, error_details=[ErrorDetail(
                account=account.name,
                account_id=account.platform_account_id,
                step=step,
                error=str(e),
            )]))

        return report
