"""
Meta upsert writer

Idempotent writes keyed by natural identifiers. Each public method commits
its own unit of work so a late failure never rolls back earlier writes.
"""
import logging
from datetime import datetime, timezone
from typing import Optional, List, Dict, Any, Iterable

from sqlalchemy import select, update, func, text
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session

from adsync.models import (
    AdAccount,
    Campaign,
    AdSet,
    Ad,
    Insight,
    InsightBreakdown,
    SyncRun,
    INSIGHT_KEY,
    BREAKDOWN_KEY,
)
from adsync.schemas.meta import MetaCreative, MetaAccountInfo
from adsync.schemas.sync import RunSummary
from adsync.services.meta import meta_normalizer as normalizer

logger = logging.getLogger(__name__)

INSIGHT_KEY_COLUMNS = {
    "org_id", "ad_account_id", "level", "platform_campaign_id",
    "platform_ad_set_id", "platform_ad_id", "date",
}
BREAKDOWN_KEY_COLUMNS = INSIGHT_KEY_COLUMNS | {"breakdown_type", "dimension_1", "dimension_2"}


class MetaWriter:
    """Writes synced Meta data through one SQLAlchemy session"""

    def __init__(self, db: Session, org_id: str):
        self.db = db
        self.org_id = org_id

    def _insert(self, model):
        """INSERT supporting ON CONFLICT for the bound dialect"""
        if self.db.get_bind().dialect.name == "sqlite":
            return sqlite.insert(model)
        return postgresql.insert(model)

    def _run(self, statements: Iterable) -> int:
        """Execute statements as one unit of work"""
        count = 0
        try:
            for stmt in statements:
                self.db.execute(stmt)
                count += 1
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return count

    # ========================================
    # Accounts
    # ========================================

    def get_accounts(self) -> List[AdAccount]:
        """Active ad accounts of the organization"""
        return list(self.db.scalars(
            select(AdAccount)
            .where(AdAccount.org_id == self.org_id, AdAccount.is_active.is_(True))
            .order_by(AdAccount.id)
        ))

    def update_account_info(self, account: AdAccount, info: MetaAccountInfo):
        values = {
            "currency": info.currency,
            "timezone": info.timezone_name,
            "account_status": info.account_status,
        }
        values = {k: v for k, v in values.items() if v is not None}
        if values:
            self._run([update(AdAccount).where(AdAccount.id == account.id).values(**values)])

    def mark_synced(self, account: AdAccount, when: Optional[datetime] = None):
        """Freshness stamp"""
        when = when or datetime.now(timezone.utc)
        self._run([update(AdAccount).where(AdAccount.id == account.id).values(last_synced_at=when)])

    # ========================================
    # Structure
    # ========================================

    def upsert_campaigns(self, account: AdAccount, campaigns) -> int:
        def statements():
            for c in campaigns:
                values = normalizer.normalize_campaign(c)
                stmt = self._insert(Campaign).values(
                    org_id=self.org_id, ad_account_id=account.id, **values
                )
                yield stmt.on_conflict_do_update(
                    index_elements=[Campaign.ad_account_id, Campaign.platform_campaign_id],
                    set_={
                        "name": stmt.excluded.name,
                        "status": stmt.excluded.status,
                        "objective": stmt.excluded.objective,
                        "daily_budget": stmt.excluded.daily_budget,
                        "lifetime_budget": stmt.excluded.lifetime_budget,
                        "buying_type": stmt.excluded.buying_type,
                        "special_ad_categories": stmt.excluded.special_ad_categories,
                        "start_time": stmt.excluded.start_time,
                        "stop_time": stmt.excluded.stop_time,
                        "updated_at": func.now(),
                    },
                )
        return self._run(statements())

    def upsert_ad_sets(self, account: AdAccount, ad_sets) -> int:
        def statements():
            for s in ad_sets:
                values = normalizer.normalize_ad_set(s)
                campaign_id = (
                    select(Campaign.id)
                    .where(
                        Campaign.ad_account_id == account.id,
                        Campaign.platform_campaign_id == s.campaign_id,
                    )
                    .scalar_subquery()
                )
                stmt = self._insert(AdSet).values(
                    org_id=self.org_id, ad_account_id=account.id, campaign_id=campaign_id, **values
                )
                yield stmt.on_conflict_do_update(
                    index_elements=[AdSet.ad_account_id, AdSet.platform_ad_set_id],
                    set_={
                        "campaign_id": func.coalesce(stmt.excluded.campaign_id, AdSet.campaign_id),
                        "name": stmt.excluded.name,
                        "status": stmt.excluded.status,
                        "effective_status": stmt.excluded.effective_status,
                        "daily_budget": stmt.excluded.daily_budget,
                        "lifetime_budget": stmt.excluded.lifetime_budget,
                        "bid_strategy": stmt.excluded.bid_strategy,
                        "optimization_goal": stmt.excluded.optimization_goal,
                        "billing_event": stmt.excluded.billing_event,
                        "attribution_setting": stmt.excluded.attribution_setting,
                        "start_time": stmt.excluded.start_time,
                        "end_time": stmt.excluded.end_time,
                        "updated_at": func.now(),
                    },
                )
        return self._run(statements())

    def upsert_ads(self, account: AdAccount, ads) -> int:
        def statements():
            for a in ads:
                values = normalizer.normalize_ad(a)
                ad_set_id = (
                    select(AdSet.id)
                    .where(
                        AdSet.ad_account_id == account.id,
                        AdSet.platform_ad_set_id == a.adset_id,
                    )
                    .scalar_subquery()
                )
                stmt = self._insert(Ad).values(
                    org_id=self.org_id, ad_account_id=account.id, ad_set_id=ad_set_id, **values
                )
                yield stmt.on_conflict_do_update(
                    index_elements=[Ad.ad_account_id, Ad.platform_ad_id],
                    set_={
                        "ad_set_id": func.coalesce(stmt.excluded.ad_set_id, Ad.ad_set_id),
                        "name": stmt.excluded.name,
                        "status": stmt.excluded.status,
                        "effective_status": stmt.excluded.effective_status,
                        "leadgen_form_id": stmt.excluded.leadgen_form_id,
                        "updated_at": func.now(),
                    },
                )
        return self._run(statements())

    # ========================================
    # Creatives
    # ========================================

    def ads_missing_creative(self, account: AdAccount, limit: Optional[int] = None) -> List[str]:
        """Platform ids of the account's ads with no creative_url yet, newest first"""
        query = (
            select(Ad.platform_ad_id)
            .where(Ad.ad_account_id == account.id, Ad.creative_url.is_(None))
            .order_by(Ad.created_time.is_(None), Ad.created_time.desc(), Ad.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return list(self.db.scalars(query))

    def update_creatives(self, account_id: int, creatives: Iterable[MetaCreative]) -> int:
        """
        Partial update of ads creative columns.

        Only fields present in the fetched creative are written, so a
        missing value never clobbers existing data.
        """
        def statements():
            for creative in creatives:
                if creative.is_empty:
                    continue
                values = normalizer.creative_update_values(creative)
                yield (
                    update(Ad)
                    .where(Ad.ad_account_id == account_id, Ad.platform_ad_id == creative.ad_id)
                    .values(**values, updated_at=func.now())
                )
        return self._run(statements())

    # ========================================
    # Insights
    # ========================================

    def _fact_rows(self, account: AdAccount, level: str, rows: Iterable[Dict[str, Any]]):
        for values in rows:
            if values.get("date") is None:
                logger.warning(f"Skipping {level} row without date_start for account {account.id}")
                continue
            yield {"org_id": self.org_id, "ad_account_id": account.id, "level": level, **values}

    def upsert_insights(self, account: AdAccount, level: str, rows: Iterable[Dict[str, Any]]) -> int:
        """Upsert normalized insights rows on (account, level, ids, date)"""
        def statements():
            for values in self._fact_rows(account, level, rows):
                stmt = self._insert(Insight).values(**values)
                updates = {
                    key: getattr(stmt.excluded, key)
                    for key in values
                    if key not in INSIGHT_KEY_COLUMNS
                }
                updates["synced_at"] = func.now()
                yield stmt.on_conflict_do_update(index_elements=list(INSIGHT_KEY), set_=updates)
        return self._run(statements())

    def upsert_breakdowns(self, account: AdAccount, level: str, rows: Iterable[Dict[str, Any]]) -> int:
        """Upsert breakdown rows on (account, level, type, ids, date, dimensions)"""
        def statements():
            for values in self._fact_rows(account, level, rows):
                stmt = self._insert(InsightBreakdown).values(**values)
                updates = {
                    key: getattr(stmt.excluded, key)
                    for key in values
                    if key not in BREAKDOWN_KEY_COLUMNS
                }
                updates["synced_at"] = func.now()
                yield stmt.on_conflict_do_update(index_elements=list(BREAKDOWN_KEY), set_=updates)
        return self._run(statements())

    # ========================================
    # Run bookkeeping
    # ========================================

    def record_sync_run(self, summary: RunSummary) -> SyncRun:
        """Write the run's audit row"""
        report = summary.report
        run = SyncRun(
            org_id=self.org_id,
            sync_type=summary.plan.sync_type.value,
            level="all",
            date_range_start=summary.plan.date_start,
            date_range_end=summary.plan.date_end,
            records_synced=report.records_synced,
            errors=report.errors,
            error_details=[d.model_dump() for d in report.error_details] or None,
            duration_ms=summary.duration_ms,
            status=summary.status.value,
        )
        try:
            self.db.add(run)
            self.db.commit()
        except Exception:
            self.db.rollback()
            raise
        return run

    def refresh_summary_view(self, view_name: str):
        """
        Refresh the reporting materialized view.

        CONCURRENTLY needs a populated view with a unique index; the first
        refresh falls back to a plain one.
        """
        try:
            self.db.execute(text(f"REFRESH MATERIALIZED VIEW CONCURRENTLY {view_name}"))
            self.db.commit()
        except DBAPIError as e:
            self.db.rollback()
            logger.info(f"Concurrent refresh of {view_name} not possible ({e.orig}), refreshing normally")
            try:
                self.db.execute(text(f"REFRESH MATERIALIZED VIEW {view_name}"))
                self.db.commit()
            except Exception:
                self.db.rollback()
                raise
