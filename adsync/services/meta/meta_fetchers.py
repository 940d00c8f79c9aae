"""
Meta domain fetchers

Typed query builders on top of MetaAPI: structure (campaigns, ad sets,
ads), creatives, flat insights and breakdown insights.
"""
import json
import logging
from datetime import date, datetime, timedelta, timezone
from typing import Optional, List, Sequence, Union

from adsync.core.config import settings
from adsync.models.enums import BreakdownType, InsightLevel
from adsync.schemas.meta import (
    MetaCampaign,
    MetaAdSet,
    MetaAd,
    MetaCreative,
    MetaInsightRow,
    MetaAccountInfo,
)
from adsync.schemas.sync import BatchResult, BatchFailure
from adsync.services.meta.errors import MetaAPIError
from adsync.services.meta.meta_api import MetaAPI
from adsync.services.meta import meta_normalizer as normalizer

logger = logging.getLogger(__name__)

CAMPAIGN_FIELDS = [
    "id", "name", "status", "objective", "daily_budget", "lifetime_budget",
    "buying_type", "special_ad_categories", "created_time", "start_time", "stop_time",
]

# targeting is left out: it makes the ad set payload too large on big accounts
AD_SET_FIELDS = [
    "id", "name", "status", "effective_status", "campaign_id", "daily_budget", "lifetime_budget",
    "bid_strategy", "optimization_goal", "billing_event", "attribution_setting",
    "start_time", "end_time", "created_time",
]

AD_FIELDS = [
    "id", "name", "status", "effective_status", "adset_id", "campaign_id",
    "created_time", "lead_gen_form_id",
]

CREATIVE_FIELDS = [
    "id", "effective_object_story_id", "thumbnail_url", "image_url",
    "object_story_spec", "body", "title", "call_to_action_type",
]

INSIGHT_FIELDS = [
    "campaign_id", "campaign_name",
    "adset_id", "adset_name",
    "ad_id", "ad_name",
    "spend", "impressions", "reach", "frequency",
    "clicks", "inline_link_clicks", "outbound_clicks",
    "actions", "action_values", "cost_per_action_type", "conversions", "conversion_values",
    "video_play_actions", "video_p25_watched_actions", "video_p50_watched_actions",
    "video_p75_watched_actions", "video_p100_watched_actions", "video_thruplay_watched_actions",
    "quality_ranking", "engagement_rate_ranking", "conversion_rate_ranking",
]

BREAKDOWN_FIELDS = [
    "campaign_id", "adset_id", "ad_id",
    "spend", "impressions", "reach", "clicks",
    "inline_link_clicks", "outbound_clicks",
    "actions", "action_values", "video_thruplay_watched_actions",
]

BREAKDOWN_CONFIGS = {
    BreakdownType.AGE_GENDER: ["age", "gender"],
    BreakdownType.DEVICE: ["device_platform", "impression_device"],
    BreakdownType.PLACEMENT: ["publisher_platform", "platform_position"],
    BreakdownType.REGION: ["country", "region"],
    BreakdownType.HOURLY: ["hourly_stats_aggregated_by_advertiser_time_zone"],
}

ACCOUNT_INFO_FIELDS = [
    "name", "account_id", "account_status", "currency", "timezone_name",
    "spend_cap", "amount_spent", "balance",
]


def account_path(account_id: str) -> str:
    """Graph node for an ad account (act_ prefix ensured)"""
    account_id = str(account_id)
    return account_id if account_id.startswith("act_") else f"act_{account_id}"


def months_ago(now: datetime, months: int) -> datetime:
    """Same day-of-month N months earlier (clamped to the month's length)"""
    month_index = now.year * 12 + (now.month - 1) - months
    year, month = divmod(month_index, 12)
    month += 1
    next_month = date(year + (month == 12), month % 12 + 1, 1)
    last_day = (next_month - timedelta(days=1)).day
    return now.replace(year=year, month=month, day=min(now.day, last_day))


def created_after_filter(lookback_months: int, now: Optional[datetime] = None) -> str:
    """filtering param: entities created within the lookback window"""
    now = now or datetime.now(timezone.utc)
    cutoff = months_ago(now, lookback_months)
    return json.dumps([
        {"field": "created_time", "operator": "GREATER_THAN", "value": int(cutoff.timestamp())}
    ])


def time_range(since: Union[date, str], until: Union[date, str]) -> str:
    return json.dumps({"since": str(since), "until": str(until)})


def iter_days(since: date, until: date):
    day = since
    while day <= until:
        yield day
        day += timedelta(days=1)


class MetaFetcher:
    """
    Per-entity fetchers.

    Failures of a whole request raise MetaAPIError; catch-and-continue
    loops return BatchResult so callers can see what was skipped.
    """

    def __init__(
        self,
        api: MetaAPI,
        lookback_months: Optional[int] = None,
        structure_page_size: Optional[int] = None,
        insights_page_size: Optional[int] = None,
        creative_batch_size: Optional[int] = None,
    ):
        self.api = api
        self.lookback_months = lookback_months or settings.META_STRUCTURE_LOOKBACK_MONTHS
        self.structure_page_size = structure_page_size or settings.META_STRUCTURE_PAGE_SIZE
        self.insights_page_size = insights_page_size or settings.META_INSIGHTS_PAGE_SIZE
        self.creative_batch_size = creative_batch_size or settings.META_CREATIVE_BATCH_SIZE

    def _structure_params(self, fields: List[str]) -> dict:
        return {
            "fields": ",".join(fields),
            "filtering": created_after_filter(self.lookback_months),
            "limit": self.structure_page_size,
        }

    # ========================================
    # Account
    # ========================================

    async def fetch_account_info(self, account_id: str) -> MetaAccountInfo:
        data = await self.api.get(account_path(account_id), fields=",".join(ACCOUNT_INFO_FIELDS))
        return MetaAccountInfo.model_validate(data)

    # ========================================
    # Structure
    # ========================================

    async def fetch_campaigns(self, account_id: str) -> List[MetaCampaign]:
        """Campaigns created within the lookback window"""
        rows = await self.api.get_all(
            f"{account_path(account_id)}/campaigns", **self._structure_params(CAMPAIGN_FIELDS)
        )
        return [MetaCampaign.model_validate(r) for r in rows]

    async def fetch_ad_sets(self, account_id: str) -> List[MetaAdSet]:
        rows = await self.api.get_all(
            f"{account_path(account_id)}/adsets", **self._structure_params(AD_SET_FIELDS)
        )
        return [MetaAdSet.model_validate(r) for r in rows]

    async def fetch_ads(self, account_id: str) -> List[MetaAd]:
        """Bulk per-account ads fetch (structure only)"""
        rows = await self.api.get_all(
            f"{account_path(account_id)}/ads", **self._structure_params(AD_FIELDS)
        )
        return [MetaAd.model_validate(r) for r in rows]

    async def fetch_ads_by_campaign(self, campaign_ids: Sequence[str]) -> BatchResult[MetaAd]:
        """One ads fetch per campaign; a failing campaign is skipped"""
        result = BatchResult[MetaAd]()
        for campaign_id in campaign_ids:
            try:
                rows = await self.api.get_all(
                    f"{campaign_id}/ads", **self._structure_params(AD_FIELDS)
                )
            except MetaAPIError as e:
                logger.warning(f"Ads fetch failed for campaign {campaign_id}: {e}")
                result.failures.append(BatchFailure(item=str(campaign_id), error=str(e), kind=e.kind.value))
                continue
            result.items.extend(MetaAd.model_validate(r) for r in rows)
        return result

    async def fetch_ads_with_fallback(
        self,
        account_id: str,
        campaign_ids: Sequence[str],
    ) -> BatchResult[MetaAd]:
        """Bulk ads fetch, falling back to per-campaign fetches when it fails"""
        try:
            return BatchResult[MetaAd](items=await self.fetch_ads(account_id))
        except MetaAPIError as e:
            logger.warning(
                f"Bulk ads fetch failed for {account_path(account_id)} ({e.kind.value}: {e}), "
                f"falling back to {len(campaign_ids)} per-campaign fetches"
            )
        return await self.fetch_ads_by_campaign(campaign_ids)

    # ========================================
    # Creatives
    # ========================================

    async def fetch_creative(self, ad_id: str) -> MetaCreative:
        """
        Creative for one ad via the /adcreatives edge.

        The video source is a second call; when it fails the creative is
        still returned, without video_url.
        """
        data = await self.api.get(f"{ad_id}/adcreatives", fields=",".join(CREATIVE_FIELDS))
        rows = data.get("data") or []
        creative = rows[0] if rows and isinstance(rows[0], dict) else {}

        video_url = None
        video_id = normalizer.creative_video_id(creative)
        if video_id:
            try:
                video = await self.api.get(str(video_id), fields="source")
                video_url = video.get("source") or None
            except MetaAPIError as e:
                logger.warning(f"Video source fetch failed for ad {ad_id} (video {video_id}): {e}")

        return MetaCreative(
            ad_id=ad_id,
            thumbnail_url=creative.get("thumbnail_url") or None,
            image_url=normalizer.resolve_image_url(creative),
            video_url=video_url,
            title=creative.get("title") or None,
            body=creative.get("body") or None,
            call_to_action_type=creative.get("call_to_action_type") or None,
            effective_object_story_id=creative.get("effective_object_story_id") or None,
        )

    async def fetch_creatives(self, ad_ids: Sequence[str]) -> BatchResult[MetaCreative]:
        """
        Creatives for many ads, one call per ad, grouped in batches for logging.

        Always returns one record per ad id; failed ads get an empty record
        and a failure entry.
        """
        result = BatchResult[MetaCreative]()
        batch_size = self.creative_batch_size
        total_batches = (len(ad_ids) + batch_size - 1) // batch_size

        for start in range(0, len(ad_ids), batch_size):
            batch = ad_ids[start:start + batch_size]
            logger.info(
                f"Creative batch {start // batch_size + 1}/{total_batches} "
                f"({start + 1}-{start + len(batch)} of {len(ad_ids)})"
            )
            for ad_id in batch:
                try:
                    result.items.append(await self.fetch_creative(ad_id))
                except Exception as e:
                    kind = e.kind.value if isinstance(e, MetaAPIError) else None
                    logger.warning(f"Creative fetch failed for ad {ad_id}: {e}")
                    result.items.append(MetaCreative(ad_id=ad_id))
                    result.failures.append(BatchFailure(item=str(ad_id), error=str(e), kind=kind))
        return result

    async def fetch_post_image(self, story_id: str) -> Optional[str]:
        """Permanent image of the page post behind a creative"""
        post = await self.api.get(story_id, fields="full_picture,attachments{media,subattachments}")
        return normalizer.post_image_url(post)

    # ========================================
    # Insights
    # ========================================

    def _insights_params(self, fields: List[str], level: InsightLevel, since, until) -> dict:
        return {
            "fields": ",".join(fields),
            "level": level.api_value,
            "time_range": time_range(since, until),
            "time_increment": 1,
            "limit": self.insights_page_size,
        }

    async def fetch_insights(
        self,
        account_id: str,
        level: InsightLevel,
        since: date,
        until: date,
    ) -> List[MetaInsightRow]:
        """
        Daily insights for the whole range in one paginated request.

        Args:
            account_id: Ad account id (with or without the act_ prefix)
            level: Aggregation level
            since: First day of the range
            until: Last day of the range (inclusive)

        Returns:
            List of insight rows, one per entity per day

        Raises:
            MetaAPIError: when any page fails after retries
        """
        rows = await self.api.get_all(
            f"{account_path(account_id)}/insights",
            **self._insights_params(INSIGHT_FIELDS, level, since, until),
        )
        return [MetaInsightRow.model_validate(r) for r in rows]

    async def fetch_insights_by_day(
        self,
        account_id: str,
        level: InsightLevel,
        since: date,
        until: date,
    ) -> BatchResult[MetaInsightRow]:
        """Same range as fetch_insights, one request per day; failed days are skipped"""
        result = BatchResult[MetaInsightRow]()
        for day in iter_days(since, until):
            try:
                result.items.extend(await self.fetch_insights(account_id, level, day, day))
            except MetaAPIError as e:
                logger.warning(f"{level.value} insights for {day} failed: {e}")
                result.failures.append(BatchFailure(item=day.isoformat(), error=str(e), kind=e.kind.value))
        return result

    async def fetch_breakdowns(
        self,
        account_id: str,
        level: InsightLevel,
        since: date,
        until: date,
        breakdown_type: BreakdownType,
    ) -> List[MetaInsightRow]:
        """Daily insights sliced by one breakdown type"""
        params = self._insights_params(BREAKDOWN_FIELDS, level, since, until)
        params["breakdowns"] = ",".join(BREAKDOWN_CONFIGS[breakdown_type])
        rows = await self.api.get_all(f"{account_path(account_id)}/insights", **params)
        return [MetaInsightRow.model_validate(r) for r in rows]
