"""
Upstream Meta Marketing API records.

Every field is optional: the API omits fields freely depending on entity
type, account configuration and API version. Action arrays stay untyped so
that only the normalizer interprets them.
"""
from typing import Optional, Any, List
from pydantic import BaseModel, ConfigDict


class MetaRecord(BaseModel):
    """Base for upstream records (unknown fields are kept)"""

    model_config = ConfigDict(extra="allow")


class MetaCampaign(MetaRecord):
    id: str
    name: Optional[str] = None
    status: Optional[str] = None
    objective: Optional[str] = None
    daily_budget: Optional[Any] = None
    lifetime_budget: Optional[Any] = None
    buying_type: Optional[str] = None
    special_ad_categories: Optional[List[Any]] = None
    created_time: Optional[str] = None
    start_time: Optional[str] = None
    stop_time: Optional[str] = None


class MetaAdSet(MetaRecord):
    id: str
    name: Optional[str] = None
    status: Optional[str] = None
    effective_status: Optional[str] = None
    campaign_id: Optional[str] = None
    daily_budget: Optional[Any] = None
    lifetime_budget: Optional[Any] = None
    bid_strategy: Optional[str] = None
    optimization_goal: Optional[str] = None
    billing_event: Optional[str] = None
    attribution_setting: Optional[Any] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    created_time: Optional[str] = None


class MetaAd(MetaRecord):
    id: str
    name: Optional[str] = None
    status: Optional[str] = None
    effective_status: Optional[str] = None
    adset_id: Optional[str] = None
    campaign_id: Optional[str] = None
    created_time: Optional[str] = None
    lead_gen_form_id: Optional[str] = None


class MetaCreative(BaseModel):
    """Creative resolved for one ad (all None when the fetch failed)"""

    ad_id: str
    thumbnail_url: Optional[str] = None
    image_url: Optional[str] = None
    video_url: Optional[str] = None
    title: Optional[str] = None
    body: Optional[str] = None
    call_to_action_type: Optional[str] = None
    effective_object_story_id: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.image_url or self.body or self.title)


class MetaInsightRow(MetaRecord):
    """Flat or breakdown insights row (one day, time_increment=1)"""

    date_start: Optional[str] = None
    date_stop: Optional[str] = None
    campaign_id: Optional[str] = None
    campaign_name: Optional[str] = None
    adset_id: Optional[str] = None
    adset_name: Optional[str] = None
    ad_id: Optional[str] = None
    ad_name: Optional[str] = None

    spend: Optional[Any] = None
    impressions: Optional[Any] = None
    reach: Optional[Any] = None
    frequency: Optional[Any] = None
    clicks: Optional[Any] = None
    inline_link_clicks: Optional[Any] = None
    outbound_clicks: Optional[Any] = None

    actions: Optional[Any] = None
    action_values: Optional[Any] = None
    conversions: Optional[Any] = None
    conversion_values: Optional[Any] = None
    cost_per_action_type: Optional[Any] = None

    video_play_actions: Optional[Any] = None
    video_p25_watched_actions: Optional[Any] = None
    video_p50_watched_actions: Optional[Any] = None
    video_p75_watched_actions: Optional[Any] = None
    video_p100_watched_actions: Optional[Any] = None
    video_thruplay_watched_actions: Optional[Any] = None

    quality_ranking: Optional[str] = None
    engagement_rate_ranking: Optional[str] = None
    conversion_rate_ranking: Optional[str] = None

    # Breakdown dimensions
    age: Optional[str] = None
    gender: Optional[str] = None
    device_platform: Optional[str] = None
    impression_device: Optional[str] = None
    publisher_platform: Optional[str] = None
    platform_position: Optional[str] = None
    country: Optional[str] = None
    region: Optional[str] = None
    hourly_stats_aggregated_by_advertiser_time_zone: Optional[str] = None


class MetaAccountInfo(MetaRecord):
    account_id: Optional[str] = None
    name: Optional[str] = None
    account_status: Optional[int] = None
    currency: Optional[str] = None
    timezone_name: Optional[str] = None
    spend_cap: Optional[Any] = None
    amount_spent: Optional[Any] = None
    balance: Optional[Any] = None
