"""
Meta insights normalizer.

Pure functions that turn the API's heterogeneous action arrays and nested
creative specs into flat, defaulted values. Nothing here raises on
malformed input.
"""
from datetime import date, datetime
from typing import Optional, Dict, Any, List, NamedTuple

from adsync.models.enums import BreakdownType
from adsync.schemas.meta import MetaInsightRow

SCHEDULE_ACTION_TYPES = {"schedule_total"}
PURCHASE_ACTION_TYPES = {
    "omni_purchase",
    "purchase",
    "offsite_conversion.fb_pixel_purchase",
    "onsite_web_purchase",
}

LANDING_PAGE_VIEW = "landing_page_view"
MESSAGING_STARTED = "onsite_conversion.messaging_conversation_started_7d"
VIDEO_VIEW = "video_view"

# Dimension fields carried by each breakdown type (dimension_1, dimension_2)
BREAKDOWN_DIMENSIONS = {
    BreakdownType.AGE_GENDER: ("age", "gender"),
    BreakdownType.DEVICE: ("device_platform", "impression_device"),
    BreakdownType.PLACEMENT: ("publisher_platform", "platform_position"),
    BreakdownType.REGION: ("country", "region"),
    BreakdownType.HOURLY: ("hourly_stats_aggregated_by_advertiser_time_zone", None),
}


class DerivedResults(NamedTuple):
    leads: int = 0
    purchases: int = 0
    purchase_value: float = 0.0
    schedules: int = 0


# ========================================
# Scalars
# ========================================

def to_int(value: Any) -> int:
    """Integer from an API string/number; 0 when absent or malformed"""
    if value is None or isinstance(value, bool):
        return 0
    try:
        return int(value)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError):
            return 0


def to_float(value: Any) -> float:
    if value is None or isinstance(value, bool):
        return 0.0
    try:
        return float(value)
    except (TypeError, ValueError):
        return 0.0


def to_optional_float(value: Any) -> Optional[float]:
    return to_float(value) or None


def minor_to_major(value: Any) -> Optional[float]:
    """Budget in minor units (cents) to major currency units"""
    amount = to_float(value)
    return amount / 100 if amount else None


def parse_datetime(value: Optional[str]) -> Optional[datetime]:
    """Parse Meta timestamps like 2025-01-31T10:00:00+0000"""
    if not value:
        return None
    text = value.replace("Z", "+00:00")
    if len(text) > 5 and text[-5] in "+-" and text[-3] != ":":
        text = f"{text[:-2]}:{text[-2:]}"
    try:
        return datetime.fromisoformat(text)
    except ValueError:
        return None


def parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


# ========================================
# Action arrays
# ========================================

def _action_entries(actions: Any) -> List[Dict[str, Any]]:
    if not isinstance(actions, list):
        return []
    return [a for a in actions if isinstance(a, dict) and a.get("action_type")]


def parse_actions(actions: Any) -> Dict[str, int]:
    """[{action_type, value}] -> {action_type: count}"""
    return {a["action_type"]: to_int(a.get("value")) for a in _action_entries(actions)}


def parse_action_values(action_values: Any) -> Dict[str, float]:
    """[{action_type, value}] -> {action_type: amount}"""
    return {a["action_type"]: to_float(a.get("value")) for a in _action_entries(action_values)}


def video_metric(actions: Any) -> int:
    """The video_view entry of a watch-percentile array"""
    for a in _action_entries(actions):
        if a["action_type"] == VIDEO_VIEW:
            return to_int(a.get("value"))
    return 0


def first_action_value(actions: Any) -> int:
    """First entry of an action array such as outbound_clicks"""
    entries = _action_entries(actions)
    return to_int(entries[0].get("value")) if entries else 0


def raw_array(actions: Any) -> List[Any]:
    return actions if isinstance(actions, list) else []


# ========================================
# Result derivation
# ========================================

def derive_results(
    actions: Dict[str, int],
    action_values: Dict[str, float],
    conversions: Dict[str, int],
    conversion_values: Dict[str, float],
    primary_action_type: Optional[str],
) -> DerivedResults:
    """
    Route the account's result metric into leads, purchases or schedules.

    With a primary action type only that type is counted, looked up in the
    actions map first and then in conversions (some types only appear there).
    Without one, a fixed list of lead and purchase types is scanned.
    """
    if primary_action_type:
        count = actions.get(primary_action_type) or conversions.get(primary_action_type) or 0
        value = action_values.get(primary_action_type) or conversion_values.get(primary_action_type) or 0.0

        if primary_action_type in SCHEDULE_ACTION_TYPES:
            return DerivedResults(schedules=count)
        if primary_action_type in PURCHASE_ACTION_TYPES:
            return DerivedResults(purchases=count, purchase_value=value)
        return DerivedResults(leads=count)

    # TODO: confirm the fallback type list with the product owner before extending it
    return DerivedResults(
        leads=actions.get("lead") or actions.get("offsite_conversion.fb_pixel_lead") or 0,
        purchases=(
            actions.get("purchase")
            or actions.get("offsite_conversion.fb_pixel_purchase")
            or actions.get("omni_purchase")
            or 0
        ),
        purchase_value=(
            action_values.get("purchase")
            or action_values.get("offsite_conversion.fb_pixel_purchase")
            or action_values.get("omni_purchase")
            or 0.0
        ),
        schedules=conversions.get("schedule_total") or actions.get("schedule_total") or 0,
    )


def derive_row_results(row: MetaInsightRow, primary_action_type: Optional[str]) -> DerivedResults:
    return derive_results(
        parse_actions(row.actions),
        parse_action_values(row.action_values),
        parse_actions(row.conversions),
        parse_action_values(row.conversion_values),
        primary_action_type,
    )


# ========================================
# Rows
# ========================================

def normalize_insight_row(row: MetaInsightRow, primary_action_type: Optional[str]) -> Dict[str, Any]:
    """Insights row -> column values for the insights table (key columns included)"""
    actions = parse_actions(row.actions)
    results = derive_row_results(row, primary_action_type)

    return {
        "platform_campaign_id": row.campaign_id or None,
        "platform_ad_set_id": row.adset_id or None,
        "platform_ad_id": row.ad_id or None,
        "date": parse_date(row.date_start),
        "spend": to_float(row.spend),
        "impressions": to_int(row.impressions),
        "reach": to_int(row.reach),
        "frequency": to_optional_float(row.frequency),
        "clicks": to_int(row.clicks),
        "inline_link_clicks": to_int(row.inline_link_clicks),
        "outbound_clicks": first_action_value(row.outbound_clicks),
        "landing_page_views": actions.get(LANDING_PAGE_VIEW, 0),
        "leads": results.leads,
        "purchases": results.purchases,
        "purchase_value": results.purchase_value,
        "schedules": results.schedules,
        "messaging_conversations_started": actions.get(MESSAGING_STARTED, 0),
        "video_plays": video_metric(row.video_play_actions),
        "video_p25": video_metric(row.video_p25_watched_actions),
        "video_p50": video_metric(row.video_p50_watched_actions),
        "video_p75": video_metric(row.video_p75_watched_actions),
        "video_p100": video_metric(row.video_p100_watched_actions),
        "video_thruplay": video_metric(row.video_thruplay_watched_actions),
        "quality_ranking": row.quality_ranking,
        "engagement_rate_ranking": row.engagement_rate_ranking,
        "conversion_rate_ranking": row.conversion_rate_ranking,
        "actions_json": raw_array(row.actions),
        "action_values_json": raw_array(row.action_values),
        "conversions_json": raw_array(row.conversions),
        "cost_per_action_json": raw_array(row.cost_per_action_type),
    }


def breakdown_dimensions(row: MetaInsightRow, breakdown_type: BreakdownType):
    first, second = BREAKDOWN_DIMENSIONS[breakdown_type]
    dim_1 = getattr(row, first, None)
    dim_2 = getattr(row, second, None) if second else None
    return dim_1, dim_2


def normalize_breakdown_row(
    row: MetaInsightRow,
    breakdown_type: BreakdownType,
    primary_action_type: Optional[str],
) -> Dict[str, Any]:
    """Breakdown row -> column values for the insight_breakdowns table"""
    actions = parse_actions(row.actions)
    results = derive_row_results(row, primary_action_type)
    dim_1, dim_2 = breakdown_dimensions(row, breakdown_type)

    return {
        "platform_campaign_id": row.campaign_id or None,
        "platform_ad_set_id": row.adset_id or None,
        "platform_ad_id": row.ad_id or None,
        "date": parse_date(row.date_start),
        "breakdown_type": breakdown_type.value,
        "dimension_1": dim_1,
        "dimension_2": dim_2,
        "spend": to_float(row.spend),
        "impressions": to_int(row.impressions),
        "reach": to_int(row.reach),
        "clicks": to_int(row.clicks),
        "inline_link_clicks": to_int(row.inline_link_clicks),
        "outbound_clicks": first_action_value(row.outbound_clicks),
        "landing_page_views": actions.get(LANDING_PAGE_VIEW, 0),
        "leads": results.leads,
        "purchases": results.purchases,
        "purchase_value": results.purchase_value,
        "schedules": results.schedules,
        "video_thruplay": video_metric(row.video_thruplay_watched_actions),
        "actions_json": raw_array(row.actions),
    }


def normalize_campaign(c) -> Dict[str, Any]:
    return {
        "platform_campaign_id": c.id,
        "name": c.name,
        "status": c.status,
        "objective": c.objective,
        "daily_budget": minor_to_major(c.daily_budget),
        "lifetime_budget": minor_to_major(c.lifetime_budget),
        "buying_type": c.buying_type,
        "special_ad_categories": c.special_ad_categories or [],
        "created_time": parse_datetime(c.created_time),
        "start_time": parse_datetime(c.start_time),
        "stop_time": parse_datetime(c.stop_time),
    }


def normalize_ad_set(s) -> Dict[str, Any]:
    return {
        "platform_ad_set_id": s.id,
        "name": s.name,
        "status": s.status,
        "effective_status": s.effective_status,
        "daily_budget": minor_to_major(s.daily_budget),
        "lifetime_budget": minor_to_major(s.lifetime_budget),
        "bid_strategy": s.bid_strategy,
        "optimization_goal": s.optimization_goal,
        "billing_event": s.billing_event,
        "attribution_setting": s.attribution_setting,
        "start_time": parse_datetime(s.start_time),
        "end_time": parse_datetime(s.end_time),
        "created_time": parse_datetime(s.created_time),
    }


def normalize_ad(a) -> Dict[str, Any]:
    return {
        "platform_ad_id": a.id,
        "name": a.name,
        "status": a.status,
        "effective_status": a.effective_status,
        "leadgen_form_id": a.lead_gen_form_id,
        "created_time": parse_datetime(a.created_time),
    }


# ========================================
# Creatives
# ========================================

def _nested(data: Any, *keys: str) -> Any:
    for key in keys:
        if not isinstance(data, dict):
            return None
        data = data.get(key)
    return data


def story_spec_image_url(creative: Dict[str, Any]) -> Optional[str]:
    """Image from the object story spec (link, photo, then video data)"""
    spec = creative.get("object_story_spec")
    return (
        _nested(spec, "link_data", "image_url")
        or _nested(spec, "photo_data", "url")
        or _nested(spec, "video_data", "image_url")
        or None
    )


def resolve_image_url(creative: Dict[str, Any]) -> Optional[str]:
    """image_url, else story spec image, else thumbnail"""
    return creative.get("image_url") or story_spec_image_url(creative) or creative.get("thumbnail_url") or None


def creative_video_id(creative: Dict[str, Any]) -> Optional[str]:
    return _nested(creative.get("object_story_spec"), "video_data", "video_id") or None


def post_image_url(post: Dict[str, Any]) -> Optional[str]:
    """Permanent picture of a page post (full_picture, else first attachment)"""
    attachments = _nested(post, "attachments", "data")
    first = attachments[0] if isinstance(attachments, list) and attachments else None
    return post.get("full_picture") or _nested(first, "media", "image", "src") or None


def creative_update_values(creative) -> Dict[str, Any]:
    """Non-null creative fields mapped to ads columns (partial update)"""
    values = {
        "creative_url": creative.image_url,
        "creative_thumbnail_url": creative.thumbnail_url,
        "creative_video_url": creative.video_url,
        "creative_body": creative.body,
        "creative_headline": creative.title,
        "creative_cta": creative.call_to_action_type,
        "object_story_id": creative.effective_object_story_id,
    }
    return {key: value for key, value in values.items() if value}
