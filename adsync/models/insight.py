"""
Daily insight facts (flat and dimensional).

Rationale:
- Attribution revises historical numbers, so rows are upserted on their
  natural key instead of appended.
- Raw action arrays are kept so results can be re-derived if an account's
  primary action type changes later.
"""
from sqlalchemy import (
    Column, Integer, BigInteger, String, Date, DateTime, Float, JSON, Numeric,
    ForeignKey, Index, func, literal_column,
)

from adsync.core.database import Base
from adsync.models.base import OrgScopedMixin


def _nullable_key(column):
    """Key part that treats NULL as equal to NULL"""
    return func.coalesce(column, literal_column("''"))


class Insight(Base, OrgScopedMixin):
    """One row per (account, level, campaign, ad set, ad, date)"""

    __tablename__ = "insights"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(Integer, ForeignKey("ad_accounts.id"), nullable=False, index=True)
    level = Column(String(20), nullable=False)

    platform_campaign_id = Column(String(100), nullable=True)
    platform_ad_set_id = Column(String(100), nullable=True)
    platform_ad_id = Column(String(100), nullable=True)
    date = Column(Date, nullable=False, index=True)

    # Delivery
    spend = Column(Numeric(15, 2), default=0)
    impressions = Column(BigInteger, default=0)
    reach = Column(BigInteger, default=0)
    frequency = Column(Float, nullable=True)
    clicks = Column(BigInteger, default=0)
    inline_link_clicks = Column(BigInteger, default=0)
    outbound_clicks = Column(BigInteger, default=0)
    landing_page_views = Column(BigInteger, default=0)

    # Derived results (primary action type policy)
    leads = Column(Integer, default=0)
    purchases = Column(Integer, default=0)
    purchase_value = Column(Numeric(15, 2), default=0)
    schedules = Column(Integer, default=0)
    messaging_conversations_started = Column(Integer, default=0)

    # Video funnel
    video_plays = Column(BigInteger, default=0)
    video_p25 = Column(BigInteger, default=0)
    video_p50 = Column(BigInteger, default=0)
    video_p75 = Column(BigInteger, default=0)
    video_p100 = Column(BigInteger, default=0)
    video_thruplay = Column(BigInteger, default=0)

    # Rankings
    quality_ranking = Column(String(50), nullable=True)
    engagement_rate_ranking = Column(String(50), nullable=True)
    conversion_rate_ranking = Column(String(50), nullable=True)

    # Raw arrays
    actions_json = Column(JSON, nullable=True)
    action_values_json = Column(JSON, nullable=True)
    conversions_json = Column(JSON, nullable=True)
    cost_per_action_json = Column(JSON, nullable=True)

    synced_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


INSIGHT_KEY = (
    Insight.ad_account_id,
    Insight.level,
    _nullable_key(Insight.platform_campaign_id),
    _nullable_key(Insight.platform_ad_set_id),
    _nullable_key(Insight.platform_ad_id),
    Insight.date,
)

Index("uq_insights_natural_key", *INSIGHT_KEY, unique=True)


class InsightBreakdown(Base, OrgScopedMixin):
    """Daily insights sliced by one breakdown type (up to two dimensions)"""

    __tablename__ = "insight_breakdowns"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(Integer, ForeignKey("ad_accounts.id"), nullable=False, index=True)
    level = Column(String(20), nullable=False)

    platform_campaign_id = Column(String(100), nullable=True)
    platform_ad_set_id = Column(String(100), nullable=True)
    platform_ad_id = Column(String(100), nullable=True)
    date = Column(Date, nullable=False, index=True)

    breakdown_type = Column(String(30), nullable=False)
    dimension_1 = Column(String(255), nullable=True)
    dimension_2 = Column(String(255), nullable=True)

    spend = Column(Numeric(15, 2), default=0)
    impressions = Column(BigInteger, default=0)
    reach = Column(BigInteger, default=0)
    clicks = Column(BigInteger, default=0)
    inline_link_clicks = Column(BigInteger, default=0)
    outbound_clicks = Column(BigInteger, default=0)
    landing_page_views = Column(BigInteger, default=0)
    leads = Column(Integer, default=0)
    purchases = Column(Integer, default=0)
    purchase_value = Column(Numeric(15, 2), default=0)
    schedules = Column(Integer, default=0)
    video_thruplay = Column(BigInteger, default=0)
    actions_json = Column(JSON, nullable=True)

    synced_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)


BREAKDOWN_KEY = (
    InsightBreakdown.ad_account_id,
    InsightBreakdown.level,
    InsightBreakdown.breakdown_type,
    _nullable_key(InsightBreakdown.platform_campaign_id),
    _nullable_key(InsightBreakdown.platform_ad_set_id),
    _nullable_key(InsightBreakdown.platform_ad_id),
    InsightBreakdown.date,
    _nullable_key(InsightBreakdown.dimension_1),
    _nullable_key(InsightBreakdown.dimension_2),
)

Index("uq_insight_breakdowns_natural_key", *BREAKDOWN_KEY, unique=True)
