"""
Campaign, AdSet, Ad models - Meta structure hierarchy
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, JSON, Numeric, ForeignKey, UniqueConstraint

from adsync.models.base import BaseModel


class Campaign(BaseModel):
    """Campaign, unique per (ad_account_id, platform_campaign_id)"""

    __tablename__ = "campaigns"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(Integer, ForeignKey("ad_accounts.id"), nullable=False, index=True)
    platform_campaign_id = Column(String(100), nullable=False)

    name = Column(String(255), nullable=True)
    status = Column(String(50), nullable=True)
    objective = Column(String(100), nullable=True)
    buying_type = Column(String(50), nullable=True)
    special_ad_categories = Column(JSON, nullable=True)

    # Budget in major currency units
    daily_budget = Column(Numeric(15, 2), nullable=True)
    lifetime_budget = Column(Numeric(15, 2), nullable=True)

    created_time = Column(DateTime(timezone=True), nullable=True)
    start_time = Column(DateTime(timezone=True), nullable=True)
    stop_time = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("ad_account_id", "platform_campaign_id", name="uq_campaigns_account_platform"),
    )


class AdSet(BaseModel):
    """Ad set, parent campaign resolved by platform id at write time"""

    __tablename__ = "ad_sets"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(Integer, ForeignKey("ad_accounts.id"), nullable=False, index=True)
    campaign_id = Column(Integer, ForeignKey("campaigns.id"), nullable=True, index=True)
    platform_ad_set_id = Column(String(100), nullable=False)

    name = Column(String(255), nullable=True)
    status = Column(String(50), nullable=True)
    effective_status = Column(String(50), nullable=True)

    daily_budget = Column(Numeric(15, 2), nullable=True)
    lifetime_budget = Column(Numeric(15, 2), nullable=True)

    # Optimization
    bid_strategy = Column(String(100), nullable=True)
    optimization_goal = Column(String(100), nullable=True)
    billing_event = Column(String(50), nullable=True)
    attribution_setting = Column(JSON, nullable=True)

    start_time = Column(DateTime(timezone=True), nullable=True)
    end_time = Column(DateTime(timezone=True), nullable=True)
    created_time = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("ad_account_id", "platform_ad_set_id", name="uq_ad_sets_account_platform"),
    )


class Ad(BaseModel):
    """Ad with denormalized creative fields (filled lazily)"""

    __tablename__ = "ads"

    id = Column(Integer, primary_key=True, index=True)
    ad_account_id = Column(Integer, ForeignKey("ad_accounts.id"), nullable=False, index=True)
    ad_set_id = Column(Integer, ForeignKey("ad_sets.id"), nullable=True, index=True)
    platform_ad_id = Column(String(100), nullable=False)

    name = Column(String(255), nullable=True)
    status = Column(String(50), nullable=True)
    effective_status = Column(String(50), nullable=True)
    leadgen_form_id = Column(String(100), nullable=True)
    created_time = Column(DateTime(timezone=True), nullable=True)

    # Creative
    creative_url = Column(Text, nullable=True)
    creative_thumbnail_url = Column(Text, nullable=True)
    creative_video_url = Column(Text, nullable=True)
    creative_body = Column(Text, nullable=True)
    creative_headline = Column(Text, nullable=True)
    creative_cta = Column(String(100), nullable=True)
    object_story_id = Column(String(100), nullable=True)

    __table_args__ = (
        UniqueConstraint("ad_account_id", "platform_ad_id", name="uq_ads_account_platform"),
    )
