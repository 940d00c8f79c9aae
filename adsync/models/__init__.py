"""
Database models for AdSync
"""
from adsync.models.base import Base, BaseModel, OrgScopedMixin, TimestampMixin
from adsync.models.enums import InsightLevel, BreakdownType, SyncType, SyncRunStatus

# Account
from adsync.models.platform import AdAccount

# Structure
from adsync.models.campaign import Campaign, AdSet, Ad

# Facts
from adsync.models.insight import Insight, InsightBreakdown, INSIGHT_KEY, BREAKDOWN_KEY

# Audit
from adsync.models.task import SyncRun


__all__ = [
    # Base
    "Base", "BaseModel", "OrgScopedMixin", "TimestampMixin",

    # Enums
    "InsightLevel", "BreakdownType", "SyncType", "SyncRunStatus",

    # Account
    "AdAccount",

    # Structure
    "Campaign", "AdSet", "Ad",

    # Facts
    "Insight", "InsightBreakdown", "INSIGHT_KEY", "BREAKDOWN_KEY",

    # Audit
    "SyncRun",
]
