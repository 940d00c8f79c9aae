"""
Enums for database models and sync options
"""
import enum


class InsightLevel(str, enum.Enum):
    """Stored insight level (API uses 'adset' for AD_SET)"""
    ACCOUNT = "account"
    CAMPAIGN = "campaign"
    AD_SET = "ad_set"
    AD = "ad"

    @property
    def api_value(self) -> str:
        return "adset" if self is InsightLevel.AD_SET else self.value

    @classmethod
    def parse(cls, value: str) -> "InsightLevel":
        """Accept both the stored and the API spelling"""
        return cls("ad_set" if value == "adset" else value)


class BreakdownType(str, enum.Enum):
    """Dimensional slices pulled from the insights endpoint"""
    AGE_GENDER = "age_gender"
    DEVICE = "device"
    PLACEMENT = "placement"
    REGION = "region"
    HOURLY = "hourly"


class SyncType(str, enum.Enum):
    """Kind of run recorded in sync_logs"""
    INCREMENTAL = "incremental"
    FULL = "full"
    BACKFILL = "backfill"


class SyncRunStatus(str, enum.Enum):
    """Outcome of one run"""
    SUCCESS = "success"
    PARTIAL = "partial"
