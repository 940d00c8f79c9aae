"""
Sync plan and result values
"""
from datetime import date
from typing import Optional, Generic, TypeVar, List
from pydantic import BaseModel, ConfigDict

from adsync.models.enums import SyncType, SyncRunStatus

T = TypeVar("T")


class BatchFailure(BaseModel):
    """One item of a batch that failed (ad id, campaign id, day, breakdown type)"""
    item: str
    error: str
    kind: Optional[str] = None


class BatchResult(BaseModel, Generic[T]):
    """Successes and failures of a catch-and-continue loop"""
    items: List[T] = []
    failures: List[BatchFailure] = []

    @property
    def ok(self) -> bool:
        return not self.failures


class ErrorDetail(BaseModel):
    """Failure recorded in the run's audit row"""
    account: Optional[str] = None
    account_id: Optional[str] = None
    step: Optional[str] = None
    error: str


class SyncReport(BaseModel):
    """Counts returned by a sync step; reports are folded with merge()"""

    model_config = ConfigDict(frozen=True)

    accounts: int = 0
    campaigns: int = 0
    ad_sets: int = 0
    ads: int = 0
    creatives: int = 0
    insights: int = 0
    breakdowns: int = 0
    errors: int = 0
    error_details: List[ErrorDetail] = []

    def merge(self, other: "SyncReport") -> "SyncReport":
        return SyncReport(
            accounts=self.accounts + other.accounts,
            campaigns=self.campaigns + other.campaigns,
            ad_sets=self.ad_sets + other.ad_sets,
            ads=self.ads + other.ads,
            creatives=self.creatives + other.creatives,
            insights=self.insights + other.insights,
            breakdowns=self.breakdowns + other.breakdowns,
            errors=self.errors + other.errors,
            error_details=[*self.error_details, *other.error_details],
        )

    @property
    def records_synced(self) -> int:
        return self.insights + self.breakdowns

    def summary_line(self) -> str:
        return (
            f"Campaigns: {self.campaigns} | Ad Sets: {self.ad_sets} | Ads: {self.ads} | "
            f"Creatives: {self.creatives} | Insight rows: {self.insights} | "
            f"Breakdown rows: {self.breakdowns} | Errors: {self.errors}"
        )


class SyncPlan(BaseModel):
    """What one run covers"""
    date_start: date
    date_end: date
    sync_type: SyncType = SyncType.INCREMENTAL
    skip_breakdowns: bool = False
    breakdown_start: Optional[date] = None
    force_structure: bool = False
    levels: Optional[List[str]] = None


class RunSummary(BaseModel):
    """Folded result of one run over all accounts"""
    plan: SyncPlan
    report: SyncReport
    duration_ms: int = 0

    @property
    def status(self) -> SyncRunStatus:
        return SyncRunStatus.SUCCESS if self.report.errors == 0 else SyncRunStatus.PARTIAL
