"""
Sync run audit log
"""
from sqlalchemy import Column, Integer, BigInteger, String, Date, DateTime, JSON, func

from adsync.core.database import Base
from adsync.models.base import OrgScopedMixin


class SyncRun(Base, OrgScopedMixin):
    """One row per orchestration run, written once at the end"""

    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)

    sync_type = Column(String(20), nullable=False)  # incremental, full, backfill
    level = Column(String(20), nullable=False, default="all")
    date_range_start = Column(Date, nullable=False)
    date_range_end = Column(Date, nullable=False)

    # Results
    records_synced = Column(Integer, default=0)
    errors = Column(Integer, default=0)
    error_details = Column(JSON, nullable=True)
    duration_ms = Column(BigInteger, nullable=True)
    status = Column(String(20), nullable=False)  # success, partial

    completed_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
