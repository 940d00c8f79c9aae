"""
Ad account model
"""
from sqlalchemy import Column, Integer, String, Boolean, DateTime, Numeric, UniqueConstraint

from adsync.models.base import BaseModel


class AdAccount(BaseModel):
    """
    Organization-scoped Meta ad account.

    Edited out-of-band (settings UI); the sync pipeline only writes
    last_synced_at and the account-info fields.
    """

    __tablename__ = "ad_accounts"

    id = Column(Integer, primary_key=True, index=True)

    # Platform info (numeric id without the act_ prefix)
    platform_account_id = Column(String(100), nullable=False, index=True)
    name = Column(String(255), nullable=False)
    objective = Column(String(100), nullable=True)
    is_active = Column(Boolean, default=True, nullable=False)

    # Result policy: which conversion event counts as "the" result
    primary_action_type = Column(String(100), nullable=True)
    target_cpl = Column(Numeric(12, 2), nullable=True)
    target_roas = Column(Numeric(8, 2), nullable=True)

    # Refreshed from the account info call
    currency = Column(String(10), nullable=True)
    timezone = Column(String(50), nullable=True)
    account_status = Column(Integer, nullable=True)

    # Sync tracking
    last_synced_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        UniqueConstraint("org_id", "platform_account_id", name="uq_ad_accounts_org_platform"),
    )
