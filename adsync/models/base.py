"""
Base models with common fields
"""
from sqlalchemy import Column, String, DateTime, func

from adsync.core.database import Base


class OrgScopedMixin:
    """Every synced row belongs to one organization"""

    org_id = Column(String(64), nullable=False, index=True)


class TimestampMixin:
    """created_at and updated_at, maintained by the database"""

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )


class BaseModel(Base, OrgScopedMixin, TimestampMixin):
    """Abstract base for account and structure tables"""

    __abstract__ = True
