"""
AdSync Configuration
Load settings from environment variables
"""
import json
from functools import lru_cache
from typing import Optional, List, Any, Annotated
from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode


class ConfigurationError(Exception):
    """Required configuration is missing or invalid"""


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # ============================================
    # Application Settings
    # ============================================
    APP_NAME: str = "AdSync"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    LOG_DIR: Optional[str] = None

    # ============================================
    # Database Settings
    # ============================================
    POSTGRES_USER: str = "postgres"
    POSTGRES_PWD: str = ""
    POSTGRES_HOST: Optional[str] = None
    POSTGRES_PORT: int = 5432
    POSTGRES_DB: str = "postgres"
    POSTGRES_SSLMODE: str = "require"
    DATABASE_URL: Optional[str] = None

    @property
    def database_url(self) -> str:
        """Get database URL, construct from parts if not provided"""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        if not self.POSTGRES_HOST:
            raise ConfigurationError("DATABASE_URL or POSTGRES_HOST must be set")
        return (
            f"postgresql://{self.POSTGRES_USER}:{self.POSTGRES_PWD}@{self.POSTGRES_HOST}"
            f":{self.POSTGRES_PORT}/{self.POSTGRES_DB}?sslmode={self.POSTGRES_SSLMODE}"
        )

    # ============================================
    # Meta Marketing API Settings
    # ============================================
    META_ACCESS_TOKEN: Optional[str] = None
    META_API_VERSION: str = "v21.0"
    META_API_BASE_URL: str = "https://graph.facebook.com"
    META_REQUEST_TIMEOUT: float = 60.0
    META_RETRY_DELAYS: Annotated[List[float], NoDecode] = [15, 30, 60, 120]
    META_PAGE_THROTTLE_SECONDS: float = 1.0
    META_STRUCTURE_LOOKBACK_MONTHS: int = 18
    META_STRUCTURE_PAGE_SIZE: int = 200
    META_INSIGHTS_PAGE_SIZE: int = 500
    META_CREATIVE_BATCH_SIZE: int = 50

    @property
    def meta_api_url(self) -> str:
        return f"{self.META_API_BASE_URL}/{self.META_API_VERSION}"

    # ============================================
    # Organization
    # ============================================
    ORG_ID: Optional[str] = None

    # ============================================
    # Sync Policy
    # ============================================
    SYNC_LEVELS: Annotated[List[str], NoDecode] = ["account", "campaign", "ad"]
    SYNC_BREAKDOWN_LEVEL: str = "ad"
    SYNC_ROLLING_BREAKDOWN_DAYS: int = 2
    SYNC_ACCOUNT_THROTTLE_SECONDS: float = 3.0
    SYNC_BACKFILL_BATCH_DAYS: int = 14
    SYNC_CREATIVE_LIMIT: int = 500
    SUMMARY_VIEW_NAME: str = "mv_account_daily_summary"

    # ============================================
    # Scheduler Settings
    # ============================================
    SCHEDULER_ENABLED: bool = True
    SYNC_TIME: str = "01:30"
    SYNC_TIMEZONE: str = "UTC"
    SCHEDULED_SYNC_DAYS: int = 7

    @field_validator("SYNC_LEVELS", "META_RETRY_DELAYS", mode="before")
    @classmethod
    def split_list(cls, value: Any) -> Any:
        """Accept a JSON array or a comma-separated string from the environment"""
        if not isinstance(value, str):
            return value
        value = value.strip()
        if value.startswith("["):
            return json.loads(value)
        return [item.strip() for item in value.split(",") if item.strip()]

    def missing_required(self) -> List[str]:
        """Names of required settings that are not configured"""
        missing = []
        if not self.META_ACCESS_TOKEN:
            missing.append("META_ACCESS_TOKEN")
        if not self.ORG_ID:
            missing.append("ORG_ID")
        if not self.DATABASE_URL and not self.POSTGRES_HOST:
            missing.append("DATABASE_URL/POSTGRES_HOST")
        return missing

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = True
        extra = "ignore"  # Ignore extra fields from .env


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
