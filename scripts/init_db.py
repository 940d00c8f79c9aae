"""
Database initialization script
Creates all tables and the reporting materialized view
"""
import sys
import os

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from dotenv import load_dotenv

load_dotenv()

from sqlalchemy import text  # noqa: E402
from adsync.core.config import settings  # noqa: E402
from adsync.core.database import Base, get_engine  # noqa: E402
from adsync.core.logger import setup_logging  # noqa: E402
import adsync.models  # noqa: E402,F401  Import all models to register them

logger = setup_logging(settings.LOG_LEVEL)


def summary_view_sql(view_name: str) -> list:
    """Per account per day totals from account-level insights"""
    return [
        f"""
        CREATE MATERIALIZED VIEW IF NOT EXISTS {view_name} AS
        SELECT
            i.org_id,
            i.ad_account_id,
            a.name AS account_name,
            a.currency,
            i.date,
            SUM(i.spend) AS spend,
            SUM(i.impressions) AS impressions,
            SUM(i.reach) AS reach,
            SUM(i.clicks) AS clicks,
            SUM(i.inline_link_clicks) AS link_clicks,
            SUM(i.landing_page_views) AS landing_page_views,
            SUM(i.leads) AS leads,
            SUM(i.purchases) AS purchases,
            SUM(i.purchase_value) AS purchase_value,
            SUM(i.schedules) AS schedules,
            SUM(i.messaging_conversations_started) AS messaging_conversations_started,
            SUM(i.video_thruplay) AS video_thruplay
        FROM insights i
        JOIN ad_accounts a ON a.id = i.ad_account_id
        WHERE i.level = 'account'
        GROUP BY i.org_id, i.ad_account_id, a.name, a.currency, i.date
        """,
        # REFRESH ... CONCURRENTLY needs a unique index
        f"CREATE UNIQUE INDEX IF NOT EXISTS uq_{view_name} ON {view_name} (ad_account_id, date)",
    ]


def create_tables():
    """Create all tables"""
    logger.info("Creating tables...")
    Base.metadata.create_all(bind=get_engine())
    logger.info("All tables created successfully")


def create_summary_view():
    """Create the materialized view the sync refreshes after each run"""
    view_name = settings.SUMMARY_VIEW_NAME
    logger.info(f"Creating materialized view {view_name}...")
    with get_engine().begin() as conn:
        for statement in summary_view_sql(view_name):
            conn.execute(text(statement))
    logger.info(f"Materialized view {view_name} ready")


def main():
    """Main initialization function"""
    logger.info("=" * 50)
    logger.info(f"{settings.APP_NAME} - Database Initialization")
    logger.info("=" * 50)

    try:
        create_tables()
        create_summary_view()
        logger.info("Database initialization completed!")
    except Exception as e:
        logger.error(f"Initialization failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
