"""
Database connection and session management
"""
from functools import lru_cache

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker, declarative_base

from adsync.core.config import settings

# Session factory, bound to the engine when a session is opened
SessionLocal = sessionmaker(autocommit=False, autoflush=False)

# Base class for models
Base = declarative_base()


@lru_cache()
def get_engine() -> Engine:
    """Create the engine on first use so imports never need a database"""
    return create_engine(
        settings.database_url,
        pool_pre_ping=True,
        echo=settings.DEBUG,
    )


def get_session() -> Session:
    """Open a session on the configured database"""
    return SessionLocal(bind=get_engine())
