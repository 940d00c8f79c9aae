# Core module - config, database, logging
from adsync.core.config import settings, get_settings, ConfigurationError
from adsync.core.database import Base, get_engine, get_session
