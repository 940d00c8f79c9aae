# Meta Services Module

from adsync.services.meta.errors import ErrorKind, MetaAPIError, classify_error
from adsync.services.meta.meta_api import MetaAPI
from adsync.services.meta.meta_fetchers import MetaFetcher
from adsync.services.meta.meta_writer import MetaWriter
from adsync.services.meta.meta_sync import MetaSyncService

__all__ = [
    "ErrorKind",
    "MetaAPIError",
    "classify_error",
    "MetaAPI",
    "MetaFetcher",
    "MetaWriter",
    "MetaSyncService",
]
