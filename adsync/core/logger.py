"""
Logging setup shared by the CLI, the scheduler and the scripts
"""
import logging
import os
from datetime import datetime
from typing import Optional

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> logging.Logger:
    """Configure logging to console and, when log_dir is set, to a run file."""
    handlers = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        handlers.append(logging.FileHandler(os.path.join(log_dir, f"sync_{timestamp}.log")))

    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )
    # httpx logs every request URL at INFO, including the access token
    logging.getLogger("httpx").setLevel(logging.WARNING)
    return logging.getLogger("adsync")
