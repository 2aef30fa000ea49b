import logging
import os
from logging.config import dictConfig
from typing import Optional

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def configure_logging(level: Optional[str] = None, debug_sql: Optional[bool] = None) -> None:
    """Set up root logging once at startup.

    ``level`` defaults to EDUMIND_LOG_LEVEL. ``debug_sql`` (EDUMIND_DEBUG_SQL=1)
    lets SQLAlchemy log every statement; otherwise the engine and urllib3 are
    held at WARNING so request logs stay readable.
    """
    level = (level or os.getenv("EDUMIND_LOG_LEVEL", "INFO")).upper()
    if debug_sql is None:
        debug_sql = os.getenv("EDUMIND_DEBUG_SQL", "0") == "1"

    dictConfig(
        {
            "version": 1,
            "disable_existing_loggers": False,
            "formatters": {"plain": {"format": LOG_FORMAT}},
            "handlers": {
                "console": {"class": "logging.StreamHandler", "formatter": "plain"},
            },
            "loggers": {
                "sqlalchemy.engine": {"level": "INFO" if debug_sql else "WARNING"},
                "urllib3": {"level": "WARNING"},
            },
            "root": {"handlers": ["console"], "level": level},
        }
    )
    logging.getLogger(__name__).debug("Logging configured at %s (sql=%s)", level, debug_sql)
