"""
Logging configuration for the dormitory backend.
Console output with a single standard formatter; level comes from KTX_LOG_LEVEL.
"""

import logging
import logging.config

import config

LOGGING_CONFIG = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "standard": {
            "format": "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "standard",
            "stream": "ext://sys.stdout",
        },
    },
    "loggers": {
        "sqlalchemy.engine": {"level": "INFO" if config.SQL_ECHO else "WARNING", "propagate": True},
        "uvicorn.access": {"level": "INFO", "propagate": True},
    },
    "root": {
        "handlers": ["console"],
        "level": config.LOG_LEVEL,
    },
}


def setup_logging(level: str = None) -> None:
    """Apply the logging configuration; call once at application startup."""
    cfg = dict(LOGGING_CONFIG)
    if level:
        cfg["root"] = {**cfg["root"], "level": level}
    logging.config.dictConfig(cfg)
    logging.getLogger(__name__).debug("logging configured at %s", cfg["root"]["level"])
