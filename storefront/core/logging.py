"""Logging configuration"""

import logging.config

from .config import settings

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging() -> None:
    """Configure root and library loggers once at startup"""
    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {"format": LOG_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "default",
            },
        },
        "root": {
            "handlers": ["console"],
            "level": settings.LOG_LEVEL,
        },
        "loggers": {
            "sqlalchemy.engine": {
                "level": "INFO" if settings.DATABASE_ECHO else "WARNING",
            },
            "uvicorn.access": {"level": "WARNING"},
        },
    })
