"""Structured logging configuration using dictConfig.

Development gets a single-line console format; production emits one JSON
object per record (python-json-logger) so `extra={...}` fields such as
digest windows and hype counts stay queryable.
"""
import logging
import logging.config
import sys
from typing import Dict, Any, Optional

from .settings import get_settings

settings = get_settings()

DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
CONSOLE_FORMAT = "%(asctime)s [%(service)s] [%(levelname)s] %(name)s: %(message)s"
JSON_FORMAT = "%(asctime)s %(levelname)s %(service)s %(environment)s %(name)s %(message)s"

# Third-party loggers kept quiet unless something goes wrong
LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "sqlalchemy.engine": "WARNING",
    "aiosqlite": "WARNING",
}


class ServiceContextFilter(logging.Filter):
    """Stamp every record with the service name and environment."""

    def __init__(self, service: str = "praisebot", environment: str = "development"):
        super().__init__()
        self.service = service
        self.environment = environment

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "service"):
            record.service = self.service
        if not hasattr(record, "environment"):
            record.environment = self.environment
        return True


def get_logging_config(service_name: Optional[str] = None) -> Dict[str, Any]:
    """Get logging configuration dictionary."""
    use_json = settings.environment == "production"
    level = settings.log_level.upper()

    loggers: Dict[str, Any] = {
        "praisebot": {"level": level, "handlers": ["console"], "propagate": False},
    }
    for name, library_level in LIBRARY_LEVELS.items():
        loggers[name] = {"level": library_level, "handlers": ["console"], "propagate": False}

    return {
        "version": 1,
        "disable_existing_loggers": False,
        "filters": {
            "service_context": {
                "()": ServiceContextFilter,
                "service": service_name or "praisebot",
                "environment": settings.environment,
            },
        },
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": JSON_FORMAT,
                "datefmt": DATE_FORMAT,
            },
            "console": {"format": CONSOLE_FORMAT, "datefmt": DATE_FORMAT},
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if use_json else "console",
                "filters": ["service_context"],
                "stream": sys.stdout,
            }
        },
        "loggers": loggers,
        "root": {"level": level, "handlers": ["console"]},
    }


def setup_logging(service_name: Optional[str] = None) -> None:
    """Configure structured logging using dictConfig."""
    logging.config.dictConfig(get_logging_config(service_name))


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(name)
