"""Structured logging configuration using dictConfig.

Every run and the curator service share one console handler. In production
records are emitted as JSON lines tagged with the service name (``curator``,
``daily``, ``objects-weekly``...), so scheduled runs and the HTTP service can
be told apart in the same log stream.
"""
import logging
import logging.config
import sys
from typing import Dict, Any, Optional

from .settings import get_settings

# Chatty libraries are held back unless something goes wrong
LIBRARY_LEVELS = {
    "uvicorn": "INFO",
    "uvicorn.access": "WARNING",
    "httpx": "WARNING",
    "openai": "WARNING",
    "sqlalchemy.engine": "WARNING",
}


def get_logging_config(service_name: Optional[str] = None, verbose: bool = False) -> Dict[str, Any]:
    """
    Build the dictConfig for a service or CLI run.

    Args:
        service_name: Tag added to every record
        verbose: Log ``ketogo.*`` at DEBUG regardless of ``LOG_LEVEL``
    """
    settings = get_settings()
    production = settings.environment == "production"
    level = "DEBUG" if verbose else settings.log_level.upper()
    service = service_name or "ketogo"

    config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "json": {
                "()": "pythonjsonlogger.jsonlogger.JsonFormatter",
                "fmt": "%(asctime)s %(levelname)s %(name)s %(message)s",
                "datefmt": "%Y-%m-%dT%H:%M:%S%z",
                "static_fields": {"service": service, "environment": settings.environment},
            },
            "console": {
                "format": f"%(asctime)s [{service}] [%(levelname)s] %(name)s: %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "json" if production else "console",
                "stream": sys.stdout,
            }
        },
        "loggers": {
            "ketogo": {
                "level": level,
                "handlers": ["console"],
                "propagate": False,
            },
        },
        "root": {
            "level": settings.log_level.upper(),
            "handlers": ["console"],
        },
    }

    for name, library_level in LIBRARY_LEVELS.items():
        config["loggers"][name] = {
            "level": "DEBUG" if verbose and name == "httpx" else library_level,
            "handlers": ["console"],
            "propagate": False,
        }

    return config


def setup_logging(service_name: Optional[str] = None, verbose: bool = False) -> None:
    """Configure structured logging using dictConfig."""
    logging.config.dictConfig(get_logging_config(service_name, verbose))


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance."""
    return logging.getLogger(name)
