# app/core/logging_config.py
import logging
import logging.config
import sys
from typing import Any, Dict

from app.core.config import settings

PIPELINE_LOGGERS = ("app.services.pipeline", "app.services.providers", "app.services.partitioning")
QUIET_LOGGERS = ("sqlalchemy.engine", "httpx", "httpcore", "openai", "botocore", "urllib3")


def _rotating_file(filename: str, level: str) -> Dict[str, Any]:
    return {
        "class": "logging.handlers.RotatingFileHandler",
        "level": level,
        "formatter": "detailed",
        "filename": filename,
        "maxBytes": 10 * 1024 * 1024,
        "backupCount": 5,
        "delay": True,
    }


def setup_logging() -> None:
    """Console plus rotating files; pipeline and provider activity also lands in its own file."""
    # A broken handler must not take down a request or a grading job.
    logging.raiseExceptions = False

    level = "DEBUG" if settings.DEBUG else settings.LOG_LEVEL.upper()

    loggers: Dict[str, Any] = {
        "": {"handlers": ["console"], "level": "INFO"},
        "app": {"handlers": ["console", "file"], "level": level, "propagate": False},
        "uvicorn": {"handlers": ["console"], "level": "INFO", "propagate": False},
    }
    for name in PIPELINE_LOGGERS:
        loggers[name] = {"handlers": ["console", "file", "pipeline"], "level": level, "propagate": False}
    for name in QUIET_LOGGERS:
        loggers[name] = {"handlers": ["console"], "level": "WARNING", "propagate": False}

    logging.config.dictConfig({
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "default": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
            "detailed": {
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "level": level,
                "formatter": "detailed" if settings.DEBUG else "default",
                "stream": sys.stdout,
            },
            "file": _rotating_file(settings.LOG_FILE, "INFO"),
            "pipeline": _rotating_file(settings.PIPELINE_LOG_FILE, level),
        },
        "loggers": loggers,
    })

    if settings.ENVIRONMENT == "production":
        logging.getLogger("uvicorn").setLevel(logging.WARNING)

    logging.getLogger(__name__).info(
        f"Logging configured for {settings.ENVIRONMENT} (level={level}, debug={settings.DEBUG})"
    )


def get_logger(name: str) -> logging.Logger:
    return logging.getLogger(f"app.{name}")
