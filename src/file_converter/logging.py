"""Logging setup: stdlib handlers for files/console, structlog for request-scoped events."""

from __future__ import annotations

import logging
import logging.config
from pathlib import Path
from typing import Any, Dict

import structlog

from .config import LoggingSettings


def configure_logging(settings: LoggingSettings, *, json_output: bool = False) -> None:
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)

    level_value = getattr(logging, settings.level.upper(), logging.INFO)

    logging_config: Dict[str, Any] = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "plain": {
                "format": "%(asctime)s %(levelname)s %(name)s %(message)s",
            },
        },
        "handlers": {
            "console": {
                "class": "logging.StreamHandler",
                "formatter": "plain",
                "level": settings.level,
            },
            "file": {
                "class": "logging.handlers.RotatingFileHandler",
                "filename": str(log_dir / "conversion.log"),
                "formatter": "plain",
                "maxBytes": settings.max_log_file_size_mb * 1024 * 1024,
                "backupCount": settings.backup_count,
                "level": settings.level,
                "encoding": "utf-8",
            },
        },
        "root": {
            "handlers": ["console", "file"],
            "level": settings.level,
        },
    }

    logging.config.dictConfig(logging_config)

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(level_value),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    return structlog.get_logger(name)


def request_context(request_id: str, **fields: Any) -> Any:
    """Context manager tagging structlog events of the current task with ``request_id``."""
    return structlog.contextvars.bound_contextvars(request_id=request_id, **fields)
