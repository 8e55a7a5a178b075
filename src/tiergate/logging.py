"""Logging configuration for Tiergate."""

import logging
import sys
from typing import Any, Optional

import structlog

from tiergate import __version__
from tiergate.config import get_settings


def add_service_context(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Stamp every event with the service name, version and counter store backend."""
    event_dict.setdefault("service", "tiergate")
    event_dict.setdefault("version", __version__)
    event_dict.setdefault("store_backend", get_settings().store_backend)
    return event_dict


def setup_logging(level_name: Optional[str] = None, log_format: Optional[str] = None) -> None:
    """Configure structured logging.

    ``level_name`` and ``log_format`` override the settings, so the launcher
    can configure logging before the app is imported.
    """
    settings = get_settings()
    level_name = level_name or settings.log_level
    log_format = log_format or settings.log_format

    processors = [
        structlog.contextvars.merge_contextvars,
        add_service_context,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.format_exc_info,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty()))

    level = logging.getLevelName(level_name.upper())
    if not isinstance(level, int):
        raise ValueError(f"Unknown log level: {level_name}")

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    # Access logs are off in the launcher; client libraries log at warning and above
    for noisy in ("uvicorn.access", "redis", "httpx"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
