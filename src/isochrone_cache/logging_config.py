"""Structured logging configuration using structlog.

Output format and level follow the environment:

- ``ENV=prod``: JSON lines at INFO
- anything else: human-readable console lines at DEBUG

``LOG_FORMAT`` (``json``/``text``) and ``LOG_LEVEL`` override the defaults.
Every entry carries the environment name and the installed package version,
plus whatever was bound with ``bind_trace_id`` for the current request.

Example:
    configure_logging()
    logger = get_logger(__name__)
    logger.info("Isochrone cache HIT", key="2.352_48.857_15_walking")
"""

import logging
import os
import sys
from functools import lru_cache
from importlib.metadata import PackageNotFoundError, version
from typing import Optional, TextIO

import structlog

# Third-party loggers that are too chatty at DEBUG
_QUIET_LOGGERS = ("urllib3", "werkzeug")


@lru_cache(maxsize=1)
def _get_app_version() -> str:
    """Installed distribution version, or "unknown" when running from a checkout."""
    try:
        return version("isochrone-cache")
    except PackageNotFoundError:
        return "unknown"


def _rename_event_to_message(logger, method_name, event_dict):
    """Rename 'event' key to 'message' for consistency with standard logging."""
    if "event" in event_dict:
        event_dict["message"] = event_dict.pop("event")
    return event_dict


def _add_environment_context(logger, method_name, event_dict):
    event_dict["environment"] = os.getenv("ENV", "local")
    event_dict["app_version"] = _get_app_version()
    return event_dict


def configure_logging(
    stream: Optional[TextIO] = None,
    log_format: Optional[str] = None,
    log_level: Optional[str] = None,
) -> None:
    """Configure structlog and the stdlib root logger.

    Args:
        stream: Output stream, sys.stdout when omitted (tests pass a StringIO).
        log_format: "json" or "text"; falls back to LOG_FORMAT, then ENV.
        log_level: Level name; falls back to LOG_LEVEL, then ENV.
    """
    is_prod = os.getenv("ENV", "local") == "prod"

    log_format = (log_format or os.getenv("LOG_FORMAT", "json" if is_prod else "text")).lower()
    log_level = (log_level or os.getenv("LOG_LEVEL", "INFO" if is_prod else "DEBUG")).upper()
    numeric_level = getattr(logging, log_level, logging.INFO)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(numeric_level)

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(numeric_level, logging.WARNING))

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        _add_environment_context,
        _rename_event_to_message,
    ]

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=False))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=False,  # tests reconfigure between cases
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a configured logger instance.

    Example:
        logger = get_logger(__name__)
        logger.warning("Durable tier write failed", key=key)
    """
    return structlog.get_logger(name)


def bind_trace_id(trace_id: str) -> None:
    """Attach trace_id to every log entry emitted in the current context."""
    structlog.contextvars.bind_contextvars(trace_id=trace_id)


def clear_trace_id() -> None:
    """Drop the request-scoped logging context."""
    structlog.contextvars.clear_contextvars()
