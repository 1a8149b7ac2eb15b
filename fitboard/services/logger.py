"""
Application logger.

Call sites pass structured context as the single log argument:

    logger.error("Failed to get global leaderboard", {"limit": 50})

Records go to stdout. ERROR and above are also sent to PostHog, with the
context dict attached as event properties, when analytics is configured.
"""

import logging
import sys
from typing import Any, Dict

from fitboard.core.analytics import (
    capture_exception as posthog_capture_exception,
    initialize_posthog,
    track_event as posthog_track_event,
)
from fitboard.core.config import settings

LOGGER_NAME = "fitboard.api"

FORMATTER = logging.Formatter(
    fmt="%(asctime)s %(levelname)s [%(name)s] %(message)s%(context_text)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)


class _ContextFilter(logging.Filter):
    """
    Moves a context dict passed as the log argument onto `record.context`.

    Messages are often f-strings carrying request ids, so they must not go
    through %-interpolation against the dict.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.args, dict):
            record.context = record.args
            record.args = ()
        context = getattr(record, "context", None) or {}
        record.context_text = (
            " " + " ".join(f"{key}={value}" for key, value in context.items())
            if context
            else ""
        )
        return True


class _PostHogErrorHandler(logging.Handler):
    """Sends ERROR/CRITICAL logs to PostHog for observability."""

    def __init__(self, level: int = logging.ERROR) -> None:
        super().__init__(level=level)

    @staticmethod
    def _properties(record: logging.LogRecord) -> Dict[str, Any]:
        properties: Dict[str, Any] = {
            "logger_name": record.name,
            "level": record.levelname,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "lineno": record.lineno,
        }
        context = getattr(record, "context", None)
        if context is None and isinstance(record.args, dict):
            context = record.args
        if context:
            properties["context"] = {key: str(value) for key, value in context.items()}
        return properties

    def emit(self, record: logging.LogRecord) -> None:
        try:
            properties = self._properties(record)
            exc_value = record.exc_info[1] if record.exc_info else None
            if isinstance(exc_value, Exception):
                posthog_capture_exception(exc_value, properties=properties)
            else:
                posthog_track_event("server", "server_log_error", properties=properties)
        except Exception:
            # A logging handler must never raise
            self.handleError(record)


def _configure_logger() -> logging.Logger:
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    logger.setLevel(settings.LOG_LEVEL.upper())
    logger.addFilter(_ContextFilter())
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(FORMATTER)
    logger.addHandler(handler)
    logger.propagate = False

    if settings.POSTHOG_API_KEY and initialize_posthog():
        logger.addHandler(_PostHogErrorHandler())

    return logger


logger = _configure_logger()
