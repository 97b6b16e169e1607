"""Logging configuration.

Two channels are configured:

- The ``app`` logger tree: JSON lines (or plain text with ``LOG_FORMAT=text``)
  to stderr for normal application logging.
- ``app.security.alerts``: a separate, non-propagating logger for critical
  security events, written with a ``[SECURITY ALERT]`` prefix so an operator
  notices it without querying the event store.

JSON format example:
    {"ts": "2026-02-23T10:30:00.123Z", "level": "INFO", "logger": "app.services.auth_service",
     "message": "Issued user session for 65f0c2..."}
"""

from __future__ import annotations

import json
import logging
import sys
from typing import Any

from app.core.config import settings
from app.core.constants import SECURITY_ALERT_LOGGER


class _JsonFormatter(logging.Formatter):
    """Format log records as single-line JSON objects."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry: dict[str, Any] = {
            "ts": self.formatTime(record, "%Y-%m-%dT%H:%M:%S") + f".{record.msecs:03.0f}Z",
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_entry["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_entry, ensure_ascii=False, default=str)


_TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"
_ALERT_FORMAT = "[SECURITY ALERT] %(asctime)s %(message)s"


def setup_logging(level: str | None = None, fmt: str | None = None) -> None:
    """Configure application and security-alert logging.

    Args:
        level: Log level name. Defaults to ``settings.LOG_LEVEL``.
        fmt: ``json`` or ``text``. Defaults to ``settings.LOG_FORMAT``.
    """
    numeric_level = getattr(logging, (level or settings.LOG_LEVEL).upper(), logging.INFO)
    fmt = (fmt or settings.LOG_FORMAT).lower()
    formatter: logging.Formatter = _JsonFormatter() if fmt == "json" else logging.Formatter(_TEXT_FORMAT)

    app_logger = logging.getLogger("app")
    app_logger.setLevel(numeric_level)
    app_logger.handlers.clear()
    app_logger.propagate = False

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    app_logger.addHandler(stream_handler)

    # Alerts bypass the app handlers and level so they are never filtered out
    alert_logger = logging.getLogger(SECURITY_ALERT_LOGGER)
    alert_logger.setLevel(logging.WARNING)
    alert_logger.handlers.clear()
    alert_logger.propagate = False

    alert_handler = logging.StreamHandler(sys.stderr)
    alert_handler.setFormatter(logging.Formatter(_ALERT_FORMAT))
    alert_logger.addHandler(alert_handler)
