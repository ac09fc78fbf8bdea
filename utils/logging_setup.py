"""Structured JSON logging for processes that host a cost guard.

Every record leaving the root handler carries a ``service`` field so logs
from several guarded services can share one sink.
"""

from __future__ import annotations

import logging
import os
from typing import Any

from pythonjsonlogger import jsonlogger

DEFAULT_SERVICE = "costguard"

_LOGGING_CONFIGURED = False
_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(service)s %(message)s"


class _ServiceFilter(logging.Filter):
    def __init__(self, service: str) -> None:
        super().__init__()
        self._service = service

    def filter(self, record: logging.LogRecord) -> bool:
        record.service = getattr(record, "service", self._service)
        return True


def configure_logging(service_name: str | None = None, level: str | None = None) -> None:
    """Attach one JSON stream handler to the root logger.

    ``service_name`` falls back to ``COSTGUARD_SERVICE`` and then
    ``"costguard"``; ``level`` falls back to ``LOG_LEVEL`` and then ``INFO``.
    Later calls are no-ops until :func:`reset_logging`.
    """
    global _LOGGING_CONFIGURED
    if _LOGGING_CONFIGURED:
        return

    service = service_name or os.getenv("COSTGUARD_SERVICE") or DEFAULT_SERVICE
    root = logging.getLogger()
    root.setLevel((level or os.getenv("LOG_LEVEL", "INFO")).upper())

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(_LOG_FORMAT))
    handler.addFilter(_ServiceFilter(service))
    root.addHandler(handler)

    _LOGGING_CONFIGURED = True


def reset_logging() -> None:
    """Remove root handlers so tests can configure logging again."""
    global _LOGGING_CONFIGURED
    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    _LOGGING_CONFIGURED = False


def log_outcome(
    logger: logging.Logger,
    message: str,
    *args: Any,
    has_data: bool | None = None,
    extra: dict[str, Any] | None = None,
) -> None:
    """Log an operation result at INFO, or WARNING when it produced nothing usable."""
    level = logging.WARNING if has_data is False else logging.INFO
    logger.log(level, message, *args, extra=extra)
