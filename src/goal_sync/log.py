"""Structured logging setup for goal-sync.

One pipe-separated stderr format for the whole process, plus a filter that
masks OAuth token values and bearer tokens before they reach any handler.
"""

from __future__ import annotations

import logging
import re
import sys

_LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

# Marks the handler installed by setup_logging so repeated calls reuse it.
_HANDLER_ATTR = "_goal_sync_log_handler"

# Client libraries that are chatty at INFO (discovery cache, connection pool).
_NOISY_LOGGERS = (
    "googleapiclient.discovery",
    "googleapiclient.discovery_cache",
    "google.auth.transport.requests",
    "urllib3.connectionpool",
    "sqlalchemy.engine",
)

_SECRET_PATTERN = re.compile(
    r"""(?i)(['"]?(?:access_token|refresh_token|client_secret)['"]?\s*[:=]\s*['"]?)([^'"\s,&}]+)"""
)
_BEARER_PATTERN = re.compile(r"(?i)(bearer\s+)([A-Za-z0-9._\-]+)")


def redact_secrets(message: str) -> str:
    """Replace token and client-secret values in *message* with ``***``."""
    message = _SECRET_PATTERN.sub(r"\1***", message)
    return _BEARER_PATTERN.sub(r"\1***", message)


class SecretRedactingFilter(logging.Filter):
    """Rewrite a record's rendered message with secrets masked."""

    def filter(self, record: logging.LogRecord) -> bool:
        rendered = record.getMessage()
        redacted = redact_secrets(rendered)
        if redacted != rendered:
            record.msg = redacted
            record.args = None
        return True


def setup_logging(level: str = "INFO") -> None:
    """Configure the root logger for a sync run.

    Sets the root level, attaches a single stderr handler with the project
    format and the secret-redacting filter, and raises third-party client
    loggers to WARNING unless *level* is DEBUG.  Safe to call repeatedly.

    Args:
        level: A standard logging level name (e.g. ``"DEBUG"``, ``"INFO"``).

    Raises:
        ValueError: If *level* is not a recognised logging level string.
    """
    numeric_level = logging.getLevelName(level.upper())
    if not isinstance(numeric_level, int):
        raise ValueError(f"Invalid log level: {level!r}")

    root = logging.getLogger()
    root.setLevel(numeric_level)

    library_level = numeric_level if numeric_level <= logging.DEBUG else logging.WARNING
    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(library_level)

    for handler in root.handlers:
        if getattr(handler, _HANDLER_ATTR, False):
            handler.setLevel(numeric_level)
            return

    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(numeric_level)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S"))
    handler.addFilter(SecretRedactingFilter())

    setattr(handler, _HANDLER_ATTR, True)
    root.addHandler(handler)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger (``__name__`` of the caller, usually)."""
    return logging.getLogger(name)
