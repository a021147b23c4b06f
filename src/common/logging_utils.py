"""Centralized logging setup and structured-context helpers.

Log records carry optional structured fields (event, component, action,
outcome, ...) passed through ``extra=extra_context(...)``. The console
format stays terse; the fields are available to any handler that wants
them.
"""
from __future__ import annotations

import logging
import os
import time
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, urlunsplit

from constants import Constants

_CONFIGURED_FLAG = "_wheelwright_configured"


def configure_logging(level: Optional[str] = None, log_file: Optional[str] = None,
                      quiet: bool = False) -> None:
    """Install the root handlers once.

    The level comes from ``level``, else the WHEELWRIGHT_LOG_LEVEL
    environment variable, else INFO.
    """
    root = logging.getLogger()
    level_name = (level or os.environ.get(Constants.ENV_LOG_LEVEL) or "INFO").upper()
    root.setLevel(getattr(logging, level_name, logging.INFO))

    if getattr(root, _CONFIGURED_FLAG, False):
        return

    formatter = logging.Formatter(Constants.LOG_FORMAT)
    handlers: list[logging.Handler] = []
    if not quiet:
        handlers.append(logging.StreamHandler())
    if log_file:
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))
    if not handlers:
        handlers.append(logging.NullHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    setattr(root, _CONFIGURED_FLAG, True)


def extra_context(**fields: Any) -> Dict[str, Any]:
    """Build the ``extra`` mapping for a structured log call, dropping None values."""
    return {k: v for k, v in fields.items() if v is not None}


def is_debug_enabled(logger: logging.Logger) -> bool:
    return logger.isEnabledFor(logging.DEBUG)


def safe_url(url: str) -> str:
    """Strip credentials, query string and fragment from a URL before logging it."""
    try:
        parts = urlsplit(url)
    except ValueError:
        return "<invalid-url>"
    netloc = parts.hostname or ""
    if parts.port:
        netloc = f"{netloc}:{parts.port}"
    return urlunsplit((parts.scheme, netloc, parts.path, "", ""))


class Timer:
    """Context manager measuring wall-clock duration in milliseconds."""

    def __init__(self) -> None:
        self._start = 0.0
        self._end: Optional[float] = None

    def __enter__(self) -> "Timer":
        self._start = time.perf_counter()
        return self

    def __exit__(self, *exc_info) -> None:
        self._end = time.perf_counter()

    def duration_ms(self) -> int:
        end = self._end if self._end is not None else time.perf_counter()
        return int((end - self._start) * 1000)
