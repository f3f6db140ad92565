"""Logging utilities for voide-oauth.

Token handling never raises from a log call; secrets are redacted
before anything reaches a handler.
"""

from __future__ import annotations

import logging
import sys

from typing import Any


class _LoggerHolder:
    """Holds the configured package logger."""

    instance: logging.Logger | None = None


def get_logger() -> logging.Logger:
    """Return the ``voide_oauth`` logger, configuring it on first use.

    Level and format come from ``LogSettings`` (``VOIDE_LOG__LEVEL``,
    ``VOIDE_LOG__FORMAT``). Module loggers such as ``voide_oauth.auth``
    propagate to it.

    Returns
    -------
    logging.Logger
        The package logger, writing to stderr.
    """
    if _LoggerHolder.instance is None:
        from .config import LogSettings

        log_settings = LogSettings()
        logger = logging.getLogger("voide_oauth")
        logger.setLevel(log_settings.level)

        # The host CLI may already have attached its own handler
        if not logger.handlers:
            stderr_handler = logging.StreamHandler(sys.stderr)
            stderr_handler.setFormatter(logging.Formatter(log_settings.format))
            logger.addHandler(stderr_handler)

        _LoggerHolder.instance = logger

    return _LoggerHolder.instance


def set_level(level: int | str) -> None:
    """Change the package log level.

    Parameters
    ----------
    level : int or str
        A ``logging`` constant or its name, case-insensitive ("info").
    """
    if isinstance(level, str):
        level = logging.getLevelName(level.upper())
    get_logger().setLevel(level)


def enable_debug() -> None:
    """Enable verbose logging of flows, exchanges and refreshes."""
    set_level(logging.DEBUG)


# Substrings marking a key whose value must never be logged
_SENSITIVE_KEYS = (
    "token",
    "secret",
    "password",
    "code",
    "verifier",
    "credential",
    "assertion",
)

# Descriptive keys that happen to contain a sensitive substring
_SAFE_KEYS = frozenset({"token_type"})


def _is_sensitive(key: Any) -> bool:
    name = str(key).lower()
    return name not in _SAFE_KEYS and any(part in name for part in _SENSITIVE_KEYS)


def redact_sensitive_data(
    data: dict[str, Any] | list[Any] | str | None, max_depth: int = 5
) -> dict[str, Any] | list[Any] | str | None:
    """Return a copy of ``data`` that is safe to log.

    Values under keys such as ``access_token``, ``client_secret`` or
    ``code_verifier`` become ``"[REDACTED]"``. Nested dicts and lists
    are walked; the input is never modified.

    Parameters
    ----------
    data : dict or list or str or None
        Typically a token endpoint response body.
    max_depth : int, optional
        Nesting levels to walk before giving up (default: 5).

    Returns
    -------
    dict or list or str or None
        The redacted copy.
    """
    if max_depth <= 0:
        return "[MAX_DEPTH]"
    if isinstance(data, dict):
        return {
            key: "[REDACTED]" if _is_sensitive(key) else redact_sensitive_data(value, max_depth - 1)
            for key, value in data.items()
        }
    if isinstance(data, list):
        return [redact_sensitive_data(item, max_depth - 1) for item in data]
    return data
