"""Tests for logging helpers."""

# pylint: disable=protected-access

from __future__ import annotations

import logging

import pytest

from voide_oauth import log
from voide_oauth.log import enable_debug, get_logger, redact_sensitive_data, set_level


@pytest.fixture()
def fresh_logger(monkeypatch: pytest.MonkeyPatch):
    """Reconfigure the package logger from scratch for one test."""
    logger = logging.getLogger("voide_oauth")
    saved = (logger.level, list(logger.handlers))
    logger.handlers.clear()
    monkeypatch.setattr(log._LoggerHolder, "instance", None)
    yield logger
    logger.handlers[:] = saved[1]
    logger.setLevel(saved[0])


class TestGetLogger:
    """Tests for logger configuration."""

    def test_default_level(self, fresh_logger: logging.Logger) -> None:
        """The logger defaults to WARNING with one stream handler."""
        logger = get_logger()
        assert logger is fresh_logger
        assert logger.level == logging.WARNING
        assert len(logger.handlers) == 1

    def test_level_from_environment(self, fresh_logger: logging.Logger, monkeypatch) -> None:
        """VOIDE_LOG__LEVEL sets the initial level."""
        monkeypatch.setenv("VOIDE_LOG__LEVEL", "INFO")
        assert get_logger().level == logging.INFO

    def test_configured_once(self, fresh_logger: logging.Logger) -> None:
        """Repeated calls do not add handlers."""
        get_logger()
        get_logger()
        assert len(fresh_logger.handlers) == 1

    def test_set_level(self, fresh_logger: logging.Logger) -> None:
        """set_level accepts names and numbers."""
        set_level("error")
        assert fresh_logger.level == logging.ERROR
        set_level(logging.INFO)
        assert fresh_logger.level == logging.INFO
        enable_debug()
        assert fresh_logger.level == logging.DEBUG


class TestRedactSensitiveData:
    """Tests for redact_sensitive_data."""

    def test_token_response(self) -> None:
        """Token values are redacted but token_type is kept."""
        redacted = redact_sensitive_data(
            {
                "access_token": "at",
                "refresh_token": "rt",
                "id_token": "it",
                "token_type": "Bearer",
                "expires_in": 3600,
                "scope": "a b",
            }
        )
        assert redacted == {
            "access_token": "[REDACTED]",
            "refresh_token": "[REDACTED]",
            "id_token": "[REDACTED]",
            "token_type": "Bearer",
            "expires_in": 3600,
            "scope": "a b",
        }

    def test_nested(self) -> None:
        """Nested dicts and lists are traversed."""
        redacted = redact_sensitive_data(
            {"items": [{"client_secret": "s", "name": "n"}], "code_verifier": "v"}
        )
        assert redacted == {
            "items": [{"client_secret": "[REDACTED]", "name": "n"}],
            "code_verifier": "[REDACTED]",
        }

    def test_original_untouched(self) -> None:
        """The input is not modified."""
        data = {"access_token": "at"}
        redact_sensitive_data(data)
        assert data == {"access_token": "at"}

    def test_max_depth(self) -> None:
        """Deep structures are cut off."""
        assert redact_sensitive_data({"a": {"b": 1}}, max_depth=1) == {"a": "[MAX_DEPTH]"}

    def test_scalars(self) -> None:
        """Scalars and None pass through."""
        assert redact_sensitive_data(None) is None
        assert redact_sensitive_data("plain") == "plain"
