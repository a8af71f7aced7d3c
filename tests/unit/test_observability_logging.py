"""Tests for structured logging utilities."""

import io
import json
import logging
import sys

import pytest

from sessionvault.infra.observability.logging import JSONFormatter, setup_logging


def test_json_formatter_includes_session_fields() -> None:
    """JSON formatter should copy session extras into the entry."""
    formatter = JSONFormatter()
    record = logging.LogRecord(
        name="sessionvault.infra.session.sweeper",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg="Expired sessions swept",
        args=(),
        exc_info=None,
    )
    record.deleted_count = 3
    record.session_id = "42"
    record.interval_seconds = 86400

    payload = json.loads(formatter.format(record))

    assert payload["message"] == "Expired sessions swept"
    assert payload["component"] == "sessionvault.infra.session.sweeper"
    assert payload["level"] == "INFO"
    assert payload["deleted_count"] == 3
    assert payload["session_id"] == "42"
    assert payload["interval_seconds"] == 86400
    assert "session_name" not in payload


def test_json_formatter_includes_exception() -> None:
    formatter = JSONFormatter()
    try:
        raise ValueError("boom")
    except ValueError:
        exc = sys.exc_info()

    record = logging.LogRecord("sweeper", logging.ERROR, __file__, 1, "failed", (), exc)

    payload = json.loads(formatter.format(record))

    assert "ValueError: boom" in payload["exception"]


def test_setup_logging_configures_json_handler(monkeypatch: pytest.MonkeyPatch) -> None:
    """setup_logging should configure a JSON console handler on stderr."""
    stream = io.StringIO()
    monkeypatch.setattr("sys.stderr", stream)

    root_logger = logging.getLogger()
    original_handlers = list(root_logger.handlers)
    original_level = root_logger.level

    try:
        setup_logging(level="INFO", json_format=True, log_file=None)
        logging.getLogger("test_setup_logging").info(
            "test message", extra={"session_name": "sid"}
        )
    finally:
        root_logger.handlers = original_handlers
        root_logger.setLevel(original_level)

    payload = json.loads(stream.getvalue().strip().splitlines()[-1])

    assert payload["message"] == "test message"
    assert payload["session_name"] == "sid"


def test_setup_logging_plain_text_format(monkeypatch: pytest.MonkeyPatch) -> None:
    stream = io.StringIO()
    monkeypatch.setattr("sys.stderr", stream)

    root_logger = logging.getLogger()
    original_handlers = list(root_logger.handlers)
    original_level = root_logger.level

    try:
        setup_logging(level="DEBUG", json_format=False)
        logging.getLogger("plain").debug("plain message")
    finally:
        root_logger.handlers = original_handlers
        root_logger.setLevel(original_level)

    last_line = stream.getvalue().strip().splitlines()[-1]

    assert "plain - DEBUG - plain message" in last_line
