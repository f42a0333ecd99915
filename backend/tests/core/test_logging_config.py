"""
Tests for structured logging configuration.
"""
import json
import logging
import sys

from examprep.core.logging_config import (
    JSONFormatter,
    build_logging_config,
    request_id_context,
)


def _record(message="hello", level=logging.INFO, **extra):
    record = logging.LogRecord(
        name="examprep.test",
        level=level,
        pathname="/app/examprep/core/session_lifecycle.py",
        lineno=42,
        msg=message,
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter."""

    def test_basic_fields(self):
        entry = json.loads(JSONFormatter().format(_record()))

        assert entry["level"] == "INFO"
        assert entry["logger"] == "examprep.test"
        assert entry["message"] == "hello"
        assert "timestamp" in entry
        assert "request_id" not in entry
        assert "source" not in entry

    def test_structured_extras_are_included(self):
        entry = json.loads(
            JSONFormatter().format(
                _record(session_id="ses_1_2_abc", test_id=7, unrelated="skip")
            )
        )

        assert entry["session_id"] == "ses_1_2_abc"
        assert entry["test_id"] == 7
        assert "unrelated" not in entry

    def test_request_id_from_context(self):
        token = request_id_context.set("req-123")
        try:
            entry = json.loads(JSONFormatter().format(_record()))
        finally:
            request_id_context.reset(token)

        assert entry["request_id"] == "req-123"

    def test_errors_carry_source_and_exception(self):
        try:
            raise ValueError("boom")
        except ValueError:
            record = _record("failed", level=logging.ERROR)
            record.exc_info = sys.exc_info()

        entry = json.loads(JSONFormatter().format(record))

        assert entry["source"].endswith("session_lifecycle.py:42")
        assert "ValueError: boom" in entry["exception"]


class TestBuildLoggingConfig:
    """Tests for the dictConfig mapping."""

    def test_development_uses_plain_formatter(self, monkeypatch):
        monkeypatch.setattr("examprep.core.logging_config.settings.ENV", "development")

        config = build_logging_config()

        assert config["handlers"]["console"]["formatter"] == "default"
        assert config["loggers"]["examprep"]["propagate"] is False

    def test_production_uses_json(self, monkeypatch):
        monkeypatch.setattr("examprep.core.logging_config.settings.ENV", "production")
        monkeypatch.setattr("examprep.core.logging_config.settings.LOG_LEVEL", "warning")

        config = build_logging_config()

        assert config["handlers"]["console"]["formatter"] == "json"
        assert config["root"]["level"] == logging.WARNING
