"""Tests for structured logging."""

import json
import logging

from sheetsync.common.logging_setup import JsonFormatter, get_service_logger, log_refresh


def make_record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("sheetsync.test", logging.INFO, __file__, 1, "hello %s", ("world",), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_includes_extras():
    line = JsonFormatter().format(make_record(service="sheets.sync", sheet_key="abc"))
    data = json.loads(line)

    assert data["message"] == "hello world"
    assert data["level"] == "INFO"
    assert data["service"] == "sheets.sync"
    assert data["sheet_key"] == "abc"


def test_service_logger_adds_service(monkeypatch):
    monkeypatch.setenv("SHEETSYNC_LOG_FORMAT", "text")
    adapter = get_service_logger("unit")

    msg, kwargs = adapter.process("msg", {})

    assert kwargs["extra"]["service"] == "unit"
    assert adapter.logger.name == "sheetsync.unit"
    assert adapter.logger.propagate is False


def test_failed_refresh_logged_as_warning(caplog):
    logger = logging.getLogger("sheetsync.test.refresh")
    logger.propagate = True

    with caplog.at_level(logging.DEBUG, logger="sheetsync.test.refresh"):
        log_refresh(logger, "abcdef0123", "failed", "remote fetch failed: 503", 12.5)
        log_refresh(logger, "abcdef0123", "local_fresh", "", 0.1)

    failed, fresh = caplog.records
    assert failed.levelno == logging.WARNING
    assert failed.sheet_key == "abcdef0123"
    assert failed.status == "failed"
    assert fresh.levelno == logging.DEBUG
