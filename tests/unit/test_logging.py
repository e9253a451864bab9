# SPDX-License-Identifier: MIT
"""Tests for structured logging module."""
from __future__ import annotations

import json
import logging
import sys
from io import StringIO

import pytest

from core.utils.logging import (
    JSONFormatter,
    StructuredLogger,
    configure_logging,
    correlation_context,
    get_correlation_id,
    get_logger,
)


def _record(msg: str = "Test message", **attributes: object) -> logging.LogRecord:
    record = logging.LogRecord(
        name="test",
        level=logging.INFO,
        pathname="test.py",
        lineno=42,
        msg=msg,
        args=(),
        exc_info=None,
        func="test_func",
    )
    for key, value in attributes.items():
        setattr(record, key, value)
    return record


class TestJSONFormatter:
    """Test JSONFormatter class."""

    def test_formats_record_as_json(self) -> None:
        data = json.loads(JSONFormatter().format(_record()))

        assert data["message"] == "Test message"
        assert data["level"] == "INFO"
        assert data["logger"] == "test"
        assert data["function"] == "test_func"
        assert data["line"] == 42

    def test_includes_correlation_id(self) -> None:
        data = json.loads(JSONFormatter().format(_record(correlation_id="abc")))

        assert data["correlation_id"] == "abc"

    def test_promotes_fields_to_top_level(self) -> None:
        record = _record(fields={"breach": "daily_loss", "equity": 9750.0, "value": None})

        data = json.loads(JSONFormatter().format(record))

        assert data["breach"] == "daily_loss"
        assert data["equity"] == 9750.0
        assert data["value"] is None

    def test_serialises_unknown_types_as_strings(self) -> None:
        from datetime import date

        data = json.loads(JSONFormatter().format(_record(fields={"day": date(2024, 1, 3)})))

        assert data["day"] == "2024-01-03"

    def test_includes_exception_info(self) -> None:
        try:
            raise ValueError("Test error")
        except ValueError:
            record = _record("Error occurred", exc_info=sys.exc_info())

        data = json.loads(JSONFormatter().format(record))

        assert "ValueError" in data["exception"]
        assert "Test error" in data["exception"]


class TestStructuredLogger:
    """Test StructuredLogger class."""

    def test_fields_are_attached_to_record(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = StructuredLogger("riskguard.test")

        with caplog.at_level(logging.INFO):
            logger.info("Position sized", method="fixed_risk", size=20_000.0)

        record = caplog.records[-1]
        assert record.getMessage() == "Position sized"
        assert record.fields == {"method": "fixed_risk", "size": 20_000.0}

    @pytest.mark.parametrize("level", ["debug", "info", "warning", "error", "critical"])
    def test_level_helpers(self, caplog: pytest.LogCaptureFixture, level: str) -> None:
        logger = StructuredLogger("riskguard.test")

        with caplog.at_level(logging.DEBUG):
            getattr(logger, level)(f"{level} message")

        assert caplog.records[-1].levelname == level.upper()

    def test_disabled_level_is_skipped(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = StructuredLogger("riskguard.test")

        with caplog.at_level(logging.WARNING):
            logger.info("hidden")

        assert "hidden" not in caplog.text

    def test_explicit_correlation_id(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("riskguard.test", correlation_id="session-1")

        with caplog.at_level(logging.INFO):
            logger.info("bound")
            logger.info("override", correlation_id="call-2")

        assert caplog.records[-2].correlation_id == "session-1"
        assert caplog.records[-1].correlation_id == "call-2"

    def test_context_correlation_id(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("riskguard.test")

        with caplog.at_level(logging.INFO), correlation_context("run-42") as bound:
            assert get_correlation_id() == "run-42"
            logger.info("inside")

        assert bound == "run-42"
        assert caplog.records[-1].correlation_id == "run-42"
        assert get_correlation_id() is None

    def test_context_generates_identifier(self) -> None:
        with correlation_context() as first, correlation_context() as second:
            assert first != second
            assert get_correlation_id() == second


class TestOperation:
    """Test operation timing context manager."""

    def test_logs_start_and_completion(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("riskguard.test")

        with caplog.at_level(logging.INFO):
            with logger.operation("simulate", n_simulations=10) as op:
                op["batches"] = 2

        start, done = caplog.records[-2:]
        assert start.getMessage() == "Starting operation: simulate"
        assert done.getMessage() == "Completed operation: simulate"
        assert done.fields["batches"] == 2
        assert done.fields["status"] == "success"
        assert done.fields["duration_seconds"] >= 0

    def test_logs_failure_and_reraises(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = get_logger("riskguard.test")

        with caplog.at_level(logging.INFO):
            with pytest.raises(RuntimeError):
                with logger.operation("simulate"):
                    raise RuntimeError("boom")

        failure = caplog.records[-1]
        assert failure.levelno == logging.ERROR
        assert failure.fields["status"] == "failure"
        assert failure.fields["error_message"] == "boom"


@pytest.mark.usefixtures("restore_root_logging")
class TestConfigureLogging:
    """Test configure_logging function."""

    def test_json_output(self) -> None:
        stream = StringIO()
        configure_logging(level="INFO", use_json=True, stream=stream)

        get_logger("riskguard.configured").info("Daily reset", starting_equity=9850.0)

        data = json.loads(stream.getvalue().strip())
        assert data["message"] == "Daily reset"
        assert data["starting_equity"] == 9850.0

    def test_plain_text_output(self) -> None:
        stream = StringIO()
        configure_logging(level="warning", use_json=False, stream=stream)

        logging.getLogger("riskguard.plain").info("suppressed")
        logging.getLogger("riskguard.plain").warning("Kelly risk clamped")

        output = stream.getvalue()
        assert "suppressed" not in output
        assert "WARNING - Kelly risk clamped" in output
