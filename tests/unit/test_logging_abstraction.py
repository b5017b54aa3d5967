"""Tests for the logging abstraction layer."""

from __future__ import annotations

import json
import logging

from realtime_mqtt.correlation import correlation_context
from realtime_mqtt.logging_abstraction import HumanReadableFormatter, JSONFormatter, configure_logging, get_logger


def make_record(msg: str = "Connected to %s", extra_data: dict[str, object] | None = None) -> logging.LogRecord:
    record = logging.LogRecord(
        name="realtime_mqtt.test",
        level=logging.INFO,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=("broker",),
        exc_info=None,
    )
    if extra_data is not None:
        record.extra_data = extra_data
    return record


class TestJSONFormatter:
    """Tests for JSONFormatter"""

    def test_structured_output(self):
        """Test that records are rendered as JSON with context"""
        with correlation_context("abc123"):
            output = json.loads(JSONFormatter().format(make_record(extra_data={"port": 443})))

        assert output["message"] == "Connected to broker"
        assert output["level"] == "INFO"
        assert output["correlation_id"] == "abc123"
        assert output["context"] == {"port": 443}


class TestHumanReadableFormatter:
    """Tests for HumanReadableFormatter"""

    def test_correlation_and_context(self):
        """Test that the short correlation id and context are appended"""
        with correlation_context("0123456789abcdef"):
            output = HumanReadableFormatter().format(make_record(extra_data={"port": 443}))

        assert "[01234567]" in output
        assert output.endswith("Connected to broker | port=443")

    def test_no_correlation(self):
        """Test the placeholder when no correlation id is set"""
        with correlation_context(auto_generate=False):
            output = HumanReadableFormatter().format(make_record())

        assert "[--------]" in output


class TestRealtimeLogger:
    """Tests for RealtimeLogger"""

    def test_extra_attached_to_record(self, caplog):
        """Test that extra context is stored on the record"""
        logger = get_logger("realtime_mqtt.tests.extra")

        with caplog.at_level(logging.INFO, logger="realtime_mqtt.tests.extra"):
            logger.info("Subscribed to %d topics", 2, extra={"topic": "88"})

        record = caplog.records[-1]
        assert record.getMessage() == "Subscribed to 2 topics"
        assert record.extra_data == {"topic": "88"}
        assert record.module == "test_logging_abstraction"

    def test_handlers_live_on_package_logger(self):
        """Test that module loggers share the package handlers"""
        first = get_logger("realtime_mqtt.tests.first")
        second = get_logger("realtime_mqtt.tests.second")

        assert first.logger.handlers == []
        assert first.handlers == second.handlers
        assert logging.getLogger("realtime_mqtt").handlers[0] in first.handlers

    def test_configure_is_idempotent(self):
        """Test that a second configure call keeps the existing handlers"""
        package_logger = configure_logging()
        handlers = list(package_logger.handlers)

        assert configure_logging("json") is package_logger
        assert package_logger.handlers == handlers

    def test_set_level(self):
        """Test that set_level changes what the logger emits"""
        logger = get_logger("realtime_mqtt.tests.level")

        logger.set_level(logging.WARNING)

        assert logger.isEnabledFor(logging.INFO) is False
        assert logger.isEnabledFor(logging.WARNING) is True

    def test_forced_reconfigure_applies_late_settings(self, tmp_path):
        """Test that settings loaded after import replace the handlers and level"""
        json_file = tmp_path / "realtime.jsonl"
        try:
            package_logger = configure_logging("json", json_file, debug=True, force=True)

            assert package_logger.level == logging.DEBUG
            assert len(package_logger.handlers) == 1
            assert isinstance(package_logger.handlers[0].formatter, JSONFormatter)
        finally:
            _ = configure_logging(debug=False, force=True)

        assert package_logger.level == logging.INFO
        assert json_file.exists()
