"""Tests for logging configuration."""

import json
import logging
import sys

from lbaas_reconciler.config import LoggingConfig
from lbaas_reconciler.logging_config import ContextAdapter, JSONFormatter, TextFormatter, configure_logging


def _record(msg="test", args=()):
    return logging.LogRecord(
        name="test", level=logging.INFO, pathname="", lineno=0,
        msg=msg, args=args, exc_info=None,
    )


class TestJSONFormatter:
    def test_formats_as_json(self):
        output = JSONFormatter().format(_record("hello %s", ("world",)))
        parsed = json.loads(output)
        assert parsed["message"] == "hello world"
        assert parsed["level"] == "INFO"
        assert "timestamp" in parsed

    def test_includes_extra_fields(self):
        record = _record()
        record.load_balancer = "lb-1"  # type: ignore
        record.service_uid = "svc-1"  # type: ignore
        record.count = 3  # type: ignore
        parsed = json.loads(JSONFormatter().format(record))
        assert parsed["load_balancer"] == "lb-1"
        assert parsed["service_uid"] == "svc-1"
        assert parsed["count"] == 3

    def test_includes_exception(self):
        try:
            raise ValueError("bad")
        except ValueError:
            record = logging.LogRecord(
                name="test", level=logging.ERROR, pathname="", lineno=0,
                msg="failed", args=(), exc_info=sys.exc_info(),
            )
        parsed = json.loads(JSONFormatter().format(record))
        assert "ValueError: bad" in parsed["exception"]


class TestTextFormatter:
    def test_appends_load_balancer(self):
        record = _record("converged")
        record.load_balancer = "lb-1"  # type: ignore
        assert TextFormatter().format(record).endswith("converged (lb=lb-1)")


class TestContextAdapter:
    def test_merges_fixed_and_call_extras(self, caplog):
        adapter = ContextAdapter(logging.getLogger("test.adapter"), {"load_balancer": "lb-1"})
        with caplog.at_level(logging.INFO, logger="test.adapter"):
            adapter.info("hello", extra={"count": 2})
        record = caplog.records[-1]
        assert record.load_balancer == "lb-1"
        assert record.count == 2


class TestConfigureLogging:
    def test_json_format(self):
        configure_logging(LoggingConfig(level="DEBUG", format="json"))
        root = logging.getLogger()
        assert root.level == logging.DEBUG
        assert any(isinstance(h.formatter, JSONFormatter) for h in root.handlers)

    def test_text_format(self):
        configure_logging(LoggingConfig(level="WARNING", format="text"))
        root = logging.getLogger()
        assert root.level == logging.WARNING
        assert any(isinstance(h.formatter, TextFormatter) for h in root.handlers)

    def test_suppresses_noisy_loggers(self):
        configure_logging(LoggingConfig())
        assert logging.getLogger("urllib3").level >= logging.WARNING
        assert logging.getLogger("requests").level >= logging.WARNING
