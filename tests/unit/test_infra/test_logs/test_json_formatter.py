"""Tests for JSON log formatting and logging setup."""

from __future__ import annotations

import json
import logging
import sys

import pytest
from opentelemetry import trace
from opentelemetry.trace import NonRecordingSpan, SpanContext, TraceFlags

from event_relay.infra.logging import JSONFormatter, configure_logging, shutdown


def make_record(msg: str = "hello %s", args: tuple = ("world",), **extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="event_relay.test",
        level=logging.WARNING,
        pathname=__file__,
        lineno=10,
        msg=msg,
        args=args,
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.mark.unit
class TestJSONFormatter:
    def test_core_fields(self) -> None:
        data = json.loads(JSONFormatter().format(make_record()))

        assert data["level"] == "WARNING"
        assert data["logger"] == "event_relay.test"
        assert data["message"] == "hello world"
        assert data["timestamp"].endswith("Z")
        assert "trace_id" not in data

    def test_extra_and_static_fields(self) -> None:
        formatter = JSONFormatter(static={"service": "event-relay"})

        data = json.loads(formatter.format(make_record(message_id="abc", attempt_count=2)))

        assert data["service"] == "event-relay"
        assert data["message_id"] == "abc"
        assert data["attempt_count"] == 2
        assert "args" not in data
        assert "lineno" not in data

    def test_non_json_extras_are_stringified(self) -> None:
        data = json.loads(JSONFormatter().format(make_record(when=object())))

        assert data["when"].startswith("<object object")

    def test_exception_stays_on_one_line(self) -> None:
        try:
            raise ValueError("bad\nvalue")
        except ValueError:
            record = make_record()
            record.exc_info = sys.exc_info()

        output = JSONFormatter().format(record)

        assert "\n" not in output
        assert "ValueError" in json.loads(output)["exception"]

    def test_trace_context_included_when_span_active(self) -> None:
        context = SpanContext(
            trace_id=0x1234,
            span_id=0x5678,
            is_remote=False,
            trace_flags=TraceFlags(TraceFlags.SAMPLED),
        )
        with trace.use_span(NonRecordingSpan(context)):
            data = json.loads(JSONFormatter().format(make_record()))

        assert data["trace_id"] == f"{0x1234:032x}"
        assert data["span_id"] == f"{0x5678:016x}"
        assert data["trace_flags"] == "01"


@pytest.mark.unit
class TestConfigureLogging:
    def test_writes_json_lines_to_file(self, tmp_path) -> None:
        log_file = tmp_path / "logs" / "relay.log"
        configure_logging(
            log_level="INFO",
            file_path=log_file,
            json_logs=True,
            console_enabled=False,
            service_name="relay-test",
        )
        try:
            logging.getLogger("event_relay.test").info(
                "Outbox batch dispatched", extra={"published": 3}
            )
        finally:
            shutdown()

        lines = log_file.read_text(encoding="utf-8").splitlines()
        record = json.loads(lines[-1])
        assert record["message"] == "Outbox batch dispatched"
        assert record["published"] == 3
        assert record["service"] == "relay-test"
