"""Structured logging tests."""

import json
import logging

from otelview.infra.telemetry.logger import (
    StructuredFormatter,
    current_message_context,
    message_context,
)


def make_record(msg="frame_decompress_failed", **extra):
    record = logging.LogRecord("otelview.test", logging.WARNING, __file__, 10, msg, (), None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


class TestStructuredFormatter:
    def test_json_includes_message_context_and_extras(self):
        formatter = StructuredFormatter(json_output=True)
        with message_context(topic="otlp.traces", partition=2, offset=41):
            line = formatter.format(make_record(reason="bad chunk", records=3))
        entry = json.loads(line)
        assert entry["message"] == "frame_decompress_failed"
        assert entry["level"] == "WARNING"
        assert entry["context"] == {"topic": "otlp.traces", "partition": 2, "offset": 41}
        assert entry["data"] == {"reason": "bad chunk", "records": 3}

    def test_context_is_cleared_after_block(self):
        with message_context(topic="t", partition=0, offset=1):
            assert current_message_context()["offset"] == 1
        assert current_message_context() == {}

    def test_human_readable_output(self):
        formatter = StructuredFormatter(json_output=False)
        with message_context(topic="otlp.logs", partition=0, offset=7):
            line = formatter.format(make_record())
        assert "otlp.logs[0]@7" in line
        assert "frame_decompress_failed" in line
