"""
Tests for structured log formatting.
"""

import json
import logging

from twstocks.core.logging import (
    SensitiveDataFilter,
    StructuredFormatter,
    TextFormatter,
    cycle_id_var,
)


def make_record(message: str, **fields) -> logging.LogRecord:
    record = logging.LogRecord("twstocks.test", logging.WARNING, __file__, 1, message, None, None)
    if fields:
        record.extra_fields = fields
    return record


class TestFormatters:
    """Tests for JSON and text formatters."""

    def test_json_includes_event_fields_and_cycle(self):
        token = cycle_id_var.set("c0ffee00deadbeef")
        try:
            line = StructuredFormatter().format(make_record("Skipped 2330", event="stock_skipped", code="2330"))
        finally:
            cycle_id_var.reset(token)

        data = json.loads(line)
        assert data["message"] == "Skipped 2330"
        assert data["level"] == "WARNING"
        assert data["cycle_id"] == "c0ffee00deadbeef"
        assert data["event"] == "stock_skipped"
        assert data["code"] == "2330"

    def test_json_keeps_cjk(self):
        line = StructuredFormatter().format(make_record("台積電"))
        assert "台積電" in line

    def test_text_format(self):
        line = TextFormatter().format(make_record("Skipped 2330", error_code="FETCH_FAILED"))
        assert "WARNING" in line
        assert "error_code=FETCH_FAILED" in line


class TestSensitiveDataFilter:
    """Credentials in connection URLs are redacted."""

    def test_redacts_password(self):
        record = make_record("Connecting to postgresql+asyncpg://twstocks:s3cret@db:5432/taiwan_stocks")
        SensitiveDataFilter().filter(record)
        assert "s3cret" not in record.msg
        assert "[REDACTED]" in record.msg
