"""Tests for the JSON log formatter."""

import json
import logging

from healthchain.core.logging_config import json_formatter


def _record(message, *args, level=logging.INFO):
    return logging.LogRecord(
        name="healthchain.api.patients",
        level=level,
        pathname=__file__,
        lineno=1,
        msg=message,
        args=args,
        exc_info=None,
    )


def test_stdlib_record_renders_as_one_json_object():
    line = json_formatter().format(_record("Patient %s registered", "HN2026000001"))

    payload = json.loads(line)
    assert payload["event"] == "Patient HN2026000001 registered"
    assert payload["level"] == "info"
    assert payload["logger"] == "healthchain.api.patients"
    assert payload["timestamp"].endswith("Z")


def test_warning_level_is_lowercased():
    payload = json.loads(json_formatter().format(_record("Slow request", level=logging.WARNING)))

    assert payload["level"] == "warning"
    assert "\n" not in json_formatter().format(_record("Slow request"))
