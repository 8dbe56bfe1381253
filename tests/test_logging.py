"""Tests for the structured log formatter."""

import logging

from context_engine.core.logging import StructuredFormatter, get_logger


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("context_engine.test", logging.INFO, __file__, 10, msg, None, None)
    record.__dict__.update(extra)
    return record


def test_fixed_fields_then_context_fields():
    line = StructuredFormatter().format(_record("phase done", event_id="e1", cycle_id="c1"))

    assert "level=INFO" in line
    assert line.index("message=phase done") < line.index("cycle_id=c1") < line.index("event_id=e1")


def test_context_values_with_spaces_are_quoted():
    line = StructuredFormatter().format(_record("x", query="service level objective"))

    assert "query='service level objective'" in line


def test_get_logger_configures_once():
    first = get_logger("context_engine.test_once")
    second = get_logger("context_engine.test_once")

    assert first is second
    assert len(first.handlers) == 1
    assert first.level == logging.INFO
