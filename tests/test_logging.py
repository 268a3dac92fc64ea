from __future__ import annotations

import logging

from remote_transport.core.logging import StructuredLogFormatter, get_logger, log_event


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord("remote_transport.test", logging.INFO, __file__, 1, "call finished", None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_formatter_puts_focus_keys_first():
    formatter = StructuredLogFormatter()

    line = formatter.format(_record(zone="eu", status_code=200, transport="rest", duration=0.123456))

    assert line.endswith("| transport=rest status_code=200 duration=0.1235 zone=eu")


def test_formatter_colour_does_not_leak_into_record():
    formatter = StructuredLogFormatter(use_color=True)
    record = _record()

    assert "\033[32mINFO" in formatter.format(record)
    assert record.levelname == "INFO"


def test_log_event_merges_static_context(caplog):
    logger = get_logger("remote_transport.tests.merge", extra={"transport": "grpc", "ignored": None})

    with caplog.at_level(logging.INFO, logger="remote_transport.tests.merge"):
        log_event(logger, logging.INFO, "sent", operation="count", error=None)

    record = caplog.records[-1]
    assert record.transport == "grpc"
    assert record.operation == "count"
    assert not hasattr(record, "ignored")
    assert not hasattr(record, "error")


def test_get_logger_tags():
    logger = get_logger("remote_transport.tests.tags", tags=["transport", "rest"])

    assert logger.extra == {"tags": ("transport", "rest")}
