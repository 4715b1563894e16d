from __future__ import annotations

import logging

from logging_config import ContextualFormatter


def _record(**extra) -> logging.LogRecord:
    record = logging.LogRecord(
        name="services.aggregator",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Hour window closed",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_context_fields_are_appended_in_declared_order() -> None:
    formatter = ContextualFormatter(fmt="%(levelname)s %(message)s")

    line = formatter.format(_record(sample_count=360, device_serial="SER-1", link_id=None))

    assert line == "INFO Hour window closed | device_serial=SER-1 sample_count=360"


def test_values_with_spaces_are_quoted() -> None:
    formatter = ContextualFormatter(fmt="%(message)s", context_keys=["reason"])

    line = formatter.format(_record(reason="cache unavailable", device_serial="ignored"))

    assert line == "Hour window closed | reason='cache unavailable'"


def test_plain_message_without_context() -> None:
    formatter = ContextualFormatter(fmt="%(message)s")

    assert formatter.format(_record()) == "Hour window closed"
