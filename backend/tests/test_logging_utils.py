import json
import logging

from signage_ops.logging_context import (
    RunContextFilter,
    current_run_id,
    init_error_reporting,
    pop_run_context,
    push_run_context,
)
from signage_ops.logging_utils import JSONFormatter


def _record(**extra):
    record = logging.LogRecord(
        name="signage_ops.services.reconciliation",
        level=logging.INFO,
        pathname=__file__,
        lineno=1,
        msg="Updated image reference",
        args=(),
        exc_info=None,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_json_formatter_keeps_structured_extras():
    record = _record(table="products", record_id="42", error=None)

    payload = json.loads(JSONFormatter().format(record))

    assert payload["level"] == "INFO"
    assert payload["message"] == "Updated image reference"
    assert payload["logger"] == "signage_ops.services.reconciliation"
    assert payload["context"] == {"table": "products", "record_id": "42"}


def test_run_context_filter_injects_run_id():
    token = push_run_context("abc123", "reconcile_images")
    try:
        record = _record()
        assert RunContextFilter().filter(record) is True
        assert current_run_id() == "abc123"
    finally:
        pop_run_context(token)

    payload = json.loads(JSONFormatter().format(record))
    assert payload["context"] == {"run_id": "abc123", "command": "reconcile_images"}
    assert current_run_id() is None


def test_error_reporting_stays_off_without_dsn():
    assert init_error_reporting(None) is False
    assert init_error_reporting("") is False
