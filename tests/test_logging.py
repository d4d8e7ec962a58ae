"""Tests for the structured logging system (lease_kernel/logging_config.py)."""

import json
import logging
import sys
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from lease_kernel.exceptions import ProtectedDocumentError
from lease_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def _isolated_logging():
    """Reset logging state around tests that reconfigure it."""
    reset_logging()
    yield
    reset_logging()
    configure_logging(level=logging.DEBUG)


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _record(msg: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("lease_kernel.test", logging.INFO, "", 0, msg, (), None)
    for key, val in extra.items():
        setattr(record, key, val)
    return record


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    def test_basic_fields(self):
        payload = json.loads(StructuredFormatter().format(_record("receipt_posted")))

        assert payload["message"] == "receipt_posted"
        assert payload["level"] == "INFO"
        assert payload["logger"] == "lease_kernel.test"
        assert "ts" in payload

    def test_extra_fields_serialized(self):
        doc_id = uuid4()
        payload = json.loads(StructuredFormatter().format(_record(
            "document_posted",
            document_id=doc_id,
            amount=Decimal("5800.00"),
            posting_date=date(2024, 1, 10),
        )))

        assert payload["document_id"] == str(doc_id)
        assert payload["amount"] == "5800.00"
        assert payload["posting_date"] == "2024-01-10"

    def test_context_fields_merged(self):
        with LogContext.bind(actor_id="approver-1", voucher_no="RV-000001"):
            payload = json.loads(StructuredFormatter().format(_record("x")))

        assert payload["actor_id"] == "approver-1"
        assert payload["voucher_no"] == "RV-000001"

    def test_exception_fields(self):
        try:
            raise ProtectedDocumentError("doc-1", "delete")
        except ProtectedDocumentError:
            record = logging.LogRecord(
                "lease_kernel.test", logging.WARNING, "", 0, "blocked", (), sys.exc_info()
            )
        payload = json.loads(StructuredFormatter().format(record))

        assert payload["exc_type"] == "ProtectedDocumentError"
        assert payload["exc_code"] == "PROTECTED_DOCUMENT"
        assert payload["exc_operation"] == "delete"
        assert "traceback" in payload


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_bind_restores_previous_values(self):
        LogContext.set(document_id="outer")
        with LogContext.bind(document_id="inner"):
            assert LogContext.get_all()["document_id"] == "inner"
        assert LogContext.get_all()["document_id"] == "outer"

    def test_none_values_ignored(self):
        with LogContext.bind(actor_id=None):
            assert "actor_id" not in LogContext.get_all()

    def test_clear(self):
        LogContext.set(correlation_id="abc")
        LogContext.clear()
        assert LogContext.get_all() == {}


# ---------------------------------------------------------------------------
# Logger configuration
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_get_logger_namespace(self):
        assert get_logger("services.receipt").name == "lease_kernel.services.receipt"

    def test_configure_is_idempotent(self, _isolated_logging):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        configure_logging(handler=logging.StreamHandler(StringIO()))

        root = logging.getLogger("lease_kernel")
        assert root.handlers == [handler]
        assert root.propagate is False

    def test_writes_json_lines(self, _isolated_logging):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello", extra={"count": 3})

        payload = _parse_log(stream)
        assert payload["message"] == "hello"
        assert payload["count"] == 3
