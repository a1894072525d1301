"""Tests for the structured logging system (pharmacy_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from pharmacy_kernel.exceptions import InsufficientStockError
from pharmacy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
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


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "pharmacy_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("dispense_completed", extra={"quantity": 8, "batches_used": 2})

        record = _parse_log(stream)
        assert record["quantity"] == 8
        assert record["batches_used"] == 2

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(actor_id="pharmacist", batch_id="BATCH000001")
        get_logger("test").info("with_context")

        record = _parse_log(stream)
        assert record["actor_id"] == "pharmacist"
        assert record["batch_id"] == "BATCH000001"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare")

        record = _parse_log(stream)
        assert "actor_id" not in record
        assert "correlation_id" not in record

    def test_kernel_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InsufficientStockError("drug-1", requested=70, available=60)
        except InsufficientStockError:
            get_logger("test").warning("stock_insufficient", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_requested"] == 70
        assert record["exc_available"] == 60
        assert "traceback" in record

    def test_domain_values_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info(
            "values",
            extra={"drug_uuid": uid, "expiry": date(2026, 1, 10), "cost": Decimal("2.50")},
        )

        record = _parse_log(stream)
        assert record["drug_uuid"] == str(uid)
        assert record["expiry"] == "2026-01-10"
        assert record["cost"] == "2.50"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        for i in range(5):
            logger.info("line", extra={"i": i})

        records = _parse_all_logs(stream)
        assert [r["i"] for r in records] == [0, 1, 2, 3, 4]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:

    def test_set_and_get(self):
        LogContext.set(correlation_id="abc", actor_id="u1")
        assert LogContext.get_all() == {"correlation_id": "abc", "actor_id": "u1"}

    def test_clear(self):
        LogContext.set(drug_id="d1")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        with LogContext.bind(transaction_id="TXN20240101-0001-ABCD"):
            assert LogContext.get_all()["transaction_id"] == "TXN20240101-0001-ABCD"
        assert "transaction_id" not in LogContext.get_all()

    def test_bind_skips_none(self):
        with LogContext.bind(actor_id=None, batch_id="BATCH000002"):
            assert LogContext.get_all() == {"batch_id": "BATCH000002"}

    def test_additive_set(self):
        LogContext.set(actor_id="u1")
        LogContext.set(drug_id="d1")
        assert LogContext.get_all() == {"actor_id": "u1", "drug_id": "d1"}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        first, _ = _make_handler()
        second, _ = _make_handler()
        configure_logging(handler=first)
        configure_logging(handler=second)

        handlers = logging.getLogger("pharmacy_kernel").handlers
        assert first in handlers
        assert second not in handlers

    def test_level_by_name(self):
        handler, stream = _make_handler()
        configure_logging(level="WARNING", handler=handler)
        logger = get_logger("test")
        logger.info("dropped")
        logger.warning("kept")

        assert [r["message"] for r in _parse_all_logs(stream)] == ["kept"]

    def test_get_logger_returns_child(self):
        assert get_logger("services.dispense").name == "pharmacy_kernel.services.dispense"
