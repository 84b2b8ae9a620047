"""Tests for the structured logging system (dairy_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from dairy_kernel.logging_config import (
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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "dairy_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("lot_received", extra={"lot_number": "L-1", "appended": False})

        record = _parse_log(stream)
        assert record["lot_number"] == "L-1"
        assert record["appended"] is False

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", idempotency_key="rcv-1")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["idempotency_key"] == "rcv-1"

    def test_dairy_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from dairy_kernel.exceptions import InsufficientStockError

        try:
            raise InsufficientStockError("MP-LAIT", Decimal("50"), Decimal("20"))
        except InsufficientStockError:
            get_logger("test").error("stock_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_product_code"] == "MP-LAIT"
        assert "traceback" in record

    def test_error_category_and_field_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        from dairy_kernel.exceptions import InvalidInputError

        try:
            raise InvalidInputError("reason", "must be between 10 and 500 characters")
        except InvalidInputError:
            get_logger("test").warning("count_refused", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_category"] == "USER_ERROR"
        assert record["exc_field"] == "reason"
        assert record["exc_reason"] == "must be between 10 and 500 characters"
        assert "exc_user_message" not in record

    def test_plain_exception_has_no_code(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise RuntimeError("disk full")
        except RuntimeError:
            get_logger("test").error("unexpected", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "RuntimeError"
        assert "exc_code" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_values", extra={"lot_id": uid, "quantity": Decimal("12.5")})

        record = _parse_log(stream)
        assert record["lot_id"] == str(uid)
        assert record["quantity"] in ("12.5", 12.5)

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "actor_id" not in record

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= record.keys()


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", actor_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(entity_id="outer")
        with LogContext.bind(entity_id="inner"):
            assert LogContext.get_all()["entity_id"] == "inner"
        assert LogContext.get_all()["entity_id"] == "outer"

    def test_bind_restores_none(self):
        with LogContext.bind(idempotency_key="temp"):
            assert LogContext.get_all()["idempotency_key"] == "temp"
        assert "idempotency_key" not in LogContext.get_all()

    def test_bind_skips_none_values(self):
        with LogContext.bind(actor_id="a", idempotency_key=None):
            assert LogContext.get_all() == {"actor_id": "a"}

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError, match="lot_number"):
            LogContext.set(lot_number="L-1")
        with pytest.raises(TypeError):
            LogContext.bind(lot_number="L-1")

    def test_values_stringified(self):
        actor = uuid4()
        with LogContext.bind(actor_id=actor):
            assert LogContext.get_all() == {"actor_id": str(actor)}


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert len(logging.getLogger("dairy_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        assert get_logger("modules.stock.service").name == "dairy_kernel.modules.stock.service"

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "dairy_kernel.deep.nested.module"
