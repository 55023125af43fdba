"""Tests for the structured logging system (inventory_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from inventory_kernel.exceptions import InsufficientStockError
from inventory_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests, then restore the suite's setup."""
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
        assert record["logger"] == "inventory_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("stock_sold", extra={"seq": 42, "quantity": Decimal("2.5")})

        record = _parse_log(stream)
        assert record["seq"] == 42
        assert record["quantity"] == "2.5"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(correlation_id="abc-123", operation="sell_stock")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["correlation_id"] == "abc-123"
        assert record["operation"] == "sell_stock"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_fields_extracted(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        product_id = str(uuid4())
        try:
            raise InsufficientStockError(product_id, "loc-1", Decimal("9"), Decimal("7"))
        except InsufficientStockError:
            get_logger("test").error("sale_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_product_id"] == product_id
        assert record["exc_requested"] == "9"
        assert record["exc_available"] == "7"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "tenant_id" not in record

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"batch_id": uid})

        assert _parse_log(stream)["batch_id"] == str(uid)

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # Default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    def test_set_and_get(self):
        LogContext.set(correlation_id="x", tenant_id="t")
        assert LogContext.get_all() == {"correlation_id": "x", "tenant_id": "t"}

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(correlation_id="outer")
        with LogContext.bind(correlation_id="inner"):
            assert LogContext.get_all()["correlation_id"] == "inner"
        assert LogContext.get_all()["correlation_id"] == "outer"

    def test_bind_restores_none(self):
        assert "aggregate" not in LogContext.get_all()
        with LogContext.bind(aggregate="p:l"):
            assert LogContext.get_all()["aggregate"] == "p:l"
        assert "aggregate" not in LogContext.get_all()

    def test_bind_renders_uuids_and_skips_none(self):
        tenant = uuid4()
        with LogContext.bind(tenant_id=tenant, actor_id=None, unknown_field="ignored"):
            assert LogContext.get_all() == {"tenant_id": str(tenant)}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            tenant_id="t",
            actor_id="a",
            operation="o",
            aggregate="g",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["aggregate"] == "g"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)
        assert logging.getLogger("inventory_kernel").handlers == [h1]

    def test_level_by_name(self):
        handler, _ = _make_handler()
        configure_logging(handler=handler, level="warning")
        assert logging.getLogger("inventory_kernel").level == logging.WARNING

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("services.stock_ledger").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "inventory_kernel.services.stock_ledger"
