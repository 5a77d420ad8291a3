"""Tests for the structured logging system (payout_kernel/logging_config.py)."""

import json
import logging
from datetime import date
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from payout_kernel.logging_config import (
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
        logger = get_logger("test")
        logger.info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "payout_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("payout_queued", extra={"attempt": 2, "payout_status": "queued"})

        record = _parse_log(stream)
        assert record["attempt"] == 2
        assert record["payout_status"] == "queued"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        LogContext.set(statement_id="st-1", schedule_tag="weekly-owners")
        logger.info("test_msg")

        record = _parse_log(stream)
        assert record["statement_id"] == "st-1"
        assert record["schedule_tag"] == "weekly-owners"

    def test_money_and_dates_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        statement_id = uuid4()
        logger.info(
            "statement_generated",
            extra={
                "owner_payout": Decimal("800.00"),
                "period_start": date(2026, 1, 12),
                "entity_id": statement_id,
            },
        )

        record = _parse_log(stream)
        assert record["owner_payout"] == "800.00"
        assert record["period_start"] == "2026-01-12"
        assert record["entity_id"] == str(statement_id)

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        try:
            raise ValueError("boom")
        except ValueError:
            logger.error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Payout kernel exceptions carry a .code attribute."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        from payout_kernel.exceptions import StatementAlreadyGeneratedError

        try:
            raise StatementAlreadyGeneratedError("st-9", "property:p-1", "sent")
        except StatementAlreadyGeneratedError:
            logger.error("generation_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "STATEMENT_ALREADY_GENERATED"
        assert record["exc_type"] == "StatementAlreadyGeneratedError"
        assert record["exc_entity_key"] == "property:p-1"
        assert record["exc_status"] == "sent"

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "correlation_id" not in record
        assert "statement_id" not in record

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", statement_id="y")
        assert LogContext.get_all() == {"correlation_id": "x", "statement_id": "y"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError):
            LogContext.set(event_id="nope")

    def test_clear(self):
        LogContext.set(correlation_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(schedule_tag="outer")
        with LogContext.bind(schedule_tag="inner"):
            assert LogContext.get_all()["schedule_tag"] == "inner"
        assert LogContext.get_all()["schedule_tag"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        assert "correlation_id" not in LogContext.get_all()
        with LogContext.bind(correlation_id="temp"):
            assert LogContext.get_all()["correlation_id"] == "temp"
        assert "correlation_id" not in LogContext.get_all()

    def test_bind_stringifies_values(self):
        statement_id = uuid4()
        with LogContext.bind(statement_id=statement_id, actor_id=None):
            ctx = LogContext.get_all()
        assert ctx == {"statement_id": str(statement_id)}

    def test_all_fields(self):
        LogContext.set(
            correlation_id="c",
            actor_id="a",
            statement_id="s",
            schedule_tag="g",
            trace_id="t",
        )
        ctx = LogContext.get_all()
        assert len(ctx) == 5
        assert ctx["trace_id"] == "t"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        reset_logging()
        root = logging.getLogger("payout_kernel")
        before = list(root.handlers)

        h1, _ = _make_handler()
        configure_logging(handler=h1)
        after_first = list(root.handlers)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op

        assert after_first == before + [h1]
        assert root.handlers == after_first
        assert h2 not in root.handlers

    def test_get_logger_returns_child(self):
        logger = get_logger("services.payouts")
        assert logger.name == "payout_kernel.services.payouts"

    def test_logger_hierarchy(self):
        """Child loggers inherit the payout_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        child = get_logger("scheduler.runner")
        child.debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "payout_kernel.scheduler.runner"
