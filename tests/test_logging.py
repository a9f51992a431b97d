"""
Structured log output of the stock ledger.

Every line is one JSON object; ambient stock context and ``extra`` fields
ride along, and ledger exceptions expose their code and attributes.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.exceptions import InsufficientRemainingQuantityError, InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture
def output():
    """A fresh JSON handler on the ledger tree; yields a reader of emitted lines."""
    reset_logging()
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)

    def lines() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield lines

    reset_logging()
    configure_logging(level=logging.DEBUG)


class TestLineFormat:

    def test_fixed_keys(self, output):
        get_logger("services.transfer").info("transfer_sent")

        (line,) = output()
        assert line["level"] == "INFO"
        assert line["message"] == "transfer_sent"
        assert line["logger"] == "stock_kernel.services.transfer"
        assert line["ts"].endswith("+00:00")

    def test_extra_values_serialised(self, output):
        batch_id = uuid4()
        get_logger("services.batch_ledger").debug(
            "stock_adjusted",
            extra={"batch_id": batch_id, "delta": Decimal("-2.5"), "entries": 2},
        )

        (line,) = output()
        assert line["batch_id"] == str(batch_id)
        assert line["delta"] == "-2.5"
        assert line["entries"] == 2

    def test_context_stamped_on_every_line(self, output):
        location_id = uuid4()
        with LogContext.bind(actor_id="clerk-7", location_id=location_id):
            logger = get_logger("services.transactions")
            logger.info("sale_recorded")
            logger.info("purchase_recorded")

        assert len(output()) == 2
        for line in output():
            assert line["actor_id"] == "clerk-7"
            assert line["location_id"] == str(location_id)

    def test_extra_does_not_override_context(self, output):
        with LogContext.bind(document_id="TSFR-4"):
            get_logger("x").info("transfer_received", extra={"document_id": "TSFR-9"})

        (line,) = output()
        assert line["document_id"] == "TSFR-4"

    def test_plain_exception(self, output):
        try:
            raise ValueError("Cannot release 4")
        except ValueError:
            get_logger("x").error("release_failed", exc_info=True)

        (line,) = output()
        assert line["exc_type"] == "ValueError"
        assert line["exc_message"] == "Cannot release 4"
        assert "exc_code" not in line
        assert "Traceback" in line["traceback"]

    def test_ledger_exception_attributes(self, output):
        try:
            raise InsufficientRemainingQuantityError("line-1", Decimal("3"), Decimal("5"))
        except InsufficientRemainingQuantityError:
            get_logger("x").warning("transfer_rejected", exc_info=True)

        (line,) = output()
        assert line["exc_code"] == "INSUFFICIENT_REMAINING_QUANTITY"
        assert line["exc_line_id"] == "line-1"
        assert line["exc_remaining"] == "3"
        assert line["exc_requested"] == "5"

    def test_insufficient_stock_is_searchable(self, output):
        product_id = uuid4()
        try:
            raise InsufficientStockError(product_id, None, Decimal("4"), Decimal("5"))
        except InsufficientStockError:
            get_logger("x").warning("sale_rejected", exc_info=True)

        (line,) = output()
        assert line["exc_code"] == "INSUFFICIENT_STOCK"
        assert Decimal(line["exc_available"]) == Decimal("4")


class TestLogContext:

    def test_bind_restores_outer_values(self):
        LogContext.set(actor_id="outer")
        with LogContext.bind(actor_id="inner", document_id="TRXSA-1"):
            assert LogContext.get_all() == {"actor_id": "inner", "document_id": "TRXSA-1"}
        assert LogContext.get_all() == {"actor_id": "outer"}

    def test_none_and_unknown_fields_ignored(self):
        with LogContext.bind(actor_id=None, location_id="loc-1", shelf="B"):
            assert LogContext.get_all() == {"location_id": "loc-1"}

    def test_set_merges(self):
        LogContext.set(actor_id="a")
        LogContext.set(trace_id="t-1")
        assert LogContext.get_all() == {"actor_id": "a", "trace_id": "t-1"}

    def test_get_all_is_a_copy(self):
        LogContext.set(actor_id="a")
        LogContext.get_all()["actor_id"] = "tampered"
        assert LogContext.get_all()["actor_id"] == "a"

    def test_clear(self):
        LogContext.set(trace_id="t-1")
        LogContext.clear()
        assert LogContext.get_all() == {}


class TestConfigureLogging:

    def test_first_call_wins(self, output):
        configure_logging(handler=logging.StreamHandler(StringIO()), level=logging.ERROR)
        get_logger("x").info("kept")

        assert [line["message"] for line in output()] == ["kept"]

    def test_level_filters(self):
        reset_logging()
        stream = StringIO()
        configure_logging(level="WARNING", handler=logging.StreamHandler(stream))
        logger = get_logger("x")
        logger.info("dropped")
        logger.warning("low_stock_detected")

        assert [json.loads(l)["message"] for l in stream.getvalue().splitlines()] == [
            "low_stock_detected"
        ]
        reset_logging()
        configure_logging(level=logging.DEBUG)

    def test_formatter_installed_on_given_handler(self):
        reset_logging()
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)

        tree = logging.getLogger("stock_kernel")
        assert tree.propagate is False
        assert handler in tree.handlers
        assert isinstance(handler.formatter, StructuredFormatter)

        reset_logging()
        configure_logging(level=logging.DEBUG)
