"""
Tests for structured JSON logging.
"""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from stock_kernel.domain.dtos import PeriodStatus
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
)


@pytest.fixture
def json_logger():
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    logger = logging.getLogger("stock_test.formatter")
    logger.addHandler(handler)
    logger.setLevel(logging.DEBUG)
    logger.propagate = False

    def _records():
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    yield logger, _records
    logger.removeHandler(handler)


class TestStructuredFormatter:

    def test_one_json_object_per_line(self, json_logger):
        logger, records = json_logger
        period_id = uuid4()

        logger.info(
            "period_opened",
            extra={"period_id": period_id, "total": Decimal("12.50"), "status": PeriodStatus.OPEN},
        )

        (record,) = records()
        assert record["message"] == "period_opened"
        assert record["level"] == "INFO"
        assert record["logger"] == "stock_test.formatter"
        assert record["period_id"] == str(period_id)
        assert record["total"] == "12.50"
        assert record["status"] == "OPEN"

    def test_context_fields(self, json_logger):
        logger, records = json_logger

        with LogContext.bind(location_id="loc-1", actor_id="user-9"):
            logger.info("inside")
        logger.info("outside")

        inside, outside = records()
        assert inside["location_id"] == "loc-1"
        assert inside["actor_id"] == "user-9"
        assert "location_id" not in outside

    def test_exception_fields(self, json_logger):
        logger, records = json_logger

        try:
            raise InsufficientStockError(
                "loc-1",
                [{"item_id": "x", "item_name": "Rice", "requested": 5, "available": 2}],
            )
        except InsufficientStockError:
            logger.warning("issue_rejected", exc_info=True)

        (record,) = records()
        assert record["exc_type"] == "InsufficientStockError"
        assert record["exc_code"] == "INSUFFICIENT_STOCK"
        assert record["exc_location_id"] == "loc-1"
        assert "Traceback" in record["traceback"]


class TestLogContext:

    def test_set_and_clear(self):
        actor_id = uuid4()

        LogContext.set(actor_id=actor_id, period_id=None)

        assert LogContext.get_all() == {"actor_id": str(actor_id)}
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer_values(self):
        with LogContext.bind(period_id="p-1"):
            with LogContext.bind(period_id="p-2", location_id="loc-1"):
                assert LogContext.get_all() == {"period_id": "p-2", "location_id": "loc-1"}
            assert LogContext.get_all() == {"period_id": "p-1"}

    def test_unknown_field_rejected(self):
        with pytest.raises(KeyError, match="tenant"):
            LogContext.set(tenant="acme")


def test_configure_logging_is_idempotent():
    root = logging.getLogger("stock_kernel")
    before = len(root.handlers)

    configure_logging(level=logging.DEBUG)

    assert len(root.handlers) == before
    assert root.propagate is False


def test_get_logger_namespace():
    assert get_logger("services.delivery").name == "stock_kernel.services.delivery"


def test_service_logs_carry_fields(stock, make_location, captured_logs, test_actor_id):
    location = make_location()

    ncr = stock.ncrs.create_manual_ncr(location.id, "Damaged", 10, test_actor_id)

    (created,) = [r for r in captured_logs() if r["message"] == "ncr_created"]
    assert created["ncr_no"] == ncr.ncr_no
    assert created["value"] == "10.00"
    assert created["logger"] == "stock_kernel.services.ncr"
