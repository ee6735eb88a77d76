"""
Tests for NCRService: manual NCRs, lifecycle, period association, warnings.
"""

from datetime import datetime, timezone
from decimal import Decimal

import pytest
from sqlalchemy import select

from stock_kernel.domain.dtos import (
    FinancialImpact,
    NCRStatus,
    NCRType,
    NotificationEventType,
)
from stock_kernel.exceptions import (
    NCRAlreadyResolvedError,
    NotFoundError,
    ResolutionFieldsError,
    ValidationError,
)
from stock_kernel.models.outbox import OutboxEvent
from stock_services import DeliveryLineInput


@pytest.fixture
def kitchen(make_location):
    return make_location(name="Main Kitchen", code="K1")


@pytest.fixture
def tomatoes(make_item):
    return make_item(name="Tomatoes")


@pytest.fixture
def january(make_period, kitchen, tomatoes):
    return make_period(locations=[kitchen], prices={tomatoes.id: "3.00"})


@pytest.fixture
def manual_ncr(stock, january, kitchen, tomatoes, test_actor_id):
    return stock.ncrs.create_manual_ncr(
        kitchen.id,
        "Crate arrived crushed",
        "120",
        test_actor_id,
        item_id=tomatoes.id,
        quantity=40,
    )


def _events(session, aggregate_id, event_type):
    return session.execute(
        select(OutboxEvent).where(
            OutboxEvent.aggregate_id == aggregate_id,
            OutboxEvent.event_type == event_type,
        )
    ).scalars().all()


class TestCreateManualNCR:

    def test_created_open(self, manual_ncr, deterministic_clock):
        assert manual_ncr.ncr_no == "NCR-2025-001"
        assert manual_ncr.type == NCRType.MANUAL
        assert manual_ncr.auto_generated is False
        assert manual_ncr.status == NCRStatus.OPEN
        assert manual_ncr.value == Decimal("120.00")
        assert manual_ncr.quantity == Decimal("40")
        assert manual_ncr.created_at == deterministic_clock.now()

    def test_created_event_queued(self, session, manual_ncr):
        (event,) = _events(session, manual_ncr.id, NotificationEventType.NCR_CREATED)

        assert event.payload["location_name"] == "Main Kitchen"
        assert event.payload["item_name"] == "Tomatoes"

    def test_notifications_disabled(self, session, deterministic_clock, kitchen, january, test_actor_id):
        from stock_config.schema import StockConfig
        from stock_services import StockOrchestrator

        quiet = StockOrchestrator(
            session, config=StockConfig(notifications_enabled=False), clock=deterministic_clock
        )
        ncr = quiet.ncrs.create_manual_ncr(kitchen.id, "Short weight", 5, test_actor_id)

        assert _events(session, ncr.id, NotificationEventType.NCR_CREATED) == []

    @pytest.mark.parametrize(
        "reason,value,field",
        [("", 1, "reason"), ("   ", 1, "reason"), ("Damaged", -1, "value"), ("Damaged", "NaN", "value")],
    )
    def test_invalid_input(self, stock, kitchen, test_actor_id, reason, value, field):
        with pytest.raises(ValidationError) as exc_info:
            stock.ncrs.create_manual_ncr(kitchen.id, reason, value, test_actor_id)
        assert exc_info.value.field == field

    def test_unknown_location(self, stock, test_actor_id):
        from uuid import uuid4

        with pytest.raises(NotFoundError, match="Location"):
            stock.ncrs.create_manual_ncr(uuid4(), "Damaged", 1, test_actor_id)

    def test_linked_to_delivery_line(self, stock, january, kitchen, tomatoes, test_actor_id):
        delivery = stock.deliveries.post_delivery(
            kitchen.id, [DeliveryLineInput(tomatoes.id, 10, "3.00")], test_actor_id
        ).delivery
        (line,) = delivery.lines

        ncr = stock.ncrs.create_manual_ncr(
            kitchen.id,
            "Bruised",
            6,
            test_actor_id,
            delivery_id=delivery.id,
            delivery_line_id=line.id,
        )

        assert ncr.delivery_line_id == line.id

    def test_delivery_line_needs_delivery(self, stock, january, kitchen, tomatoes, test_actor_id):
        line = stock.deliveries.post_delivery(
            kitchen.id, [DeliveryLineInput(tomatoes.id, 10, "3.00")], test_actor_id
        ).delivery.lines[0]

        with pytest.raises(ValidationError, match="requires delivery_id") as exc_info:
            stock.ncrs.create_manual_ncr(
                kitchen.id, "Bruised", 6, test_actor_id, delivery_line_id=line.id
            )
        assert exc_info.value.field == "delivery_line_id"

    def test_delivery_line_of_another_delivery(
        self, stock, january, kitchen, tomatoes, test_actor_id
    ):
        first = stock.deliveries.post_delivery(
            kitchen.id, [DeliveryLineInput(tomatoes.id, 10, "3.00")], test_actor_id
        ).delivery
        second = stock.deliveries.post_delivery(
            kitchen.id, [DeliveryLineInput(tomatoes.id, 4, "3.00")], test_actor_id
        ).delivery

        with pytest.raises(ValidationError, match="is not part of delivery") as exc_info:
            stock.ncrs.create_manual_ncr(
                kitchen.id,
                "Bruised",
                6,
                test_actor_id,
                delivery_id=first.id,
                delivery_line_id=second.lines[0].id,
            )
        assert exc_info.value.field == "delivery_line_id"

    def test_unknown_delivery_line(self, stock, january, kitchen, tomatoes, test_actor_id):
        from uuid import uuid4

        delivery = stock.deliveries.post_delivery(
            kitchen.id, [DeliveryLineInput(tomatoes.id, 10, "3.00")], test_actor_id
        ).delivery

        with pytest.raises(NotFoundError, match="DeliveryLine"):
            stock.ncrs.create_manual_ncr(
                kitchen.id,
                "Bruised",
                6,
                test_actor_id,
                delivery_id=delivery.id,
                delivery_line_id=uuid4(),
            )


class TestStatusLifecycle:

    def test_sent_does_not_stamp_resolved_at(self, stock, manual_ncr, test_actor_id):
        sent = stock.ncrs.update_status(manual_ncr.id, NCRStatus.SENT, test_actor_id)

        assert sent.status == NCRStatus.SENT
        assert sent.resolved_at is None

    def test_resolved_at_stamped_once(self, stock, manual_ncr, deterministic_clock, test_actor_id):
        credited = stock.ncrs.update_status(manual_ncr.id, NCRStatus.CREDITED, test_actor_id)
        first_stamp = credited.resolved_at
        assert first_stamp == deterministic_clock.now()

        deterministic_clock.advance(3600)
        stock.ncrs.update_status(manual_ncr.id, NCRStatus.SENT, test_actor_id)
        rejected = stock.ncrs.update_status(manual_ncr.id, NCRStatus.REJECTED, test_actor_id)

        assert rejected.resolved_at == first_stamp

    def test_resolve_with_fields(self, stock, manual_ncr, test_actor_id):
        resolved = stock.ncrs.update_status(
            manual_ncr.id,
            NCRStatus.RESOLVED,
            test_actor_id,
            resolution_type="Replacement delivered",
            financial_impact=FinancialImpact.NONE,
            resolution_notes="Supplier swapped the crate",
        )

        assert resolved.status == NCRStatus.RESOLVED
        assert resolved.resolution_type == "Replacement delivered"
        assert resolved.financial_impact == FinancialImpact.NONE
        assert resolved.resolution_notes == "Supplier swapped the crate"
        assert resolved.resolved_at is not None

    def test_resolved_is_terminal(self, stock, manual_ncr, test_actor_id):
        stock.ncrs.update_status(
            manual_ncr.id, "RESOLVED", test_actor_id, "Write-off", "LOSS"
        )

        with pytest.raises(NCRAlreadyResolvedError):
            stock.ncrs.update_status(manual_ncr.id, NCRStatus.OPEN, test_actor_id)

    def test_resolved_requires_fields(self, stock, manual_ncr, test_actor_id):
        with pytest.raises(ResolutionFieldsError, match="financial_impact"):
            stock.ncrs.update_status(
                manual_ncr.id, NCRStatus.RESOLVED, test_actor_id, resolution_type="Write-off"
            )

        assert stock.ncrs.get_ncr(manual_ncr.id).status == NCRStatus.OPEN

    def test_resolution_event_queued(self, stock, session, manual_ncr, test_actor_id):
        stock.ncrs.update_status(manual_ncr.id, NCRStatus.SENT, test_actor_id)
        assert _events(session, manual_ncr.id, NotificationEventType.NCR_RESOLVED) == []

        stock.ncrs.update_status(manual_ncr.id, NCRStatus.CREDITED, test_actor_id)
        (event,) = _events(session, manual_ncr.id, NotificationEventType.NCR_RESOLVED)
        assert event.payload["status"] == "CREDITED"

    def test_unknown_ncr(self, stock, test_actor_id):
        from uuid import uuid4

        with pytest.raises(NotFoundError):
            stock.ncrs.update_status(uuid4(), NCRStatus.SENT, test_actor_id)


class TestPeriodAssociation:

    def test_manual_ncr_belongs_to_period_of_creation(
        self, stock, manual_ncr, january, kitchen, deterministic_clock, test_actor_id
    ):
        deterministic_clock.set_time(datetime(2025, 2, 3, 9, 0, tzinfo=timezone.utc))
        later = stock.ncrs.create_manual_ncr(kitchen.id, "Found mould", 15, test_actor_id)

        listed = stock.ncrs.list_for_period(january.id, kitchen.id)

        assert [n.ncr_no for n in listed] == [manual_ncr.ncr_no]
        assert later.ncr_no == "NCR-2025-002"

    def test_last_day_of_period_included(
        self, stock, january, kitchen, deterministic_clock, test_actor_id
    ):
        deterministic_clock.set_time(datetime(2025, 1, 31, 23, 59, 59, tzinfo=timezone.utc))
        ncr = stock.ncrs.create_manual_ncr(kitchen.id, "Late count", 1, test_actor_id)

        assert [n.id for n in stock.ncrs.list_for_period(january.id, kitchen.id)] == [ncr.id]

    def test_delivery_ncr_belongs_to_delivery_period(
        self, stock, january, kitchen, tomatoes, deterministic_clock, test_actor_id
    ):
        result = stock.deliveries.post_delivery(
            kitchen.id, [DeliveryLineInput(tomatoes.id, 10, "3.20")], test_actor_id
        )

        summary = stock.ncrs.get_impact_summary(january.id, kitchen.id)

        assert summary.open.count == 1
        assert summary.open.total == Decimal("2.00")
        (member,) = summary.open.ncrs
        assert member.delivery_no == result.delivery.delivery_no
        assert member.item_name == "Tomatoes"

    def test_impact_summary_buckets(self, stock, january, kitchen, test_actor_id):
        credited = stock.ncrs.create_manual_ncr(kitchen.id, "Short", 100, test_actor_id)
        lost = stock.ncrs.create_manual_ncr(kitchen.id, "Spoiled", 30, test_actor_id)
        waived = stock.ncrs.create_manual_ncr(kitchen.id, "Typo", 999, test_actor_id)
        stock.ncrs.create_manual_ncr(kitchen.id, "Pending", 7, test_actor_id)
        stock.ncrs.update_status(credited.id, NCRStatus.CREDITED, test_actor_id)
        stock.ncrs.update_status(lost.id, NCRStatus.RESOLVED, test_actor_id, "Write-off", "LOSS")
        stock.ncrs.update_status(waived.id, NCRStatus.RESOLVED, test_actor_id, "Cancelled", "NONE")

        summary = stock.ncrs.get_impact_summary(january.id, kitchen.id)

        assert summary.credited.total == Decimal("100.00")
        assert summary.losses.total == Decimal("30.00")
        assert summary.open.total == Decimal("7.00")
        assert summary.pending.count == 0


class TestOpenNCRWarnings:

    def test_counts_open_ncrs_per_location(
        self, stock, make_location, make_period, test_actor_id
    ):
        first = make_location(name="Alpha", code="A")
        second = make_location(name="Bravo", code="B")
        period = make_period(locations=[second, first])
        stock.ncrs.create_manual_ncr(second.id, "x", 10, test_actor_id)
        stock.ncrs.create_manual_ncr(second.id, "y", "2.5", test_actor_id)
        sent = stock.ncrs.create_manual_ncr(first.id, "z", 4, test_actor_id)
        stock.ncrs.update_status(sent.id, NCRStatus.SENT, test_actor_id)

        (warning,) = stock.ncrs.open_ncr_warnings(period.id)

        assert warning.location_id == second.id
        assert warning.location_name == "Bravo"
        assert warning.count == 2
        assert warning.total_value == Decimal("12.50")

    def test_none_when_no_open_ncrs(self, stock, january):
        assert stock.ncrs.open_ncr_warnings(january.id) == ()
