"""
Tests for the DRAFT -> OPEN half of the period lifecycle.

Covers:
- Creation, date validation and overlap detection
- Single OPEN period (service check and database index)
- Price locking on open
- Location readiness
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.dtos import PeriodLocationStatus, PeriodStatus
from stock_kernel.exceptions import (
    InvalidStateTransitionError,
    NoLocationsError,
    PeriodAlreadyOpenError,
    PeriodNotOpenError,
    PeriodOverlapError,
    PriceLockedError,
    ValidationError,
)
from stock_kernel.models.period import ItemPrice, Period


@pytest.fixture
def kitchen(make_location):
    return make_location(name="Main Kitchen")


@pytest.fixture
def milk(make_item):
    return make_item(name="Milk", unit="LTR")


class TestCreatePeriod:

    def test_created_draft(self, period_service, kitchen, test_actor_id):
        period = period_service.create_period(
            "January 2025", date(2025, 1, 1), date(2025, 1, 31), test_actor_id, [kitchen.id]
        )

        assert period.status == PeriodStatus.DRAFT
        assert period.contains(date(2025, 1, 31))
        (location,) = period_service.list_period_locations(period.id)
        assert location.location_id == kitchen.id
        assert location.status == PeriodLocationStatus.OPEN
        assert location.opening_value is None

    def test_start_after_end(self, period_service, test_actor_id):
        with pytest.raises(ValidationError, match="cannot be after"):
            period_service.create_period("Bad", date(2025, 2, 1), date(2025, 1, 1), test_actor_id)

    def test_single_day_period(self, period_service, test_actor_id):
        period = period_service.create_period(
            "Stocktake day", date(2025, 3, 1), date(2025, 3, 1), test_actor_id
        )

        assert period.start_date == period.end_date

    @pytest.mark.parametrize(
        "start,end",
        [
            (date(2025, 1, 31), date(2025, 2, 27)),
            (date(2024, 12, 1), date(2025, 1, 1)),
            (date(2025, 1, 10), date(2025, 1, 20)),
        ],
    )
    def test_overlap_rejected(self, period_service, make_period, start, end, test_actor_id):
        make_period(open_period=False)

        with pytest.raises(PeriodOverlapError, match="January 2025"):
            period_service.create_period("Overlap", start, end, test_actor_id)

    def test_adjacent_periods_allowed(self, period_service, make_period, test_actor_id):
        make_period(open_period=False)

        february = period_service.create_period(
            "February 2025", date(2025, 2, 1), date(2025, 2, 28), test_actor_id
        )

        assert february.status == PeriodStatus.DRAFT

    def test_unknown_location(self, period_service, test_actor_id):
        from uuid import uuid4

        from stock_kernel.exceptions import NotFoundError

        with pytest.raises(NotFoundError, match="Location"):
            period_service.create_period(
                "January 2025", date(2025, 1, 1), date(2025, 1, 31), test_actor_id, [uuid4()]
            )


class TestOpenPeriod:

    def test_open_locks_prices(self, period_service, session, make_period, kitchen, milk):
        period = make_period(locations=[kitchen], prices={milk.id: "4.75"})

        assert period.status == PeriodStatus.OPEN
        price = session.execute(
            select(ItemPrice).where(ItemPrice.period_id == period.id)
        ).scalar_one()
        assert price.locked is True
        assert price.locked_at is not None
        assert period_service.get_item_prices(period.id) == {milk.id: Decimal("4.75")}

    def test_open_requires_locations(self, make_period):
        with pytest.raises(NoLocationsError, match="has no locations"):
            make_period()

    def test_second_open_period_rejected(self, period_service, make_period, kitchen, test_actor_id):
        january = make_period(locations=[kitchen])
        february = make_period(
            locations=[kitchen],
            start=date(2025, 2, 1),
            end=date(2025, 2, 28),
            name="February 2025",
            open_period=False,
        )

        with pytest.raises(PeriodAlreadyOpenError) as exc_info:
            period_service.open_period(february.id, test_actor_id)

        assert exc_info.value.conflicting_id == str(january.id)
        assert period_service.get_period(february.id).status == PeriodStatus.DRAFT

    def test_database_enforces_single_open(self, session, make_period, kitchen, test_actor_id):
        make_period(locations=[kitchen])

        session.add(
            Period(
                name="Rogue",
                start_date=date(2026, 1, 1),
                end_date=date(2026, 1, 31),
                status=PeriodStatus.OPEN,
                created_by_id=test_actor_id,
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()

    def test_open_twice(self, period_service, make_period, kitchen, test_actor_id):
        period = make_period(locations=[kitchen])

        with pytest.raises(InvalidStateTransitionError, match="cannot open from status OPEN"):
            period_service.open_period(period.id, test_actor_id)

    def test_get_open_period(self, period_service, make_period, kitchen):
        assert period_service.get_open_period() is None

        period = make_period(locations=[kitchen])

        assert period_service.get_open_period() == period


class TestPrices:

    def test_replace_draft_price(self, period_service, make_period, milk, test_actor_id):
        period = make_period(open_period=False, prices={milk.id: "4.75"})

        period_service.set_item_price(period.id, milk.id, "5.10", test_actor_id)

        assert period_service.get_item_prices(period.id, [milk.id]) == {milk.id: Decimal("5.10")}

    def test_price_locked_after_open(self, period_service, make_period, kitchen, milk, test_actor_id):
        period = make_period(locations=[kitchen], prices={milk.id: "4.75"})

        with pytest.raises(PriceLockedError, match="locked"):
            period_service.set_item_price(period.id, milk.id, "5.00", test_actor_id)

    def test_negative_price(self, period_service, make_period, milk, test_actor_id):
        period = make_period(open_period=False)

        with pytest.raises(ValidationError, match="price"):
            period_service.set_item_price(period.id, milk.id, "-1", test_actor_id)


class TestLocationReadiness:

    @pytest.fixture
    def january(self, make_period, kitchen):
        return make_period(locations=[kitchen])

    def test_ready_requires_reconciliation(self, period_service, january, kitchen, test_actor_id):
        with pytest.raises(InvalidStateTransitionError, match="no reconciliation"):
            period_service.mark_location_ready(january.id, kitchen.id, test_actor_id)

    def test_ready_and_back(self, stock, period_service, january, kitchen, test_actor_id):
        stock.reconciliations.refresh(january.id, kitchen.id, test_actor_id)

        ready = period_service.mark_location_ready(january.id, kitchen.id, test_actor_id)
        assert ready.status == PeriodLocationStatus.READY
        assert ready.ready_at is not None

        with pytest.raises(PeriodNotOpenError):
            period_service.require_postable(kitchen.id)

        reopened = period_service.mark_location_unready(january.id, kitchen.id, test_actor_id)
        assert reopened.status == PeriodLocationStatus.OPEN
        assert reopened.ready_at is None
        assert period_service.require_postable(kitchen.id).id == january.id

    def test_unready_requires_ready(self, period_service, january, kitchen, test_actor_id):
        with pytest.raises(InvalidStateTransitionError, match="revert to OPEN"):
            period_service.mark_location_unready(january.id, kitchen.id, test_actor_id)

    def test_ready_requires_open_period(self, period_service, make_period, kitchen, test_actor_id):
        draft = make_period(locations=[kitchen], open_period=False)

        with pytest.raises(InvalidStateTransitionError, match="mark locations ready"):
            period_service.mark_location_ready(draft.id, kitchen.id, test_actor_id)

    def test_add_location_to_open_period(self, period_service, make_location, january, test_actor_id):
        store = make_location(name="Store")

        added = period_service.add_location(january.id, store.id, test_actor_id, opening_value="150")

        assert added.opening_value == Decimal("150")
        assert period_service.require_postable(store.id).id == january.id
