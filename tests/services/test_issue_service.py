"""
Tests for IssueService: deduction at WAC, all-or-nothing sufficiency.
"""

from decimal import Decimal

import pytest
from sqlalchemy import func, select

from stock_kernel.exceptions import InsufficientStockError, PeriodNotOpenError
from stock_kernel.models.movements import Issue
from stock_services import IssueLineInput


@pytest.fixture
def kitchen(make_location):
    return make_location(name="Main Kitchen")


@pytest.fixture
def flour(make_item):
    return make_item(name="Flour")


@pytest.fixture
def sugar(make_item):
    return make_item(name="Sugar")


@pytest.fixture
def january(make_period, kitchen):
    return make_period(locations=[kitchen])


class TestPostIssue:

    def test_issue_at_current_wac(
        self, stock, ledger, january, kitchen, flour, seed_stock, test_actor_id
    ):
        seed_stock(kitchen, flour, 10, "4.25")

        issue = stock.issues.post_issue(
            kitchen.id, [IssueLineInput(flour.id, 4)], test_actor_id, cost_centre="BANQUET"
        )

        assert issue.issue_no == "ISS-2025-001"
        assert issue.period_id == january.id
        assert issue.cost_centre == "BANQUET"
        (line,) = issue.lines
        assert line.wac_at_issue == Decimal("4.25")
        assert line.line_value == Decimal("17.00")
        assert issue.total_value == Decimal("17.00")

        level = ledger.get_level(kitchen.id, flour.id)
        assert level.on_hand == Decimal("6")
        assert level.wac == Decimal("4.25")

    def test_issue_whole_stock(self, stock, ledger, january, kitchen, flour, seed_stock, test_actor_id):
        seed_stock(kitchen, flour, 10, 2)

        stock.issues.post_issue(kitchen.id, [IssueLineInput(flour.id, 10)], test_actor_id)

        assert ledger.get_level(kitchen.id, flour.id).on_hand == Decimal("0")

    def test_get_issue(self, stock, january, kitchen, flour, seed_stock, test_actor_id):
        seed_stock(kitchen, flour, 10, 2)
        posted = stock.issues.post_issue(kitchen.id, [IssueLineInput(flour.id, 1)], test_actor_id)

        assert stock.issues.get_issue(posted.id) == posted


class TestInsufficientStock:

    def test_nothing_posted_when_any_line_short(
        self, stock, session, ledger, january, kitchen, flour, sugar, seed_stock, test_actor_id
    ):
        seed_stock(kitchen, flour, 10, 2)
        seed_stock(kitchen, sugar, 1, 3)

        with pytest.raises(InsufficientStockError) as exc_info:
            stock.issues.post_issue(
                kitchen.id,
                [IssueLineInput(flour.id, 5), IssueLineInput(sugar.id, 2)],
                test_actor_id,
            )

        (shortage,) = exc_info.value.shortages
        assert shortage["item_name"] == "Sugar"
        assert shortage["shortfall"] == Decimal("1")
        assert ledger.get_level(kitchen.id, flour.id).on_hand == Decimal("10")
        assert session.execute(select(func.count()).select_from(Issue)).scalar_one() == 0
        assert stock.sequence_service.current_value("ISS-2025") is None

    def test_duplicate_lines_summed(self, stock, january, kitchen, flour, seed_stock, test_actor_id):
        seed_stock(kitchen, flour, 10, 2)

        with pytest.raises(InsufficientStockError, match="requested 12"):
            stock.issues.post_issue(
                kitchen.id,
                [IssueLineInput(flour.id, 6), IssueLineInput(flour.id, 6)],
                test_actor_id,
            )

    def test_no_stock_row(self, stock, january, kitchen, flour, test_actor_id):
        with pytest.raises(InsufficientStockError, match="available 0"):
            stock.issues.post_issue(kitchen.id, [IssueLineInput(flour.id, 1)], test_actor_id)


def test_issue_requires_open_period(stock, make_period, kitchen, flour, seed_stock, test_actor_id):
    make_period(locations=[kitchen], open_period=False)
    seed_stock(kitchen, flour, 10, 2)

    with pytest.raises(PeriodNotOpenError):
        stock.issues.post_issue(kitchen.id, [IssueLineInput(flour.id, 1)], test_actor_id)
