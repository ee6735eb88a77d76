"""
Tests for TransferService: request snapshots WAC, approval moves stock.
"""

from decimal import Decimal

import pytest

from stock_kernel.domain.dtos import ApprovalEntityType, TransferStatus
from stock_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateTransitionError,
    PeriodNotOpenError,
    ValidationError,
)
from stock_services import TransferLineInput


@pytest.fixture
def central(make_location):
    return make_location(name="Central Store", code="CS")


@pytest.fixture
def kitchen(make_location):
    return make_location(name="Main Kitchen", code="MK")


@pytest.fixture
def beef(make_item):
    return make_item(name="Beef")


@pytest.fixture
def january(make_period, central, kitchen):
    return make_period(locations=[central, kitchen])


@pytest.fixture
def stocked(seed_stock, central, kitchen, beef, january):
    seed_stock(central, beef, 10, "4.50")
    seed_stock(kitchen, beef, 10, "6.00")


@pytest.fixture
def pending(stock, stocked, central, kitchen, beef, test_actor_id):
    return stock.transfers.request_transfer(
        central.id, kitchen.id, [TransferLineInput(beef.id, 4)], test_actor_id, notes="Weekend prep"
    )


class TestRequestTransfer:

    def test_request_snapshots_source_wac(self, stock, ledger, pending, central, beef):
        assert pending.transfer_no == "TRF-2025-001"
        assert pending.status == TransferStatus.PENDING_APPROVAL
        (line,) = pending.lines
        assert line.wac_at_transfer == Decimal("4.5")
        assert line.line_value == Decimal("18.00")
        assert pending.total_value == Decimal("18.00")
        assert ledger.get_level(central.id, beef.id).on_hand == Decimal("10")

    def test_request_opens_approval(self, stock, pending):
        approval = stock.approval_service.get_pending(ApprovalEntityType.TRANSFER, pending.id)

        assert approval is not None
        assert approval.comments == "Weekend prep"

    def test_same_location_rejected(self, stock, stocked, central, beef, test_actor_id):
        with pytest.raises(ValidationError, match="to_location_id"):
            stock.transfers.request_transfer(
                central.id, central.id, [TransferLineInput(beef.id, 1)], test_actor_id
            )

    def test_insufficient_stock_at_request(self, stock, stocked, central, kitchen, beef, test_actor_id):
        with pytest.raises(InsufficientStockError):
            stock.transfers.request_transfer(
                central.id, kitchen.id, [TransferLineInput(beef.id, 11)], test_actor_id
            )

    def test_destination_must_be_in_period(
        self, stock, stocked, make_location, central, beef, test_actor_id
    ):
        outside = make_location(name="Satellite")

        with pytest.raises(PeriodNotOpenError):
            stock.transfers.request_transfer(
                central.id, outside.id, [TransferLineInput(beef.id, 1)], test_actor_id
            )


class TestApproveTransfer:

    def test_approval_moves_stock(self, stock, ledger, pending, central, kitchen, beef, test_actor_id):
        approved = stock.transfers.approve_transfer(pending.id, test_actor_id)

        assert approved.status == TransferStatus.COMPLETED
        assert approved.approved_by_id == test_actor_id
        assert approved.approved_at is not None

        source = ledger.get_level(central.id, beef.id)
        assert source.on_hand == Decimal("6")
        assert source.wac == Decimal("4.5")

        destination = ledger.get_level(kitchen.id, beef.id)
        assert destination.on_hand == Decimal("14")
        # (10 x 6.00 + 4 x 4.50) / 14
        assert destination.wac == Decimal("5.5714")

    def test_approval_resolves_approval_request(self, stock, pending, test_actor_id):
        stock.transfers.approve_transfer(pending.id, test_actor_id)

        assert stock.approval_service.get_pending(ApprovalEntityType.TRANSFER, pending.id) is None

    def test_cannot_approve_twice(self, stock, pending, test_actor_id):
        stock.transfers.approve_transfer(pending.id, test_actor_id)

        with pytest.raises(InvalidStateTransitionError, match="cannot approve from status COMPLETED"):
            stock.transfers.approve_transfer(pending.id, test_actor_id)

    def test_stock_rechecked_at_approval(self, stock, pending, central, beef, test_actor_id):
        from stock_services import IssueLineInput

        stock.issues.post_issue(central.id, [IssueLineInput(beef.id, 8)], test_actor_id)

        with pytest.raises(InsufficientStockError):
            stock.transfers.approve_transfer(pending.id, test_actor_id)


class TestRejectTransfer:

    def test_reject_leaves_stock(self, stock, ledger, pending, central, kitchen, beef, test_actor_id):
        rejected = stock.transfers.reject_transfer(pending.id, test_actor_id, "Not needed")

        assert rejected.status == TransferStatus.REJECTED
        assert ledger.get_level(central.id, beef.id).on_hand == Decimal("10")
        assert ledger.get_level(kitchen.id, beef.id).on_hand == Decimal("10")
        assert stock.approval_service.get_pending(ApprovalEntityType.TRANSFER, pending.id) is None

    def test_cannot_approve_rejected(self, stock, pending, test_actor_id):
        stock.transfers.reject_transfer(pending.id, test_actor_id)

        with pytest.raises(InvalidStateTransitionError):
            stock.transfers.approve_transfer(pending.id, test_actor_id)

    def test_get_transfer(self, stock, pending):
        assert stock.transfers.get_transfer(pending.id).transfer_no == "TRF-2025-001"
