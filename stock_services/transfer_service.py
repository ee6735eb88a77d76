"""
stock_services.transfer_service -- Inter-location transfers with approval.

Responsibility:
    Request, approve and reject stock transfers between two locations.

Architecture position:
    Services -- composes PeriodService, StockLedgerService,
    SequenceService and ApprovalService.

Invariants enforced:
    - Source and destination differ and both may post in the OPEN period.
    - The source WAC is captured per line at request time
      (wac_at_transfer) and is the cost the destination receives at.
    - Stock moves only on approval: deducted at the source (re-validated
      for sufficiency) and received at the destination through the WAC
      engine.  A rejected transfer never touches stock.
    - A TRANSFER approval is opened on request and resolved together with
      the transfer.

Failure modes:
    - ValidationError (same location, empty lines, bad quantity).
    - InsufficientStockError at request or approval.
    - InvalidStateTransitionError when the transfer is not PENDING_APPROVAL.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_engines.stock import validate_positive_quantity, validate_sufficient_stock
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import ApprovalEntityType, TransferStatus
from stock_kernel.domain.values import ZERO, round_money
from stock_kernel.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movements import Transfer, TransferLine
from stock_kernel.services.approval_service import ApprovalService
from stock_kernel.services.period_service import PeriodService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_services._types import TransferInfo, TransferLineInfo, TransferLineInput
from stock_services.issue_service import build_requirements

logger = get_logger("services.transfer")


def transfer_to_dto(transfer: Transfer) -> TransferInfo:
    return TransferInfo(
        id=transfer.id,
        transfer_no=transfer.transfer_no,
        from_location_id=transfer.from_location_id,
        to_location_id=transfer.to_location_id,
        period_id=transfer.period_id,
        transfer_date=transfer.transfer_date,
        status=TransferStatus(transfer.status),
        total_value=Decimal(transfer.total_value),
        notes=transfer.notes,
        approved_by_id=transfer.approved_by_id,
        approved_at=transfer.approved_at,
        lines=tuple(
            TransferLineInfo(
                line_no=line.line_no,
                item_id=line.item_id,
                quantity=Decimal(line.quantity),
                wac_at_transfer=Decimal(line.wac_at_transfer),
                line_value=Decimal(line.line_value),
            )
            for line in transfer.lines
        ),
    )


class TransferService:
    """Two-step transfers: request, then approve or reject."""

    def __init__(
        self,
        session: Session,
        period_service: PeriodService,
        ledger: StockLedgerService,
        sequence_service: SequenceService,
        approval_service: ApprovalService,
        clock: Clock | None = None,
        config: StockConfig | None = None,
    ) -> None:
        self._session = session
        self._periods = period_service
        self._ledger = ledger
        self._sequence = sequence_service
        self._approvals = approval_service
        self._clock = clock or SystemClock()
        self._config = config or StockConfig.with_defaults()

    def _pending_for_update(self, transfer_id: UUID, requested: str) -> Transfer:
        transfer = self._session.execute(
            select(Transfer).where(Transfer.id == transfer_id).with_for_update()
        ).scalar_one_or_none()
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        if transfer.status != TransferStatus.PENDING_APPROVAL:
            raise InvalidStateTransitionError("Transfer", transfer_id, transfer.status, requested)
        return transfer

    def request_transfer(
        self,
        from_location_id: UUID,
        to_location_id: UUID,
        lines: list[TransferLineInput],
        actor_id: UUID,
        transfer_date: date | None = None,
        notes: str | None = None,
    ) -> TransferInfo:
        """Create a PENDING_APPROVAL transfer, snapshotting the source WAC."""
        if from_location_id == to_location_id:
            raise ValidationError("to_location_id", "must differ from from_location_id")
        if not lines:
            raise ValidationError("lines", "at least one line is required")
        parsed = [
            (line.item_id, validate_positive_quantity(line.quantity, f"lines[{idx}].quantity"))
            for idx, line in enumerate(lines)
        ]

        period = self._periods.require_postable(from_location_id)
        self._periods.require_postable(to_location_id)

        requirements = build_requirements(self._session, parsed)
        levels = self._ledger.lock_levels(from_location_id, [r.item_id for r in requirements])
        validate_sufficient_stock(
            from_location_id,
            requirements,
            {item_id: level.on_hand for item_id, level in levels.items()},
        )

        requested_date = transfer_date or self._clock.today()
        transfer = Transfer(
            transfer_no=self._sequence.next_document_number(
                self._config.transfer_prefix, requested_date.year
            ),
            from_location_id=from_location_id,
            to_location_id=to_location_id,
            period_id=period.id,
            transfer_date=requested_date,
            status=TransferStatus.PENDING_APPROVAL,
            total_value=ZERO,
            notes=notes,
            created_by_id=actor_id,
        )
        self._session.add(transfer)
        self._session.flush()

        total = ZERO
        for line_no, req in enumerate(requirements, start=1):
            wac = levels[req.item_id].wac
            line_value = round_money(req.quantity * wac)
            self._session.add(
                TransferLine(
                    transfer_id=transfer.id,
                    line_no=line_no,
                    item_id=req.item_id,
                    quantity=req.quantity,
                    wac_at_transfer=wac,
                    line_value=line_value,
                    created_by_id=actor_id,
                )
            )
            total += line_value
        transfer.total_value = round_money(total)
        self._session.flush()
        self._session.refresh(transfer, ["lines"])

        self._approvals.request(ApprovalEntityType.TRANSFER, transfer.id, actor_id, notes)

        logger.info(
            "transfer_requested",
            extra={
                "transfer_id": str(transfer.id),
                "transfer_no": transfer.transfer_no,
                "from_location_id": str(from_location_id),
                "to_location_id": str(to_location_id),
                "total_value": str(transfer.total_value),
            },
        )
        return transfer_to_dto(transfer)

    def approve_transfer(
        self, transfer_id: UUID, actor_id: UUID, comments: str | None = None
    ) -> TransferInfo:
        """Move the stock: deduct at source, receive at destination at wac_at_transfer."""
        transfer = self._pending_for_update(transfer_id, "approve")
        self._periods.require_postable(transfer.from_location_id)
        self._periods.require_postable(transfer.to_location_id)

        lines = list(transfer.lines)
        requirements = build_requirements(
            self._session, [(line.item_id, Decimal(line.quantity)) for line in lines]
        )
        self._ledger.deduct_many(transfer.from_location_id, requirements, actor_id)
        for line in lines:
            self._ledger.receive(
                transfer.to_location_id,
                line.item_id,
                Decimal(line.quantity),
                Decimal(line.wac_at_transfer),
                actor_id,
            )

        transfer.status = TransferStatus.COMPLETED
        transfer.approved_by_id = actor_id
        transfer.approved_at = self._clock.now()
        transfer.updated_by_id = actor_id
        self._session.flush()

        pending = self._approvals.get_pending(ApprovalEntityType.TRANSFER, transfer.id)
        if pending is not None:
            self._approvals.approve(pending.id, actor_id, comments)

        logger.info(
            "transfer_completed",
            extra={
                "transfer_id": str(transfer.id),
                "transfer_no": transfer.transfer_no,
                "total_value": str(transfer.total_value),
            },
        )
        return transfer_to_dto(transfer)

    def reject_transfer(
        self, transfer_id: UUID, actor_id: UUID, comments: str | None = None
    ) -> TransferInfo:
        transfer = self._pending_for_update(transfer_id, "reject")
        transfer.status = TransferStatus.REJECTED
        transfer.updated_by_id = actor_id
        self._session.flush()

        pending = self._approvals.get_pending(ApprovalEntityType.TRANSFER, transfer.id)
        if pending is not None:
            self._approvals.reject(pending.id, actor_id, comments)

        logger.info(
            "transfer_rejected",
            extra={"transfer_id": str(transfer.id), "transfer_no": transfer.transfer_no},
        )
        return transfer_to_dto(transfer)

    def get_transfer(self, transfer_id: UUID) -> TransferInfo:
        transfer = self._session.get(Transfer, transfer_id)
        if transfer is None:
            raise NotFoundError("Transfer", transfer_id)
        return transfer_to_dto(transfer)
