"""
stock_services.period_close_orchestrator -- OPEN -> PENDING_CLOSE -> CLOSED -> roll forward.

Responsibility:
    Drives the second half of the period lifecycle: close request with
    approval creation and OPEN-NCR warnings, approval resolution (close or
    back to OPEN), and roll forward of a CLOSED period into a new DRAFT
    period that carries closing values and, optionally, prices.

Architecture position:
    Services -- stateful orchestration over kernel services.
    Composes PeriodService, ApprovalService, StockLedgerService,
    ReconciliationService and NCRService; all business rules on prices,
    readiness and overlap stay in PeriodService.

Invariants enforced:
    - OPEN -> PENDING_CLOSE only when the period has locations and every
      one of them is READY.  One PENDING PERIOD_CLOSE approval per period
      (DuplicateApprovalError, backed by a partial unique index).
    - OPEN NCRs never block a close; they are returned as warnings.
    - Marking a location READY and closing both re-sync its saved
      reconciliation before anything is frozen.
    - PENDING_CLOSE -> CLOSED re-checks readiness, stores a stock and
      reconciliation snapshot plus closing_value per location, and
      closes every period location.
    - A rejected close returns the period to OPEN, subject to the single
      OPEN period rule.
    - Roll forward: start = closed end + 1 day, default end = last day of
      that month, opening_value = closed closing_value per location, no
      reconciliation data carried, overlapping ranges rejected.
    - The period row is locked (SELECT ... FOR UPDATE) for every transition.

Failure modes:
    - InvalidStateTransitionError for a wrong period status.
    - NoLocationsError, LocationsNotReadyError.
    - DuplicateApprovalError, PeriodAlreadyOpenError, PeriodOverlapError.
    - ValidationError for a roll forward end date not after its start.
"""

from __future__ import annotations

import calendar
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    ApprovalEntityType,
    PeriodInfo,
    PeriodLocationInfo,
    PeriodLocationStatus,
    PeriodStatus,
)
from stock_kernel.domain.values import ZERO, round_money
from stock_kernel.exceptions import (
    InvalidStateTransitionError,
    LocationsNotReadyError,
    NoLocationsError,
    NotFoundError,
    PeriodAlreadyOpenError,
    ValidationError,
)
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.catalog import Item, Location
from stock_kernel.models.period import ItemPrice, Period, PeriodLocation
from stock_kernel.services.approval_service import ApprovalService
from stock_kernel.services.period_service import (
    PeriodService,
    period_location_to_dto,
    period_to_dto,
)
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_services._types import (
    CloseRequestResult,
    PeriodCloseResult,
    RollForwardResult,
)
from stock_services.ncr_service import NCRService
from stock_services.reconciliation_service import ReconciliationService

logger = get_logger("services.period_close")


def default_roll_forward_end(start: date) -> date:
    """Last calendar day of the month containing ``start``."""
    return start.replace(day=calendar.monthrange(start.year, start.month)[1])


class PeriodCloseOrchestrator:
    """
    Close request, approval resolution and roll forward.

    Contract:
        Receives all collaborators via constructor injection.  Flush-only;
        the caller commits.
    Non-goals:
        - Does not decide who may approve; any actor passed in is trusted.
    """

    def __init__(
        self,
        session: Session,
        period_service: PeriodService,
        approval_service: ApprovalService,
        ledger: StockLedgerService,
        reconciliation_service: ReconciliationService,
        ncr_service: NCRService,
        clock: Clock | None = None,
        config: StockConfig | None = None,
    ) -> None:
        self._session = session
        self._periods = period_service
        self._approvals = approval_service
        self._ledger = ledger
        self._reconciliations = reconciliation_service
        self._ncrs = ncr_service
        self._clock = clock or SystemClock()
        self._config = config or StockConfig.with_defaults()

    # ------------------------------------------------------------------
    # Guards
    # ------------------------------------------------------------------

    def _locked_period(self, period_id: UUID, required: PeriodStatus, requested: str) -> Period:
        period = self._periods.get_for_update(period_id)
        if period.status != required:
            logger.warning(
                "period_transition_rejected",
                extra={
                    "period_id": str(period_id),
                    "status": PeriodStatus(period.status).value,
                    "requested": requested,
                },
            )
            raise InvalidStateTransitionError("Period", period_id, period.status, requested)
        return period

    def _ready_locations(self, period: Period, requested: str) -> list[PeriodLocation]:
        rows = self._periods.period_locations(period.id, for_update=True)
        if not rows:
            raise NoLocationsError(period.id, period.status, requested)
        not_ready = [r.location_id for r in rows if r.status != PeriodLocationStatus.READY]
        if not_ready:
            logger.warning(
                "period_close_locations_not_ready",
                extra={"period_id": str(period.id), "not_ready_count": len(not_ready)},
            )
            raise LocationsNotReadyError(period.id, period.status, not_ready)
        return rows

    # ------------------------------------------------------------------
    # Location readiness
    # ------------------------------------------------------------------

    def mark_location_ready(
        self, period_id: UUID, location_id: UUID, actor_id: UUID
    ) -> PeriodLocationInfo:
        """
        Mark the location READY and bring its saved reconciliation up to
        date, so the figures the approver sees include every NCR credited
        or written off since the last refresh.
        """
        ready = self._periods.mark_location_ready(period_id, location_id, actor_id)
        self._reconciliations.sync_existing(period_id, location_id, actor_id)
        return ready

    # ------------------------------------------------------------------
    # OPEN -> PENDING_CLOSE
    # ------------------------------------------------------------------

    def request_close(
        self, period_id: UUID, actor_id: UUID, comments: str | None = None
    ) -> CloseRequestResult:
        """
        Ask for the period to be closed.

        Returns:
            CloseRequestResult with the PENDING approval and one warning per
            location that still has OPEN NCRs.
        """
        period = self._locked_period(period_id, PeriodStatus.OPEN, "request close")
        self._ready_locations(period, "request close")

        approval = self._approvals.request(
            ApprovalEntityType.PERIOD_CLOSE, period_id, actor_id, comments
        )
        period.status = PeriodStatus.PENDING_CLOSE
        period.approval_id = approval.id
        period.updated_by_id = actor_id
        self._session.flush()

        warnings = self._ncrs.open_ncr_warnings(period_id)
        if warnings:
            logger.warning(
                "period_close_open_ncrs",
                extra={
                    "period_id": str(period_id),
                    "location_count": len(warnings),
                    "open_ncr_count": sum(w.count for w in warnings),
                    "open_ncr_value": str(sum((w.total_value for w in warnings), ZERO)),
                },
            )

        logger.info(
            "period_close_requested",
            extra={"period_id": str(period_id), "approval_id": str(approval.id)},
        )
        return CloseRequestResult(
            period=period_to_dto(period),
            approval=approval,
            warnings=warnings,
        )

    # ------------------------------------------------------------------
    # PENDING_CLOSE -> CLOSED | OPEN
    # ------------------------------------------------------------------

    def _approval_id(self, period: Period) -> UUID:
        if period.approval_id is not None:
            return period.approval_id
        pending = self._approvals.get_pending(ApprovalEntityType.PERIOD_CLOSE, period.id)
        if pending is None:
            raise NotFoundError("Approval", f"PERIOD_CLOSE/{period.id}")
        return pending.id

    def approve_close(
        self, period_id: UUID, actor_id: UUID, comments: str | None = None
    ) -> PeriodCloseResult:
        """Close the period: snapshot every location and freeze its values."""
        period = self._locked_period(period_id, PeriodStatus.PENDING_CLOSE, "close")
        rows = self._ready_locations(period, "close")
        approval_id = self._approval_id(period)
        now = self._clock.now()

        total = ZERO
        for row in rows:
            with LogContext.bind(period_id=str(period_id), location_id=str(row.location_id)):
                self._reconciliations.sync_existing(period_id, row.location_id, actor_id)
                closing_value = self._ledger.location_value(row.location_id)
                row.snapshot_data = {
                    "stock": self._ledger.snapshot(row.location_id),
                    "reconciliation": self._reconciliations.snapshot(period_id, row.location_id),
                    "closed_at": now.isoformat(),
                }
                row.closing_value = closing_value
                row.status = PeriodLocationStatus.CLOSED
                row.closed_at = now
                row.updated_by_id = actor_id
                total += closing_value
                logger.info(
                    "period_location_closed",
                    extra={"closing_value": str(closing_value)},
                )

        period.status = PeriodStatus.CLOSED
        period.closed_at = now
        period.closed_by_id = actor_id
        period.updated_by_id = actor_id
        self._session.flush()

        approval = self._approvals.approve(approval_id, actor_id, comments)

        logger.info(
            "period_closed",
            extra={
                "period_id": str(period_id),
                "location_count": len(rows),
                "total_closing_value": str(round_money(total)),
            },
        )
        return PeriodCloseResult(
            period=period_to_dto(period),
            approval=approval,
            locations=tuple(period_location_to_dto(r) for r in rows),
            total_closing_value=round_money(total),
        )

    def reject_close(
        self, period_id: UUID, actor_id: UUID, comments: str | None = None
    ) -> PeriodInfo:
        """Back to OPEN; locations keep their READY status."""
        period = self._locked_period(period_id, PeriodStatus.PENDING_CLOSE, "reject close")
        approval_id = self._approval_id(period)

        other_open = self._periods.get_open_period()
        if other_open is not None:
            raise PeriodAlreadyOpenError(period_id, other_open.id)

        savepoint = self._session.begin_nested()
        try:
            period.status = PeriodStatus.OPEN
            period.approval_id = None
            period.updated_by_id = actor_id
            self._session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            raise PeriodAlreadyOpenError(period_id, None) from None

        self._approvals.reject(approval_id, actor_id, comments)

        logger.info(
            "period_close_rejected",
            extra={"period_id": str(period_id), "approval_id": str(approval_id)},
        )
        return period_to_dto(period)

    # ------------------------------------------------------------------
    # CLOSED -> new DRAFT
    # ------------------------------------------------------------------

    def roll_forward(
        self,
        source_period_id: UUID,
        actor_id: UUID,
        end_date: date | None = None,
        name: str | None = None,
        copy_prices: bool | None = None,
    ) -> RollForwardResult:
        """
        Create the next DRAFT period from a CLOSED one.

        Every active location is attached; its opening_value is the
        location's closing_value in the source period (None when the
        location was not part of it).  Prices of active items are copied
        unless ``copy_prices`` is False.
        """
        source = self._periods.get_period(source_period_id)
        if source.status != PeriodStatus.CLOSED:
            raise InvalidStateTransitionError(
                "Period", source_period_id, source.status, "roll forward"
            )

        start = source.end_date + timedelta(days=1)
        if end_date is None:
            end = default_roll_forward_end(start)
        elif end_date <= start:
            raise ValidationError("end_date", f"must be after the start date {start}")
        else:
            end = end_date
        if copy_prices is None:
            copy_prices = self._config.copy_prices_on_roll_forward

        new_period = self._periods.create_period(
            name or start.strftime("%B %Y"), start, end, actor_id
        )

        closing_values = {
            row.location_id: row.closing_value
            for row in self._periods.period_locations(source_period_id)
        }
        locations = self._session.execute(
            select(Location).where(Location.is_active.is_(True)).order_by(Location.code)
        ).scalars().all()

        with_opening = 0
        total_opening = ZERO
        for location in locations:
            opening = closing_values.get(location.id)
            self._periods.add_location(new_period.id, location.id, actor_id, opening)
            if opening is not None:
                with_opening += 1
                total_opening += Decimal(opening)

        prices_copied = 0
        if copy_prices:
            prices = self._session.execute(
                select(ItemPrice)
                .join(Item, Item.id == ItemPrice.item_id)
                .where(ItemPrice.period_id == source_period_id, Item.is_active.is_(True))
            ).scalars().all()
            for price in prices:
                self._periods.set_item_price(
                    new_period.id, price.item_id, Decimal(price.price), actor_id, price.currency
                )
                prices_copied += 1

        logger.info(
            "period_rolled_forward",
            extra={
                "source_period_id": str(source_period_id),
                "period_id": str(new_period.id),
                "start_date": str(start),
                "end_date": str(end),
                "locations_created": len(locations),
                "prices_copied": prices_copied,
            },
        )
        return RollForwardResult(
            period=self._periods.get_period(new_period.id),
            locations_created=len(locations),
            locations_with_opening_value=with_opening,
            total_opening_value=round_money(total_opening),
            prices_copied=prices_copied,
        )
