"""
stock_services.reconciliation_service -- Period/location reconciliation records.

Responsibility:
    Maintains the single Reconciliation row of each (period, location):
    movement totals derived from postings, NCR-derived credits and losses
    from the impact aggregator, and the manual adjustments entered by
    users.  Produces the consumption and manday cost report of one
    location and the consolidated view of a whole period.

Architecture position:
    Services -- composes PeriodService, StockLedgerService, NCRService and
    POBService, and the pure stock_engines.reconciliation calculator.

Invariants enforced:
    - One record per (period, location) (unique constraint); refresh
      upserts it.
    - ncr_credits / ncr_losses are always recomputed from the aggregator
      and are not accepted by update_adjustments.  Reports of a period
      that is not CLOSED read them live; the stored copy is re-synced when
      a location is marked READY and at close.
    - Mandays are the POB total of the location; no mandays, no manday
      cost.
    - Only COMPLETED transfers count toward transfers in and out.
    - Opening stock comes from PeriodLocation.opening_value (0 when the
      period was not rolled forward); closing stock is the current ledger
      value of the location.
    - Records of a CLOSED period are frozen.

Failure modes:
    - NotFoundError when the location is not part of the period.
    - InvalidStateTransitionError when the period is CLOSED.
    - ValidationError for unknown or non-finite adjustment fields and
      total_mandays <= 0.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_engines.reconciliation import (
    MOVEMENT_FIELDS,
    ReconciliationAdjustments,
    StockMovements,
    calculate_consumption,
    calculate_manday_cost,
)
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import PeriodInfo, PeriodStatus, TransferStatus
from stock_kernel.domain.values import ZERO, Numeric, round_money, to_decimal
from stock_kernel.exceptions import (
    InvalidStateTransitionError,
    NotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Location
from stock_kernel.models.movements import Delivery, Issue, Transfer
from stock_kernel.models.period import PeriodLocation
from stock_kernel.models.reconciliation import Reconciliation
from stock_kernel.services.period_service import PeriodService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_services._types import (
    ConsolidatedLocation,
    ConsolidatedReconciliation,
    ConsolidatedTotals,
    ReconciliationReport,
)
from stock_services.ncr_service import NCRService
from stock_services.pob_service import POBService

logger = get_logger("services.reconciliation")

# Reconciliation column per editable adjustment field.
MANUAL_ADJUSTMENT_FIELDS: dict[str, str] = {
    "back_charges": "back_charges",
    "credits": "credits",
    "condemnations": "condemnations",
    "other_adjustments": "adjustments",
}

# Stored columns, in balance-equation order.
_RECORD_FIELDS = MOVEMENT_FIELDS + (
    "back_charges",
    "credits",
    "condemnations",
    "adjustments",
    "ncr_credits",
    "ncr_losses",
)


class ReconciliationService:

    def __init__(
        self,
        session: Session,
        period_service: PeriodService,
        ledger: StockLedgerService,
        ncr_service: NCRService,
        pob_service: POBService,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._periods = period_service
        self._ledger = ledger
        self._ncrs = ncr_service
        self._pob = pob_service
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Movement totals
    # ------------------------------------------------------------------

    def _sum(self, column: Any, *criteria: Any) -> Decimal:
        value = self._session.execute(
            select(func.coalesce(func.sum(column), 0)).where(*criteria)
        ).scalar()
        return round_money(to_decimal(value, "total"))

    def compute_movements(self, period_id: UUID, location_id: UUID) -> StockMovements:
        """Movement totals of a (period, location) from its postings and the ledger."""
        period_location = self._period_location(period_id, location_id)
        opening = period_location.opening_value
        return StockMovements(
            opening_stock=round_money(Decimal(opening)) if opening is not None else ZERO,
            receipts=self._sum(
                Delivery.total_amount,
                Delivery.period_id == period_id,
                Delivery.location_id == location_id,
            ),
            transfers_in=self._sum(
                Transfer.total_value,
                Transfer.period_id == period_id,
                Transfer.to_location_id == location_id,
                Transfer.status == TransferStatus.COMPLETED,
            ),
            transfers_out=self._sum(
                Transfer.total_value,
                Transfer.period_id == period_id,
                Transfer.from_location_id == location_id,
                Transfer.status == TransferStatus.COMPLETED,
            ),
            issues=self._sum(
                Issue.total_value,
                Issue.period_id == period_id,
                Issue.location_id == location_id,
            ),
            closing_stock=self._ledger.location_value(location_id),
        )

    def _period_location(self, period_id: UUID, location_id: UUID) -> PeriodLocation:
        row = self._session.execute(
            select(PeriodLocation).where(
                PeriodLocation.period_id == period_id,
                PeriodLocation.location_id == location_id,
            )
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("PeriodLocation", f"{period_id}/{location_id}")
        return row

    def _record(
        self, period_id: UUID, location_id: UUID, for_update: bool = False
    ) -> Reconciliation | None:
        stmt = select(Reconciliation).where(
            Reconciliation.period_id == period_id,
            Reconciliation.location_id == location_id,
        )
        if for_update:
            stmt = stmt.with_for_update()
        return self._session.execute(stmt).scalar_one_or_none()

    def _require_not_closed(self, period_id: UUID, requested: str) -> None:
        period = self._periods.get_period(period_id)
        if period.status == PeriodStatus.CLOSED:
            raise InvalidStateTransitionError("Period", period_id, period.status.value, requested)

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def refresh(self, period_id: UUID, location_id: UUID, actor_id: UUID) -> ReconciliationReport:
        """
        Create or update the record with current movement and NCR totals.

        Manual adjustments already entered are kept.
        """
        self._upsert(period_id, location_id, actor_id)
        return self.get_report(period_id, location_id)

    def _upsert(self, period_id: UUID, location_id: UUID, actor_id: UUID) -> Reconciliation:
        self._require_not_closed(period_id, "refresh reconciliation")
        movements = self.compute_movements(period_id, location_id)
        impact = self._ncrs.get_impact_summary(period_id, location_id)

        record = self._record(period_id, location_id, for_update=True)
        created = record is None
        if created:
            record = Reconciliation(
                period_id=period_id,
                location_id=location_id,
                created_by_id=actor_id,
            )
            self._session.add(record)
        else:
            record.updated_by_id = actor_id

        record.opening_stock = movements.opening_stock
        record.receipts = movements.receipts
        record.transfers_in = movements.transfers_in
        record.transfers_out = movements.transfers_out
        record.issues = movements.issues
        record.closing_stock = movements.closing_stock
        record.ncr_credits = impact.credited.total
        record.ncr_losses = impact.losses.total
        if created:
            record.back_charges = ZERO
            record.credits = ZERO
            record.condemnations = ZERO
            record.adjustments = ZERO
        self._session.flush()

        logger.info(
            "reconciliation_refreshed",
            extra={
                "period_id": str(period_id),
                "location_id": str(location_id),
                "record_created": created,
                "closing_stock": str(movements.closing_stock),
                "ncr_credits": str(impact.credited.total),
                "ncr_losses": str(impact.losses.total),
            },
        )
        return record

    def update_adjustments(
        self,
        period_id: UUID,
        location_id: UUID,
        actor_id: UUID,
        **adjustments: Numeric,
    ) -> ReconciliationReport:
        """
        Set manual adjustments (back_charges, credits, condemnations,
        other_adjustments).  Refreshes movement and NCR totals as well.

        Raises:
            ValidationError: any other field, including ncr_credits and
                ncr_losses, or a non-finite value.
        """
        unknown = sorted(set(adjustments) - set(MANUAL_ADJUSTMENT_FIELDS))
        if unknown:
            raise ValidationError(
                unknown[0],
                "is not a manual adjustment; allowed: "
                + ", ".join(MANUAL_ADJUSTMENT_FIELDS),
            )
        values = {name: round_money(to_decimal(raw, name)) for name, raw in adjustments.items()}

        record = self._upsert(period_id, location_id, actor_id)
        for name, value in values.items():
            setattr(record, MANUAL_ADJUSTMENT_FIELDS[name], value)
        self._session.flush()

        logger.info(
            "reconciliation_adjusted",
            extra={
                "period_id": str(period_id),
                "location_id": str(location_id),
                "fields": sorted(values),
            },
        )
        return self.get_report(period_id, location_id)

    def sync_existing(self, period_id: UUID, location_id: UUID, actor_id: UUID) -> bool:
        """
        Bring a saved record up to date with postings, the ledger and the
        NCR aggregates.  Does nothing when no record was saved.

        Called when a location is marked READY and again at close, so the
        frozen record reflects NCRs credited after the last refresh.
        """
        if self._record(period_id, location_id) is None:
            return False
        self._upsert(period_id, location_id, actor_id)
        return True

    # ------------------------------------------------------------------
    # Report
    # ------------------------------------------------------------------

    def get_report(
        self,
        period_id: UUID,
        location_id: UUID,
        total_mandays: Numeric | None = None,
    ) -> ReconciliationReport:
        """
        Consumption and manday cost of one location.

        Movements and manual adjustments come from the stored record when
        there is one, otherwise they are computed live without writing.
        NCR credits and losses always come from the NCR aggregates, except
        for a CLOSED period, whose record is frozen.

        Mandays are the location's POB total unless ``total_mandays`` is
        given; with zero mandays the report has no manday cost.
        """
        period = self._periods.get_period(period_id)
        return self._build_report(period, location_id, total_mandays)

    def _build_report(
        self,
        period: PeriodInfo,
        location_id: UUID,
        total_mandays: Numeric | None = None,
    ) -> ReconciliationReport:
        record = self._record(period.id, location_id)
        impact = self._ncrs.get_impact_summary(period.id, location_id)

        if record is None:
            movements = self.compute_movements(period.id, location_id)
            adjustments = ReconciliationAdjustments(
                ncr_credits=impact.credited.total,
                ncr_losses=impact.losses.total,
            )
        else:
            stored = {name: round_money(Decimal(getattr(record, name))) for name in _RECORD_FIELDS}
            movements = StockMovements(**{name: stored[name] for name in MOVEMENT_FIELDS})
            frozen = period.status == PeriodStatus.CLOSED
            adjustments = ReconciliationAdjustments(
                back_charges=stored["back_charges"],
                credits=stored["credits"],
                condemnations=stored["condemnations"],
                other_adjustments=stored["adjustments"],
                ncr_credits=stored["ncr_credits"] if frozen else impact.credited.total,
                ncr_losses=stored["ncr_losses"] if frozen else impact.losses.total,
            )

        consumption = calculate_consumption(movements, adjustments)
        if total_mandays is not None:
            mandays = to_decimal(total_mandays, "total_mandays")
            manday = calculate_manday_cost(consumption.consumption, mandays)
        else:
            mandays = Decimal(self._pob.total_mandays(period.id, location_id))
            manday = (
                calculate_manday_cost(consumption.consumption, mandays)
                if mandays > ZERO
                else None
            )

        return ReconciliationReport(
            period_id=period.id,
            location_id=location_id,
            movements=movements,
            adjustments=adjustments,
            consumption=consumption,
            ncr_impact=impact,
            manday=manday,
            total_mandays=mandays,
            is_saved=record is not None,
        )

    def get_consolidated(self, period_id: UUID) -> ConsolidatedReconciliation:
        """
        Every location of the period, ordered by location code, with grand
        totals.  The average manday cost is total consumption over total
        mandays, None when there are no mandays.
        """
        period = self._periods.get_period(period_id)
        rows = self._session.execute(
            select(Location)
            .join(PeriodLocation, PeriodLocation.location_id == Location.id)
            .where(PeriodLocation.period_id == period_id)
            .order_by(Location.code)
        ).scalars().all()

        lines = tuple(
            ConsolidatedLocation(
                location_id=location.id,
                location_code=location.code,
                location_name=location.name,
                report=self._build_report(period, location.id),
            )
            for location in rows
        )

        def total(pick) -> Decimal:
            return round_money(sum((pick(line.report) for line in lines), ZERO))

        consumption = total(lambda r: r.consumption.consumption)
        mandays = sum((line.report.total_mandays for line in lines), ZERO)
        totals = ConsolidatedTotals(
            opening_stock=total(lambda r: r.movements.opening_stock),
            receipts=total(lambda r: r.movements.receipts),
            transfers_in=total(lambda r: r.movements.transfers_in),
            transfers_out=total(lambda r: r.movements.transfers_out),
            issues=total(lambda r: r.movements.issues),
            closing_stock=total(lambda r: r.movements.closing_stock),
            back_charges=total(lambda r: r.adjustments.back_charges),
            credits=total(lambda r: r.adjustments.credits),
            condemnations=total(lambda r: r.adjustments.condemnations),
            other_adjustments=total(lambda r: r.adjustments.other_adjustments),
            ncr_credits=total(lambda r: r.adjustments.ncr_credits),
            ncr_losses=total(lambda r: r.adjustments.ncr_losses),
            consumption=consumption,
            total_mandays=mandays,
            average_manday_cost=round_money(consumption / mandays) if mandays > ZERO else None,
        )

        logger.info(
            "reconciliation_consolidated",
            extra={
                "period_id": str(period_id),
                "location_count": len(lines),
                "consumption": str(consumption),
            },
        )
        return ConsolidatedReconciliation(period=period, locations=lines, totals=totals)

    def snapshot(self, period_id: UUID, location_id: UUID) -> dict[str, str] | None:
        """JSON-safe copy of the stored record, for the period close snapshot."""
        record = self._record(period_id, location_id)
        if record is None:
            return None
        return {name: str(round_money(Decimal(getattr(record, name)))) for name in _RECORD_FIELDS}
