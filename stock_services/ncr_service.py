"""
stock_services.ncr_service -- NCR creation, status lifecycle, and impact queries.

Responsibility:
    Creates manual and price-variance NCRs, applies status changes through
    the NCR lifecycle rules, and answers reconciliation questions: the
    credited / losses / pending / open buckets of a (period, location) and
    the still-OPEN NCRs per location at close time.

Architecture position:
    Services -- imperative shell over stock_engines.ncr.  Called by
    DeliveryService (auto NCRs), ReconciliationService (impact totals) and
    PeriodCloseOrchestrator (OPEN-NCR warnings).

Invariants enforced:
    - value is stored non-negative; a price variance NCR stores
      |variance_amount| and keeps the direction in its reason text.
    - RESOLVED is terminal and requires resolution_type plus
      financial_impact; any other status carries neither.
    - resolved_at is stamped on the first entry into CREDITED, REJECTED
      or RESOLVED and never moved afterwards.
    - Period association is computed at query time: the linked delivery's
      period, else the period whose date range contains created_at.
    - NCR numbers come from SequenceService, one partition per year.

Failure modes:
    - NotFoundError for unknown NCR, location, delivery or period.
    - ValidationError for empty reason or invalid value.
    - NCRAlreadyResolvedError, ResolutionFieldsError from the lifecycle rules.

Audit relevance:
    NCR_CREATED and NCR_RESOLVED events are queued in the notification
    outbox inside the caller's transaction.
"""

from __future__ import annotations

from datetime import UTC, datetime, time, timedelta
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import and_, or_, select
from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_engines.ncr import (
    RESOLVING_STATUSES,
    NCRImpactSummary,
    aggregate_ncr_impact,
    validate_ncr_transition,
)
from stock_engines.price_variance import PriceVarianceResult, build_price_variance_reason
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import (
    FinancialImpact,
    NCRInfo,
    NCRStatus,
    NCRSummary,
    NCRType,
    NotificationEventType,
)
from stock_kernel.domain.values import ZERO, Numeric, round_money, to_decimal
from stock_kernel.exceptions import NotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Item, Location
from stock_kernel.models.movements import Delivery, DeliveryLine
from stock_kernel.models.ncr import NCR
from stock_kernel.models.period import Period, PeriodLocation
from stock_kernel.services.outbox_service import NotificationOutbox
from stock_kernel.services.sequence_service import SequenceService
from stock_services._types import OpenNCRWarning

logger = get_logger("services.ncr")


def ncr_to_dto(ncr: NCR) -> NCRInfo:
    return NCRInfo(
        id=ncr.id,
        ncr_no=ncr.ncr_no,
        location_id=ncr.location_id,
        type=NCRType(ncr.type),
        auto_generated=ncr.auto_generated,
        status=NCRStatus(ncr.status),
        value=Decimal(ncr.value),
        reason=ncr.reason,
        created_at=ncr.created_at,
        quantity=Decimal(ncr.quantity) if ncr.quantity is not None else None,
        item_id=ncr.item_id,
        delivery_id=ncr.delivery_id,
        delivery_line_id=ncr.delivery_line_id,
        resolution_type=ncr.resolution_type,
        financial_impact=(
            FinancialImpact(ncr.financial_impact) if ncr.financial_impact is not None else None
        ),
        resolution_notes=ncr.resolution_notes,
        resolved_at=ncr.resolved_at,
    )


def period_window(period: Period) -> tuple[datetime, datetime]:
    """[start 00:00 UTC, day after end 00:00 UTC) of a period."""
    start = datetime.combine(period.start_date, time.min, tzinfo=UTC)
    end = datetime.combine(period.end_date + timedelta(days=1), time.min, tzinfo=UTC)
    return start, end


class NCRService:
    """
    Non-Conformance Report service.

    Contract:
        Receives SequenceService and NotificationOutbox via constructor
        injection.  Flush-only; the caller owns the transaction.
    """

    def __init__(
        self,
        session: Session,
        sequence_service: SequenceService,
        outbox: NotificationOutbox,
        clock: Clock | None = None,
        config: StockConfig | None = None,
    ) -> None:
        self._session = session
        self._sequence = sequence_service
        self._outbox = outbox
        self._clock = clock or SystemClock()
        self._config = config or StockConfig.with_defaults()

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, ncr_id: UUID, for_update: bool = False) -> NCR:
        stmt = select(NCR).where(NCR.id == ncr_id)
        if for_update:
            stmt = stmt.with_for_update()
        ncr = self._session.execute(stmt).scalar_one_or_none()
        if ncr is None:
            raise NotFoundError("NCR", ncr_id)
        return ncr

    def get_ncr(self, ncr_id: UUID) -> NCRInfo:
        return ncr_to_dto(self._get(ncr_id))

    def list_for_delivery(self, delivery_id: UUID) -> list[NCRInfo]:
        rows = self._session.execute(
            select(NCR).where(NCR.delivery_id == delivery_id).order_by(NCR.ncr_no)
        ).scalars()
        return [ncr_to_dto(n) for n in rows]

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def _next_ncr_no(self) -> str:
        return self._sequence.next_document_number(
            self._config.ncr_prefix, self._clock.now().year
        )

    def _insert(self, ncr: NCR, actor_id: UUID, payload_extra: dict[str, Any]) -> NCR:
        self._session.add(ncr)
        self._session.flush()

        logger.info(
            "ncr_created",
            extra={
                "ncr_id": str(ncr.id),
                "ncr_no": ncr.ncr_no,
                "ncr_type": NCRType(ncr.type).value,
                "auto_generated": ncr.auto_generated,
                "location_id": str(ncr.location_id),
                "value": str(ncr.value),
            },
        )

        if self._config.notifications_enabled:
            payload = {
                "ncr_no": ncr.ncr_no,
                "type": NCRType(ncr.type).value,
                "value": str(ncr.value),
                "location_id": str(ncr.location_id),
                "auto_generated": ncr.auto_generated,
                "item_id": str(ncr.item_id) if ncr.item_id else None,
                "delivery_id": str(ncr.delivery_id) if ncr.delivery_id else None,
            }
            payload.update(payload_extra)
            self._outbox.record(NotificationEventType.NCR_CREATED, ncr.id, payload, actor_id)
        return ncr

    def create_manual_ncr(
        self,
        location_id: UUID,
        reason: str,
        value: Numeric,
        actor_id: UUID,
        item_id: UUID | None = None,
        quantity: Numeric | None = None,
        delivery_id: UUID | None = None,
        delivery_line_id: UUID | None = None,
    ) -> NCRInfo:
        """
        Raise an NCR by hand (quality issue, damaged goods ...).

        Without a delivery link, the NCR belongs to the period whose date
        range contains its creation time.  A delivery_line_id must name a
        line of the given delivery.
        """
        if not reason or not reason.strip():
            raise ValidationError("reason", "is required")
        amount = to_decimal(value, "value")
        if amount < ZERO:
            raise ValidationError("value", "cannot be negative")
        qty = to_decimal(quantity, "quantity") if quantity is not None else None

        location = self._session.get(Location, location_id)
        if location is None:
            raise NotFoundError("Location", location_id)
        item = None
        if item_id is not None:
            item = self._session.get(Item, item_id)
            if item is None:
                raise NotFoundError("Item", item_id)
        delivery = None
        if delivery_id is not None:
            delivery = self._session.get(Delivery, delivery_id)
            if delivery is None:
                raise NotFoundError("Delivery", delivery_id)
        if delivery_line_id is not None:
            if delivery is None:
                raise ValidationError("delivery_line_id", "requires delivery_id")
            line = self._session.get(DeliveryLine, delivery_line_id)
            if line is None:
                raise NotFoundError("DeliveryLine", delivery_line_id)
            if line.delivery_id != delivery.id:
                raise ValidationError(
                    "delivery_line_id",
                    f"line {delivery_line_id} is not part of delivery {delivery.delivery_no}",
                )

        ncr = NCR(
            ncr_no=self._next_ncr_no(),
            location_id=location_id,
            type=NCRType.MANUAL,
            auto_generated=False,
            delivery_id=delivery_id,
            delivery_line_id=delivery_line_id,
            item_id=item_id,
            reason=reason.strip(),
            quantity=qty,
            value=round_money(amount),
            status=NCRStatus.OPEN,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._insert(
            ncr,
            actor_id,
            {
                "location_name": location.name,
                "item_name": item.name if item else None,
                "delivery_no": delivery.delivery_no if delivery else None,
            },
        )
        return ncr_to_dto(ncr)

    def create_price_variance_ncr(
        self,
        location_id: UUID,
        delivery_id: UUID,
        delivery_line_id: UUID,
        item: Item,
        quantity: Decimal,
        variance: PriceVarianceResult,
        actor_id: UUID,
        delivery_no: str | None = None,
    ) -> NCRInfo:
        """Auto NCR for a delivery line whose price variance exceeds tolerance."""
        ncr = NCR(
            ncr_no=self._next_ncr_no(),
            location_id=location_id,
            type=NCRType.PRICE_VARIANCE,
            auto_generated=True,
            delivery_id=delivery_id,
            delivery_line_id=delivery_line_id,
            item_id=item.id,
            reason=build_price_variance_reason(
                item.name, item.code, quantity, variance, self._config.currency
            ),
            quantity=quantity,
            value=abs(variance.variance_amount),
            status=NCRStatus.OPEN,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self._insert(
            ncr,
            actor_id,
            {
                "item_name": item.name,
                "item_code": item.code,
                "delivery_no": delivery_no,
                "expected_price": str(variance.expected_price),
                "actual_price": str(variance.actual_price),
                "variance_percent": str(variance.variance_percent),
            },
        )
        return ncr_to_dto(ncr)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def update_status(
        self,
        ncr_id: UUID,
        status: NCRStatus | str,
        actor_id: UUID,
        resolution_type: str | None = None,
        financial_impact: FinancialImpact | str | None = None,
        resolution_notes: str | None = None,
    ) -> NCRInfo:
        """
        Move an NCR to ``status``.

        Raises:
            NCRAlreadyResolvedError: the NCR is RESOLVED.
            ResolutionFieldsError: RESOLVED without both resolution fields,
                or resolution fields on any other status.
        """
        ncr = self._get(ncr_id, for_update=True)
        previous = NCRStatus(ncr.status)
        transition = validate_ncr_transition(
            ncr.ncr_no, previous, status, resolution_type, financial_impact
        )

        ncr.status = transition.target
        ncr.resolution_type = transition.resolution_type
        ncr.financial_impact = transition.financial_impact
        if resolution_notes is not None:
            ncr.resolution_notes = resolution_notes
        entering_resolution = transition.target in RESOLVING_STATUSES
        if entering_resolution and ncr.resolved_at is None:
            ncr.resolved_at = self._clock.now()
        ncr.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "ncr_status_changed",
            extra={
                "ncr_id": str(ncr.id),
                "ncr_no": ncr.ncr_no,
                "from_status": previous.value,
                "to_status": transition.target.value,
                "financial_impact": (
                    transition.financial_impact.value if transition.financial_impact else None
                ),
            },
        )

        if entering_resolution and self._config.notifications_enabled:
            self._outbox.record(
                NotificationEventType.NCR_RESOLVED,
                ncr.id,
                {
                    "ncr_no": ncr.ncr_no,
                    "type": NCRType(ncr.type).value,
                    "status": transition.target.value,
                    "value": str(ncr.value),
                    "location_id": str(ncr.location_id),
                    "financial_impact": (
                        transition.financial_impact.value
                        if transition.financial_impact
                        else None
                    ),
                },
                actor_id,
            )
        return ncr_to_dto(ncr)

    # ------------------------------------------------------------------
    # Period scope
    # ------------------------------------------------------------------

    def _scoped_rows(
        self,
        period: Period,
        location_id: UUID,
        status: NCRStatus | None = None,
    ) -> list[tuple[NCR, str | None, str | None]]:
        """NCRs of a location associated with ``period``, with delivery_no and item name."""
        start, end = period_window(period)
        stmt = (
            select(NCR, Delivery.delivery_no, Item.name)
            .outerjoin(Delivery, Delivery.id == NCR.delivery_id)
            .outerjoin(Item, Item.id == NCR.item_id)
            .where(
                NCR.location_id == location_id,
                or_(
                    Delivery.period_id == period.id,
                    and_(
                        NCR.delivery_id.is_(None),
                        NCR.created_at >= start,
                        NCR.created_at < end,
                    ),
                ),
            )
            .order_by(NCR.ncr_no)
        )
        if status is not None:
            stmt = stmt.where(NCR.status == status)
        return [tuple(row) for row in self._session.execute(stmt).all()]

    def _period(self, period_id: UUID) -> Period:
        period = self._session.get(Period, period_id)
        if period is None:
            raise NotFoundError("Period", period_id)
        return period

    def list_for_period(self, period_id: UUID, location_id: UUID) -> list[NCRInfo]:
        period = self._period(period_id)
        return [ncr_to_dto(ncr) for ncr, _, _ in self._scoped_rows(period, location_id)]

    def get_impact_summary(self, period_id: UUID, location_id: UUID) -> NCRImpactSummary:
        """Credited / losses / pending / open buckets of one (period, location)."""
        period = self._period(period_id)
        summaries = [
            NCRSummary(
                id=ncr.id,
                ncr_no=ncr.ncr_no,
                value=Decimal(ncr.value),
                status=NCRStatus(ncr.status),
                financial_impact=(
                    FinancialImpact(ncr.financial_impact)
                    if ncr.financial_impact is not None
                    else None
                ),
                delivery_no=delivery_no,
                item_name=item_name,
                reason=ncr.reason,
            )
            for ncr, delivery_no, item_name in self._scoped_rows(period, location_id)
        ]
        return aggregate_ncr_impact(summaries)

    def open_ncr_warnings(self, period_id: UUID) -> tuple[OpenNCRWarning, ...]:
        """Per location of the period: count and value of NCRs still OPEN."""
        period = self._period(period_id)
        rows = self._session.execute(
            select(PeriodLocation.location_id, Location.name)
            .join(Location, Location.id == PeriodLocation.location_id)
            .where(PeriodLocation.period_id == period_id)
            .order_by(Location.code)
        ).all()

        warnings = []
        for location_id, location_name in rows:
            open_rows = self._scoped_rows(period, location_id, NCRStatus.OPEN)
            if not open_rows:
                continue
            total = sum((Decimal(ncr.value) for ncr, _, _ in open_rows), ZERO)
            warnings.append(
                OpenNCRWarning(
                    location_id=location_id,
                    count=len(open_rows),
                    total_value=round_money(total),
                    location_name=location_name,
                )
            )
        return tuple(warnings)
