"""
PeriodService -- period lifecycle up to OPEN, prices, and location readiness.

Responsibility:
    Creates periods (DRAFT), attaches locations, maintains period-locked
    item prices, opens a period (DRAFT -> OPEN), toggles per-location
    readiness, and answers "may this location post a transaction now?".

Architecture position:
    Kernel > Services -- imperative shell.  Called by the posting services
    (DeliveryService, IssueService, TransferService) before any stock
    change, and by PeriodCloseOrchestrator for the close / roll-forward
    half of the lifecycle.

Invariants enforced:
    - Date ranges of periods never overlap.
    - At most one OPEN period: application pre-check plus the
      uq_period_single_open partial unique index; an IntegrityError on
      flush is reported as PeriodAlreadyOpenError.
    - DRAFT -> OPEN requires at least one period location and locks every
      ItemPrice row of the period.
    - Prices are editable only while DRAFT.
    - Transactions require the OPEN period and an OPEN period location.
    - Flush-only: never commits.

Failure modes:
    - NotFoundError, PeriodOverlapError, PeriodAlreadyOpenError,
      NoLocationsError, PriceLockedError, PeriodNotOpenError,
      InvalidStateTransitionError, ValidationError.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.dtos import (
    PeriodInfo,
    PeriodLocationInfo,
    PeriodLocationStatus,
    PeriodStatus,
)
from stock_kernel.domain.values import ZERO, Numeric, to_decimal
from stock_kernel.exceptions import (
    InvalidStateTransitionError,
    NoLocationsError,
    NotFoundError,
    PeriodAlreadyOpenError,
    PeriodNotOpenError,
    PeriodOverlapError,
    PriceLockedError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Location
from stock_kernel.models.period import ItemPrice, Period, PeriodLocation
from stock_kernel.models.reconciliation import Reconciliation
from stock_kernel.services.base import BaseService

logger = get_logger("services.period")


def period_to_dto(period: Period) -> PeriodInfo:
    return PeriodInfo(
        id=period.id,
        name=period.name,
        start_date=period.start_date,
        end_date=period.end_date,
        status=PeriodStatus(period.status),
        approval_id=period.approval_id,
        closed_at=period.closed_at,
    )


def period_location_to_dto(row: PeriodLocation) -> PeriodLocationInfo:
    return PeriodLocationInfo(
        period_id=row.period_id,
        location_id=row.location_id,
        status=PeriodLocationStatus(row.status),
        opening_value=row.opening_value,
        closing_value=row.closing_value,
        ready_at=row.ready_at,
    )


class PeriodService(BaseService[Period]):
    """
    Service for the DRAFT/OPEN half of the period lifecycle.

    Contract:
        Public methods return frozen DTOs, never ORM entities.  Mutations
        flush within the caller's transaction.

    Non-goals:
        - Close request, approval resolution and roll forward live in
          stock_services.period_close_orchestrator.
    """

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _get(self, period_id: UUID) -> Period:
        period = self.session.get(Period, period_id)
        if period is None:
            raise NotFoundError("Period", period_id)
        return period

    def get_for_update(self, period_id: UUID) -> Period:
        """Period row under SELECT ... FOR UPDATE (serializes transitions)."""
        period = self.session.execute(
            select(Period)
            .where(Period.id == period_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if period is None:
            raise NotFoundError("Period", period_id)
        return period

    def get_period(self, period_id: UUID) -> PeriodInfo:
        return period_to_dto(self._get(period_id))

    def _open_period_row(self) -> Period | None:
        return self.session.execute(
            select(Period).where(Period.status == PeriodStatus.OPEN)
        ).scalar_one_or_none()

    def get_open_period(self) -> PeriodInfo | None:
        period = self._open_period_row()
        return period_to_dto(period) if period is not None else None

    def period_locations(self, period_id: UUID, for_update: bool = False) -> list[PeriodLocation]:
        stmt = (
            select(PeriodLocation)
            .where(PeriodLocation.period_id == period_id)
            .order_by(PeriodLocation.location_id)
        )
        if for_update:
            stmt = stmt.with_for_update()
        return list(self.session.execute(stmt).scalars())

    def list_period_locations(self, period_id: UUID) -> list[PeriodLocationInfo]:
        self._get(period_id)
        return [period_location_to_dto(pl) for pl in self.period_locations(period_id)]

    def _period_location(self, period_id: UUID, location_id: UUID) -> PeriodLocation:
        row = self.session.execute(
            select(PeriodLocation)
            .where(
                PeriodLocation.period_id == period_id,
                PeriodLocation.location_id == location_id,
            )
            .with_for_update()
        ).scalar_one_or_none()
        if row is None:
            raise NotFoundError("PeriodLocation", f"{period_id}/{location_id}")
        return row

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    def create_period(
        self,
        name: str,
        start_date: date,
        end_date: date,
        actor_id: UUID,
        location_ids: list[UUID] | None = None,
    ) -> PeriodInfo:
        """
        Create a DRAFT period, optionally attaching locations.

        Raises:
            ValidationError: empty name or start_date after end_date.
            PeriodOverlapError: date range overlaps an existing period.
        """
        if not name or not name.strip():
            raise ValidationError("name", "is required")
        if start_date > end_date:
            raise ValidationError(
                "end_date", f"start_date ({start_date}) cannot be after end_date ({end_date})"
            )

        self.validate_no_overlap(start_date, end_date)

        period = Period(
            name=name.strip(),
            start_date=start_date,
            end_date=end_date,
            status=PeriodStatus.DRAFT,
            created_by_id=actor_id,
        )
        self.session.add(period)
        self.session.flush()

        for location_id in location_ids or []:
            self._attach_location(period, location_id, actor_id)
        self.session.flush()

        logger.info(
            "period_created",
            extra={
                "period_id": str(period.id),
                "period_name": period.name,
                "start_date": str(start_date),
                "end_date": str(end_date),
                "location_count": len(location_ids or []),
            },
        )
        return period_to_dto(period)

    def validate_no_overlap(self, start_date: date, end_date: date) -> None:
        """
        Two inclusive ranges overlap iff start1 <= end2 AND start2 <= end1.

        Raises:
            PeriodOverlapError: naming the first overlapping period.
        """
        overlapping = self.session.execute(
            select(Period)
            .where(
                Period.start_date <= end_date,
                Period.end_date >= start_date,
            )
            .order_by(Period.start_date)
        ).scalars().first()

        if overlapping is not None:
            raise PeriodOverlapError(
                start_date=str(start_date),
                end_date=str(end_date),
                existing_period_id=overlapping.id,
                existing_period_name=overlapping.name,
            )

    def _attach_location(
        self,
        period: Period,
        location_id: UUID,
        actor_id: UUID,
        opening_value: Decimal | None = None,
    ) -> PeriodLocation:
        if self.session.get(Location, location_id) is None:
            raise NotFoundError("Location", location_id)
        row = PeriodLocation(
            period_id=period.id,
            location_id=location_id,
            status=PeriodLocationStatus.OPEN,
            opening_value=opening_value,
            created_by_id=actor_id,
        )
        self.session.add(row)
        return row

    def add_location(
        self,
        period_id: UUID,
        location_id: UUID,
        actor_id: UUID,
        opening_value: Numeric | None = None,
    ) -> PeriodLocationInfo:
        """Attach a location to a DRAFT or OPEN period."""
        period = self.get_for_update(period_id)
        if period.status not in (PeriodStatus.DRAFT, PeriodStatus.OPEN):
            raise InvalidStateTransitionError("Period", period_id, period.status, "add locations")
        value = to_decimal(opening_value, "opening_value") if opening_value is not None else None
        row = self._attach_location(period, location_id, actor_id, value)
        self.session.flush()
        logger.info(
            "period_location_added",
            extra={"period_id": str(period_id), "location_id": str(location_id)},
        )
        return period_location_to_dto(row)

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    def set_item_price(
        self,
        period_id: UUID,
        item_id: UUID,
        price: Numeric,
        actor_id: UUID,
        currency: str = "SAR",
    ) -> Decimal:
        """
        Create or replace the period price of an item.

        Raises:
            PriceLockedError: the period is not DRAFT.
            ValidationError: negative or non-finite price.
        """
        period = self.get_for_update(period_id)
        if period.status != PeriodStatus.DRAFT:
            raise PriceLockedError(period_id, period.status)

        value = to_decimal(price, "price")
        if value < ZERO:
            raise ValidationError("price", "cannot be negative")

        row = self.session.execute(
            select(ItemPrice).where(
                ItemPrice.period_id == period_id,
                ItemPrice.item_id == item_id,
            )
        ).scalar_one_or_none()
        if row is None:
            row = ItemPrice(
                period_id=period_id,
                item_id=item_id,
                price=value,
                currency=currency,
                created_by_id=actor_id,
            )
            self.session.add(row)
        else:
            row.price = value
            row.currency = currency
            row.updated_by_id = actor_id
        self.session.flush()

        logger.debug(
            "item_price_set",
            extra={"period_id": str(period_id), "item_id": str(item_id), "price": str(value)},
        )
        return value

    def get_item_prices(self, period_id: UUID, item_ids: list[UUID] | None = None) -> dict[UUID, Decimal]:
        stmt = select(ItemPrice).where(ItemPrice.period_id == period_id)
        if item_ids is not None:
            stmt = stmt.where(ItemPrice.item_id.in_(list(item_ids)))
        return {row.item_id: Decimal(row.price) for row in self.session.execute(stmt).scalars()}

    # ------------------------------------------------------------------
    # DRAFT -> OPEN
    # ------------------------------------------------------------------

    def open_period(self, period_id: UUID, actor_id: UUID) -> PeriodInfo:
        """
        DRAFT -> OPEN.  Locks every price of the period.

        Raises:
            InvalidStateTransitionError: period is not DRAFT.
            PeriodAlreadyOpenError: another period is OPEN.
            NoLocationsError: the period has no locations.
        """
        period = self.get_for_update(period_id)
        if period.status != PeriodStatus.DRAFT:
            raise InvalidStateTransitionError("Period", period_id, period.status, "open")

        current_open = self._open_period_row()
        if current_open is not None:
            logger.warning(
                "period_open_rejected_another_open",
                extra={"period_id": str(period_id), "open_period_id": str(current_open.id)},
            )
            raise PeriodAlreadyOpenError(period_id, current_open.id)

        if not self.period_locations(period_id):
            raise NoLocationsError(period_id, period.status, "open")

        now = self._clock.now()
        prices = self.session.execute(
            select(ItemPrice).where(ItemPrice.period_id == period_id)
        ).scalars().all()

        savepoint = self.session.begin_nested()
        try:
            for price in prices:
                price.locked = True
                price.locked_at = now
            period.status = PeriodStatus.OPEN
            period.opened_at = now
            period.updated_by_id = actor_id
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "concurrent_period_open_conflict",
                extra={"period_id": str(period_id)},
            )
            raise PeriodAlreadyOpenError(period_id, None) from None

        logger.info(
            "period_opened",
            extra={
                "period_id": str(period_id),
                "prices_locked": len(prices),
            },
        )
        return period_to_dto(period)

    # ------------------------------------------------------------------
    # Location readiness
    # ------------------------------------------------------------------

    def mark_location_ready(self, period_id: UUID, location_id: UUID, actor_id: UUID) -> PeriodLocationInfo:
        """
        OPEN -> READY for one location.  Requires a reconciliation record.

        Raises:
            InvalidStateTransitionError: period not OPEN, location CLOSED,
                or no reconciliation saved yet.
        """
        period = self._get(period_id)
        if period.status != PeriodStatus.OPEN:
            raise InvalidStateTransitionError(
                "Period", period_id, period.status, "mark locations ready"
            )
        row = self._period_location(period_id, location_id)
        if row.status == PeriodLocationStatus.CLOSED:
            raise InvalidStateTransitionError(
                "PeriodLocation", location_id, row.status, "mark ready"
            )

        has_reconciliation = self.session.execute(
            select(Reconciliation.id).where(
                Reconciliation.period_id == period_id,
                Reconciliation.location_id == location_id,
            )
        ).first()
        if has_reconciliation is None:
            raise InvalidStateTransitionError(
                "PeriodLocation",
                location_id,
                row.status,
                "mark ready",
                message=(
                    f"Location {location_id} has no reconciliation for period "
                    f"{period_id}; save the reconciliation first"
                ),
            )

        row.status = PeriodLocationStatus.READY
        row.ready_at = self._clock.now()
        row.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_location_ready",
            extra={"period_id": str(period_id), "location_id": str(location_id)},
        )
        return period_location_to_dto(row)

    def mark_location_unready(self, period_id: UUID, location_id: UUID, actor_id: UUID) -> PeriodLocationInfo:
        """READY -> OPEN for one location."""
        row = self._period_location(period_id, location_id)
        if row.status != PeriodLocationStatus.READY:
            raise InvalidStateTransitionError(
                "PeriodLocation", location_id, row.status, "revert to OPEN"
            )
        row.status = PeriodLocationStatus.OPEN
        row.ready_at = None
        row.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "period_location_unready",
            extra={"period_id": str(period_id), "location_id": str(location_id)},
        )
        return period_location_to_dto(row)

    # ------------------------------------------------------------------
    # Posting gate
    # ------------------------------------------------------------------

    def require_postable(self, location_id: UUID) -> Period:
        """
        The OPEN period, provided the location is attached and still OPEN in it.

        Raises:
            PeriodNotOpenError: no OPEN period, location not attached, or
                location already READY/CLOSED.
        """
        period = self._open_period_row()
        if period is None:
            raise PeriodNotOpenError("none", "NO_OPEN_PERIOD", location_id)

        row = self.session.execute(
            select(PeriodLocation).where(
                PeriodLocation.period_id == period.id,
                PeriodLocation.location_id == location_id,
            )
        ).scalar_one_or_none()
        if row is None or row.status != PeriodLocationStatus.OPEN:
            status = row.status if row is not None else "NOT_IN_PERIOD"
            raise PeriodNotOpenError(period.id, status, location_id)
        return period
