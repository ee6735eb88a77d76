"""
Module: stock_kernel.models.period
Responsibility: ORM persistence for the period lifecycle -- the Period
    itself, its per-location readiness rows, and the period-locked item
    prices.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - At most one Period is OPEN system-wide.  Enforced by a partial
      unique index (uq_period_single_open), not only by the service
      pre-check, so two concurrent open requests cannot both commit.
    - One PeriodLocation per (period, location); one ItemPrice per
      (item, period).
    - ItemPrice rows are editable only while the period is DRAFT
      (enforced by PeriodService; ``locked`` records the lock).

Failure modes:
    - IntegrityError on a second OPEN period or duplicate join rows.
"""

from datetime import date, datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    ForeignKey,
    Index,
    String,
    UniqueConstraint,
    text,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.dtos import PeriodLocationStatus, PeriodStatus


class Period(TrackedBase):
    """
    Accounting window during which prices are locked and transactions
    accumulate toward a reconciliation.

    Lifecycle: DRAFT -> OPEN -> PENDING_CLOSE -> CLOSED.
    """

    __tablename__ = "periods"

    __table_args__ = (
        Index("idx_period_dates", "start_date", "end_date"),
        Index("idx_period_status", "status"),
        Index(
            "uq_period_single_open",
            "status",
            unique=True,
            postgresql_where=text("status = 'OPEN'"),
            sqlite_where=text("status = 'OPEN'"),
        ),
    )

    name: Mapped[str] = mapped_column(String(100), nullable=False)

    # Inclusive boundaries
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)

    status: Mapped[PeriodStatus] = mapped_column(
        String(20),
        default=PeriodStatus.DRAFT,
        nullable=False,
    )

    # Close approval currently governing PENDING_CLOSE (or the approved one)
    approval_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    def __repr__(self) -> str:
        return f"<Period {self.name}: {self.status}>"

    @property
    def is_open(self) -> bool:
        return self.status == PeriodStatus.OPEN

    @property
    def is_closed(self) -> bool:
        return self.status == PeriodStatus.CLOSED

    def contains_date(self, check_date: date) -> bool:
        return self.start_date <= check_date <= self.end_date


class PeriodLocation(TrackedBase):
    """Readiness of one location within one period, plus value snapshots."""

    __tablename__ = "period_locations"

    __table_args__ = (
        UniqueConstraint("period_id", "location_id", name="uq_period_location"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("periods.id"), nullable=False
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )

    status: Mapped[PeriodLocationStatus] = mapped_column(
        String(20),
        default=PeriodLocationStatus.OPEN,
        nullable=False,
    )

    # Carried from the previous period's closing_value on roll forward
    opening_value: Mapped[Decimal | None] = mapped_column(nullable=True)
    closing_value: Mapped[Decimal | None] = mapped_column(nullable=True)

    ready_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)

    # Stock and reconciliation snapshot captured at close
    snapshot_data: Mapped[dict[str, Any] | None] = mapped_column(JSON, nullable=True)


class ItemPrice(TrackedBase):
    """Period-locked unit price for an item."""

    __tablename__ = "item_prices"

    __table_args__ = (
        UniqueConstraint("item_id", "period_id", name="uq_item_price_period"),
    )

    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )
    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("periods.id"), nullable=False
    )

    price: Mapped[Decimal] = mapped_column(nullable=False)
    currency: Mapped[str] = mapped_column(String(3), default="SAR", nullable=False)

    locked: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    locked_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
