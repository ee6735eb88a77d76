"""
Module: stock_kernel.models.reconciliation
Responsibility: One reconciliation record per (period, location).
Architecture position: Kernel > Models.

Invariants enforced:
    - Unique (period_id, location_id).
    - ncr_credits and ncr_losses are written only by ReconciliationService
      from the NCR impact aggregator; they are never user-editable.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString

_ZERO = Decimal("0")


class Reconciliation(TrackedBase):
    """Stock movement totals and adjustments for one period/location."""

    __tablename__ = "reconciliations"

    __table_args__ = (
        UniqueConstraint("period_id", "location_id", name="uq_reconciliation_period_location"),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("periods.id"), nullable=False
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )

    # Stock movement values
    opening_stock: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    receipts: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    transfers_in: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    transfers_out: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    issues: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    closing_stock: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)

    # Manual adjustments
    back_charges: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    credits: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    condemnations: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    adjustments: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)

    # Auto-calculated from NCR aggregation
    ncr_credits: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
    ncr_losses: Mapped[Decimal] = mapped_column(default=_ZERO, nullable=False)
