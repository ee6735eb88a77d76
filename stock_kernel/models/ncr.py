"""
Module: stock_kernel.models.ncr
Responsibility: ORM persistence for Non-Conformance Reports.
Architecture position: Kernel > Models.

Invariants enforced:
    - value >= 0 (check constraint); the sign of a price variance is kept
      in the reason text, never in value.
    - resolution_type and financial_impact are both set when status is
      RESOLVED and both NULL otherwise (check constraint
      ck_ncr_resolution_fields).
    - ncr_no is unique, NCR-YYYY-NNN, allocated from a per-year sequence.

Audit relevance:
    An NCR inherits its period from the linked delivery; a manual NCR with
    no delivery belongs to the period whose date range contains its
    created_at.  That association is computed at query time, never stored.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.dtos import FinancialImpact, NCRStatus, NCRType


class NCR(TrackedBase):
    """Non-Conformance Report."""

    __tablename__ = "ncrs"

    __table_args__ = (
        UniqueConstraint("ncr_no", name="uq_ncr_no"),
        CheckConstraint("value >= 0", name="ck_ncr_value_non_negative"),
        CheckConstraint(
            "(status = 'RESOLVED' AND resolution_type IS NOT NULL "
            "AND financial_impact IS NOT NULL) OR "
            "(status <> 'RESOLVED' AND resolution_type IS NULL "
            "AND financial_impact IS NULL)",
            name="ck_ncr_resolution_fields",
        ),
        Index("idx_ncr_location_status", "location_id", "status"),
        Index("idx_ncr_delivery", "delivery_id"),
    )

    ncr_no: Mapped[str] = mapped_column(String(20), nullable=False)
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )

    type: Mapped[NCRType] = mapped_column(String(20), nullable=False)
    auto_generated: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    delivery_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("deliveries.id"), nullable=True
    )
    delivery_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("delivery_lines.id"), nullable=True
    )
    item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=True
    )

    reason: Mapped[str] = mapped_column(Text, nullable=False)
    quantity: Mapped[Decimal | None] = mapped_column(nullable=True)
    value: Mapped[Decimal] = mapped_column(nullable=False)

    status: Mapped[NCRStatus] = mapped_column(
        String(20),
        default=NCRStatus.OPEN,
        nullable=False,
    )

    resolution_type: Mapped[str | None] = mapped_column(String(200), nullable=True)
    financial_impact: Mapped[FinancialImpact | None] = mapped_column(
        String(10), nullable=True
    )
    resolution_notes: Mapped[str | None] = mapped_column(Text, nullable=True)
    resolved_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    def __repr__(self) -> str:
        return f"<NCR {self.ncr_no}: {self.status}>"
