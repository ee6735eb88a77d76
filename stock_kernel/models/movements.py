"""
Module: stock_kernel.models.movements
Responsibility: ORM persistence for stock movements -- deliveries (receipts),
    issues (consumption) and transfers (inter-location moves) with their
    lines.
Architecture position: Kernel > Models.

Invariants enforced:
    - DeliveryLine keeps both unit_price (actual) and period_price (locked
      price at posting time) permanently, for audit and variance
      recomputation.
    - IssueLine.wac_at_issue and TransferLine.wac_at_transfer snapshot the
      WAC at posting/request time and are never recomputed.
    - Document numbers (delivery_no, issue_no, transfer_no) are unique.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Boolean, Date, DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.dtos import TransferStatus


class Delivery(TrackedBase):
    """Goods receipt at a location."""

    __tablename__ = "deliveries"

    __table_args__ = (
        UniqueConstraint("delivery_no", name="uq_delivery_no"),
        Index("idx_delivery_period_location", "period_id", "location_id"),
    )

    delivery_no: Mapped[str] = mapped_column(String(20), nullable=False)
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )
    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("periods.id"), nullable=False
    )

    delivery_date: Mapped[date] = mapped_column(Date, nullable=False)
    supplier_name: Mapped[str | None] = mapped_column(String(200), nullable=True)
    invoice_no: Mapped[str | None] = mapped_column(String(50), nullable=True)

    total_amount: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    has_variance: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    lines: Mapped[list["DeliveryLine"]] = relationship(
        back_populates="delivery",
        order_by="DeliveryLine.line_no",
    )


class DeliveryLine(TrackedBase):
    """One received item on a delivery."""

    __tablename__ = "delivery_lines"

    delivery_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("deliveries.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    unit_price: Mapped[Decimal] = mapped_column(nullable=False)
    period_price: Mapped[Decimal] = mapped_column(nullable=False)
    price_variance: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    line_value: Mapped[Decimal] = mapped_column(nullable=False)

    delivery: Mapped[Delivery] = relationship(back_populates="lines")


class Issue(TrackedBase):
    """Stock consumed out of a location."""

    __tablename__ = "issues"

    __table_args__ = (
        UniqueConstraint("issue_no", name="uq_issue_no"),
        Index("idx_issue_period_location", "period_id", "location_id"),
    )

    issue_no: Mapped[str] = mapped_column(String(20), nullable=False)
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )
    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("periods.id"), nullable=False
    )

    issue_date: Mapped[date] = mapped_column(Date, nullable=False)
    cost_centre: Mapped[str | None] = mapped_column(String(50), nullable=True)
    total_value: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    lines: Mapped[list["IssueLine"]] = relationship(
        back_populates="issue",
        order_by="IssueLine.line_no",
    )


class IssueLine(TrackedBase):
    __tablename__ = "issue_lines"

    issue_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("issues.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    wac_at_issue: Mapped[Decimal] = mapped_column(nullable=False)
    line_value: Mapped[Decimal] = mapped_column(nullable=False)

    issue: Mapped[Issue] = relationship(back_populates="lines")


class Transfer(TrackedBase):
    """
    Inter-location stock move.

    Requested as PENDING_APPROVAL; stock moves only when approved
    (COMPLETED).  REJECTED transfers never touch stock.
    """

    __tablename__ = "transfers"

    __table_args__ = (
        UniqueConstraint("transfer_no", name="uq_transfer_no"),
        Index("idx_transfer_period", "period_id"),
    )

    transfer_no: Mapped[str] = mapped_column(String(20), nullable=False)
    from_location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )
    to_location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )
    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("periods.id"), nullable=False
    )

    transfer_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[TransferStatus] = mapped_column(
        String(20),
        default=TransferStatus.PENDING_APPROVAL,
        nullable=False,
    )
    total_value: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    approved_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    approved_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    lines: Mapped[list["TransferLine"]] = relationship(
        back_populates="transfer",
        order_by="TransferLine.line_no",
    )


class TransferLine(TrackedBase):
    __tablename__ = "transfer_lines"

    transfer_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("transfers.id"), nullable=False
    )
    line_no: Mapped[int] = mapped_column(nullable=False)
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )

    quantity: Mapped[Decimal] = mapped_column(nullable=False)
    wac_at_transfer: Mapped[Decimal] = mapped_column(nullable=False)
    line_value: Mapped[Decimal] = mapped_column(nullable=False)

    transfer: Mapped[Transfer] = relationship(back_populates="lines")
