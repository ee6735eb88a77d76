"""
Module: stock_kernel.models.approval
Responsibility: ORM persistence for approval requests (period close,
    transfers).
Architecture position: Kernel > Models.

Invariants enforced:
    - At most one PENDING approval per (entity_type, entity_id): partial
      unique index uq_approval_single_pending.  The service pre-check is a
      fast path; the index is what makes it race-free.
    - status in {PENDING, APPROVED, REJECTED} (check constraint).
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, Index, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.dtos import ApprovalEntityType, ApprovalStatus


class Approval(TrackedBase):
    """A request for an approver to sign off on an entity transition."""

    __tablename__ = "approvals"

    __table_args__ = (
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approval_status",
        ),
        Index(
            "uq_approval_single_pending",
            "entity_type",
            "entity_id",
            unique=True,
            postgresql_where=text("status = 'PENDING'"),
            sqlite_where=text("status = 'PENDING'"),
        ),
        Index("idx_approval_entity", "entity_type", "entity_id"),
    )

    entity_type: Mapped[ApprovalEntityType] = mapped_column(String(30), nullable=False)
    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    status: Mapped[ApprovalStatus] = mapped_column(
        String(20),
        default=ApprovalStatus.PENDING,
        nullable=False,
    )

    requested_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    requested_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    reviewed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    reviewed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    comments: Mapped[str | None] = mapped_column(Text, nullable=True)
