"""
Module: stock_kernel.models.outbox
Responsibility: Transactional outbox for outbound notifications.
Architecture position: Kernel > Models.

Rows are written in the same transaction as the domain change (NCR
creation / resolution), so a notification exists iff the change
committed.  Delivery happens afterwards and never touches the domain rows.
"""

from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, DateTime, Index, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString
from stock_kernel.domain.dtos import NotificationEventType, OutboxStatus


class OutboxEvent(TrackedBase):
    """A pending, delivered, or failed outbound notification."""

    __tablename__ = "outbox_events"

    __table_args__ = (Index("idx_outbox_status", "status"),)

    event_type: Mapped[NotificationEventType] = mapped_column(String(30), nullable=False)
    aggregate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    payload: Mapped[dict[str, Any]] = mapped_column(JSON, nullable=False)

    status: Mapped[OutboxStatus] = mapped_column(
        String(20),
        default=OutboxStatus.PENDING,
        nullable=False,
    )
    attempts: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)
    dispatched_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
