"""
Module: stock_kernel.models.pob
Responsibility: Daily persons-on-board counts per (period, location).

Mandays of a period/location are the sum of crew_count + extra_count
over its entries.

Invariants enforced:
    - One entry per (period, location, entry_date).
    - Counts are non-negative (checked by POBService).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class POBEntry(TrackedBase):
    """Headcount of one location on one day."""

    __tablename__ = "pob_entries"

    __table_args__ = (
        UniqueConstraint(
            "period_id", "location_id", "entry_date", name="uq_pob_period_location_date"
        ),
    )

    period_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("periods.id"), nullable=False
    )
    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )
    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    crew_count: Mapped[int] = mapped_column(default=0, nullable=False)
    extra_count: Mapped[int] = mapped_column(default=0, nullable=False)

    @property
    def total_count(self) -> int:
        return self.crew_count + self.extra_count
