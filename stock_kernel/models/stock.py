"""
Module: stock_kernel.models.stock
Responsibility: The Stock Ledger -- per (location, item) on-hand quantity
    and weighted average cost.
Architecture position: Kernel > Models.

Invariants enforced:
    - on_hand >= 0 and wac >= 0 (check constraints).
    - One row per (location, item).
    - Mutated only by StockLedgerService (delivery receipt, issue,
      transfer approval), always under a row lock.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class LocationStock(TrackedBase):
    """On-hand quantity and WAC of one item at one location."""

    __tablename__ = "location_stock"

    __table_args__ = (
        UniqueConstraint("location_id", "item_id", name="uq_location_stock"),
        CheckConstraint("on_hand >= 0", name="ck_location_stock_on_hand"),
        CheckConstraint("wac >= 0", name="ck_location_stock_wac"),
        Index("idx_location_stock_location", "location_id"),
    )

    location_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("locations.id"), nullable=False
    )
    item_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("items.id"), nullable=False
    )

    on_hand: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)
    wac: Mapped[Decimal] = mapped_column(default=Decimal("0"), nullable=False)

    def __repr__(self) -> str:
        return f"<LocationStock {self.location_id}/{self.item_id}: {self.on_hand} @ {self.wac}>"
