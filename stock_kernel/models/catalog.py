"""
Module: stock_kernel.models.catalog
Responsibility: ORM persistence for the item master and stock locations.
Architecture position: Kernel > Models.  May import from db/ and domain/ only.

Invariants enforced:
    - Item.code and Location.code are unique.
    - Items are never deleted, only deactivated (is_active = False);
      inactive items cannot be delivered and their prices are not rolled
      forward.
"""

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase
from stock_kernel.domain.dtos import LocationType


class Item(TrackedBase):
    """Stock item.  Quantities are unit-less decimals in the item's unit."""

    __tablename__ = "items"

    __table_args__ = (
        UniqueConstraint("code", name="uq_item_code"),
        Index("idx_item_active", "is_active"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Unit of measure (e.g. "KG", "EA", "LTR")
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Item {self.code}: {self.name}>"


class Location(TrackedBase):
    """Scoping unit for stock, transactions and reconciliation."""

    __tablename__ = "locations"

    __table_args__ = (UniqueConstraint("code", name="uq_location_code"),)

    code: Mapped[str] = mapped_column(String(20), nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)

    location_type: Mapped[LocationType] = mapped_column(
        String(20),
        default=LocationType.KITCHEN,
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Location {self.code}: {self.name}>"
