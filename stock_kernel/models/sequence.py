"""
Module: stock_kernel.models.sequence
Responsibility: Named counter rows backing SequenceService.

One row per partition (e.g. "NCR-2025").  Row-level locking on this row is
the only source of the next document number; max-plus-one scans are not
used.
"""

from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base


class SequenceCounter(Base):
    """Sequence counter table."""

    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)

    current_value: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
