"""
Declarative base for the stock kernel's ORM models.

Column conventions shared by every table:

* primary keys are uuid4 values stored as 36-character strings, so the
  same schema runs on SQLite and PostgreSQL;
* ``Decimal`` attributes map to ``Numeric(38, 9)``.  Quantities, prices,
  WAC and money are never floats;
* ``datetime`` attributes are timezone-aware;
* unnamed indexes, unique and foreign key constraints get deterministic
  names (named constraints keep theirs).

Nothing here imports models, services or outer layers.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import BigInteger, DateTime, MetaData, Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

NAMING_CONVENTION = {
    "ix": "ix_%(table_name)s_%(column_0_N_name)s",
    "uq": "uq_%(table_name)s_%(column_0_N_name)s",
    "fk": "fk_%(table_name)s_%(column_0_name)s_%(referred_table_name)s",
    "pk": "pk_%(table_name)s",
}


class UUIDString(TypeDecorator):
    """uuid.UUID in Python, CHAR-like string in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        if value is None or isinstance(value, UUID):
            return value
        return UUID(value)


class Base(DeclarativeBase):
    """Every table gets a uuid4 ``id`` and the shared type map."""

    metadata = MetaData(naming_convention=NAMING_CONVENTION)

    type_annotation_map: ClassVar[dict] = {
        Decimal: Numeric(38, 9),
        datetime: DateTime(timezone=True),
        UUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """
    Adds who/when columns to a table.

    created_at defaults to the database clock; services that need a
    clock-controlled creation time (NCRs, outbox events) set it
    explicitly.  updated_at moves on every UPDATE.  created_by_id is
    required; updated_by_id is set by the service that changes the row.
    """

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False
    )
    created_by_id: Mapped[UUID] = mapped_column(nullable=False)
    updated_by_id: Mapped[UUID | None] = mapped_column(nullable=True)
