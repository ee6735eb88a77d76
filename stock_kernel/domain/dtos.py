"""
DTOs -- enums and immutable data transfer objects for the stock kernel.

Responsibility:
    Status vocabularies shared by ORM models, engines and services, plus the
    frozen DTOs that services return instead of ORM entities.

Architecture position:
    Kernel > Domain -- pure, zero I/O, no ORM imports.  Models import the
    enums from here so that there is one vocabulary per concept.
"""

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID


class PeriodStatus(str, Enum):
    """Period lifecycle: DRAFT -> OPEN -> PENDING_CLOSE -> CLOSED."""

    DRAFT = "DRAFT"
    OPEN = "OPEN"
    PENDING_CLOSE = "PENDING_CLOSE"
    CLOSED = "CLOSED"


class PeriodLocationStatus(str, Enum):
    """Per-location readiness within a period. CLOSED once the period closes."""

    OPEN = "OPEN"
    READY = "READY"
    CLOSED = "CLOSED"


class LocationType(str, Enum):
    KITCHEN = "KITCHEN"
    STORE = "STORE"
    CENTRAL = "CENTRAL"
    WAREHOUSE = "WAREHOUSE"


class NCRType(str, Enum):
    PRICE_VARIANCE = "PRICE_VARIANCE"
    MANUAL = "MANUAL"


class NCRStatus(str, Enum):
    """NCR lifecycle: OPEN -> SENT -> {CREDITED | REJECTED | RESOLVED}."""

    OPEN = "OPEN"
    SENT = "SENT"
    CREDITED = "CREDITED"
    REJECTED = "REJECTED"
    RESOLVED = "RESOLVED"


class FinancialImpact(str, Enum):
    """Financial outcome of a RESOLVED NCR."""

    NONE = "NONE"
    CREDIT = "CREDIT"
    LOSS = "LOSS"


class ApprovalEntityType(str, Enum):
    PERIOD_CLOSE = "PERIOD_CLOSE"
    TRANSFER = "TRANSFER"


class ApprovalStatus(str, Enum):
    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class TransferStatus(str, Enum):
    PENDING_APPROVAL = "PENDING_APPROVAL"
    COMPLETED = "COMPLETED"
    REJECTED = "REJECTED"


class OutboxStatus(str, Enum):
    PENDING = "PENDING"
    DISPATCHED = "DISPATCHED"
    FAILED = "FAILED"


class NotificationEventType(str, Enum):
    NCR_CREATED = "NCR_CREATED"
    NCR_RESOLVED = "NCR_RESOLVED"


@dataclass(frozen=True)
class PeriodInfo:
    """Immutable view of a Period row."""

    id: UUID
    name: str
    start_date: date
    end_date: date
    status: PeriodStatus
    approval_id: UUID | None = None
    closed_at: datetime | None = None

    def contains(self, moment: date | datetime) -> bool:
        day = moment.date() if isinstance(moment, datetime) else moment
        return self.start_date <= day <= self.end_date


@dataclass(frozen=True)
class PeriodLocationInfo:
    period_id: UUID
    location_id: UUID
    status: PeriodLocationStatus
    opening_value: Decimal | None
    closing_value: Decimal | None
    ready_at: datetime | None = None


@dataclass(frozen=True)
class StockLevel:
    """On-hand quantity and WAC for one (location, item)."""

    location_id: UUID
    item_id: UUID
    on_hand: Decimal
    wac: Decimal

    @property
    def value(self) -> Decimal:
        return self.on_hand * self.wac


@dataclass(frozen=True)
class NCRSummary:
    """
    Minimal NCR view consumed by the impact aggregator.

    value is always non-negative.  delivery_no / item_name are display
    fields and may be None for manual NCRs.
    """

    id: UUID
    ncr_no: str
    value: Decimal
    status: NCRStatus
    financial_impact: FinancialImpact | None = None
    delivery_no: str | None = None
    item_name: str | None = None
    reason: str | None = None


@dataclass(frozen=True)
class NCRInfo:
    """Immutable view of an NCR row."""

    id: UUID
    ncr_no: str
    location_id: UUID
    type: NCRType
    auto_generated: bool
    status: NCRStatus
    value: Decimal
    reason: str
    created_at: datetime
    quantity: Decimal | None = None
    item_id: UUID | None = None
    delivery_id: UUID | None = None
    delivery_line_id: UUID | None = None
    resolution_type: str | None = None
    financial_impact: FinancialImpact | None = None
    resolution_notes: str | None = None
    resolved_at: datetime | None = None


@dataclass(frozen=True)
class ApprovalInfo:
    """Immutable view of an Approval row."""

    id: UUID
    entity_type: ApprovalEntityType
    entity_id: UUID
    status: ApprovalStatus
    requested_by_id: UUID
    requested_at: datetime
    reviewed_by_id: UUID | None = None
    reviewed_at: datetime | None = None
    comments: str | None = None
