"""
stock_services._types -- Input and result DTOs for the orchestration layer.

Responsibility:
    Frozen dataclasses passed into and returned from the posting services,
    the NCR and reconciliation services, and the period close
    orchestrator.  Callers never receive ORM entities.

Architecture position:
    Services.  Kernel-level views (PeriodInfo, NCRInfo, ApprovalInfo ...)
    live in stock_kernel.domain.dtos and are reused here.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from stock_engines.ncr import NCRImpactSummary
from stock_engines.reconciliation import (
    ConsumptionResult,
    MandayCostResult,
    ReconciliationAdjustments,
    StockMovements,
)
from stock_kernel.domain.dtos import (
    ApprovalInfo,
    NCRInfo,
    PeriodInfo,
    PeriodLocationInfo,
    TransferStatus,
)
from stock_kernel.domain.values import Numeric

# ---------------------------------------------------------------------------
# Line inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeliveryLineInput:
    item_id: UUID
    quantity: Numeric
    unit_price: Numeric


@dataclass(frozen=True)
class IssueLineInput:
    item_id: UUID
    quantity: Numeric


@dataclass(frozen=True)
class TransferLineInput:
    item_id: UUID
    quantity: Numeric


# ---------------------------------------------------------------------------
# Deliveries
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DeliveryLineInfo:
    id: UUID
    line_no: int
    item_id: UUID
    quantity: Decimal
    unit_price: Decimal
    period_price: Decimal
    price_variance: Decimal
    line_value: Decimal


@dataclass(frozen=True)
class DeliveryInfo:
    id: UUID
    delivery_no: str
    location_id: UUID
    period_id: UUID
    delivery_date: date
    total_amount: Decimal
    has_variance: bool
    supplier_name: str | None = None
    invoice_no: str | None = None
    lines: tuple[DeliveryLineInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class WACUpdate:
    """Ledger effect of one delivery line."""

    item_id: UUID
    previous_wac: Decimal
    new_wac: Decimal
    new_quantity: Decimal


@dataclass(frozen=True)
class DeliveryResult:
    delivery: DeliveryInfo
    ncrs: tuple[NCRInfo, ...] = field(default_factory=tuple)
    wac_updates: tuple[WACUpdate, ...] = field(default_factory=tuple)

    @property
    def ncr_count(self) -> int:
        return len(self.ncrs)


# ---------------------------------------------------------------------------
# Issues and transfers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IssueLineInfo:
    line_no: int
    item_id: UUID
    quantity: Decimal
    wac_at_issue: Decimal
    line_value: Decimal


@dataclass(frozen=True)
class IssueInfo:
    id: UUID
    issue_no: str
    location_id: UUID
    period_id: UUID
    issue_date: date
    total_value: Decimal
    cost_centre: str | None = None
    lines: tuple[IssueLineInfo, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class TransferLineInfo:
    line_no: int
    item_id: UUID
    quantity: Decimal
    wac_at_transfer: Decimal
    line_value: Decimal


@dataclass(frozen=True)
class TransferInfo:
    id: UUID
    transfer_no: str
    from_location_id: UUID
    to_location_id: UUID
    period_id: UUID
    transfer_date: date
    status: TransferStatus
    total_value: Decimal
    notes: str | None = None
    approved_by_id: UUID | None = None
    approved_at: datetime | None = None
    lines: tuple[TransferLineInfo, ...] = field(default_factory=tuple)


# ---------------------------------------------------------------------------
# Reconciliation
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReconciliationReport:
    """
    Consumption report of one (period, location).

    manday is None when there are no mandays to divide by.  is_saved is
    False when the figures were computed live because no record exists.
    """

    period_id: UUID
    location_id: UUID
    movements: StockMovements
    adjustments: ReconciliationAdjustments
    consumption: ConsumptionResult
    ncr_impact: NCRImpactSummary
    manday: MandayCostResult | None = None
    total_mandays: Decimal = Decimal("0")
    is_saved: bool = False


@dataclass(frozen=True)
class ConsolidatedLocation:
    location_id: UUID
    location_code: str
    location_name: str
    report: ReconciliationReport


@dataclass(frozen=True)
class ConsolidatedTotals:
    """Grand totals over every location of a period."""

    opening_stock: Decimal
    receipts: Decimal
    transfers_in: Decimal
    transfers_out: Decimal
    issues: Decimal
    closing_stock: Decimal
    back_charges: Decimal
    credits: Decimal
    condemnations: Decimal
    other_adjustments: Decimal
    ncr_credits: Decimal
    ncr_losses: Decimal
    consumption: Decimal
    total_mandays: Decimal
    average_manday_cost: Decimal | None


@dataclass(frozen=True)
class ConsolidatedReconciliation:
    period: PeriodInfo
    locations: tuple[ConsolidatedLocation, ...]
    totals: ConsolidatedTotals

    @property
    def saved_count(self) -> int:
        return sum(1 for line in self.locations if line.report.is_saved)


# ---------------------------------------------------------------------------
# Persons on board
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class POBEntryInput:
    entry_date: date
    crew_count: int
    extra_count: int = 0


@dataclass(frozen=True)
class POBEntryInfo:
    id: UUID
    period_id: UUID
    location_id: UUID
    entry_date: date
    crew_count: int
    extra_count: int

    @property
    def total_count(self) -> int:
        return self.crew_count + self.extra_count


@dataclass(frozen=True)
class POBSummary:
    period_id: UUID
    location_id: UUID
    entries: tuple[POBEntryInfo, ...]

    @property
    def total_crew_count(self) -> int:
        return sum(e.crew_count for e in self.entries)

    @property
    def total_extra_count(self) -> int:
        return sum(e.extra_count for e in self.entries)

    @property
    def total_mandays(self) -> int:
        return self.total_crew_count + self.total_extra_count


# ---------------------------------------------------------------------------
# Period close
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OpenNCRWarning:
    """Still-OPEN NCRs of one location; informational, never blocking."""

    location_id: UUID
    count: int
    total_value: Decimal
    location_name: str | None = None


@dataclass(frozen=True)
class CloseRequestResult:
    period: PeriodInfo
    approval: ApprovalInfo
    warnings: tuple[OpenNCRWarning, ...] = field(default_factory=tuple)

    @property
    def has_warnings(self) -> bool:
        return bool(self.warnings)


@dataclass(frozen=True)
class PeriodCloseResult:
    period: PeriodInfo
    approval: ApprovalInfo
    locations: tuple[PeriodLocationInfo, ...]
    total_closing_value: Decimal


@dataclass(frozen=True)
class RollForwardResult:
    period: PeriodInfo
    locations_created: int
    locations_with_opening_value: int
    total_opening_value: Decimal
    prices_copied: int


# ---------------------------------------------------------------------------
# Notifications
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class DispatchResult:
    dispatched: int = 0
    failed: int = 0

    @property
    def attempted(self) -> int:
        return self.dispatched + self.failed
