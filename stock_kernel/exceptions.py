"""
Typed exception hierarchy for the stock kernel.

Every error the kernel raises is a typed class with a machine-readable
``code`` class attribute and structured attributes, so callers catch by
type and report by code instead of parsing messages.

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- MissingPeriodPricesError
    |   +-- ResolutionFieldsError
    |
    +-- InsufficientStockError
    |
    +-- InvalidStateTransitionError
    |   +-- PeriodNotOpenError
    |   +-- NoLocationsError
    |   +-- LocationsNotReadyError
    |   +-- PriceLockedError
    |   +-- NCRAlreadyResolvedError
    |
    +-- ConflictError
    |   +-- PeriodAlreadyOpenError
    |   +-- PeriodOverlapError
    |   +-- DuplicateApprovalError
    |
    +-- NotFoundError

Code            | When raised
----------------|--------------------------------------------------------
VALIDATION_ERROR            | Negative / non-finite numeric input, bad field
MISSING_PERIOD_PRICES       | Delivery item has no price in the open period
RESOLUTION_FIELDS_INVALID   | RESOLVED without resolution fields, or fields on a non-RESOLVED status
INSUFFICIENT_STOCK          | Requested quantity exceeds on-hand
INVALID_STATE_TRANSITION    | Entity not in the status the operation requires
PERIOD_NOT_OPEN             | Posting into a period/location that is not OPEN
NO_LOCATIONS                | Opening or closing a period without locations
LOCATIONS_NOT_READY         | Close requested while a location is not READY
PRICE_LOCKED                | Price edit outside DRAFT
NCR_ALREADY_RESOLVED        | Status change on a RESOLVED NCR
CONFLICT                    | Generic conflict with an existing entity
PERIOD_ALREADY_OPEN         | Another period is already OPEN
PERIOD_OVERLAP              | Date range overlaps an existing period
DUPLICATE_APPROVAL          | A PENDING approval already exists for the entity
NOT_FOUND                   | Entity id does not resolve
"""

from typing import Any, Iterable


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation


class ValidationError(StockKernelError):
    """Input rejected before any side effect; names the offending field."""

    code: str = "VALIDATION_ERROR"

    def __init__(self, field: str, message: str):
        self.field = field
        self.message = message
        super().__init__(f"Invalid {field}: {message}")


class MissingPeriodPricesError(ValidationError):
    """One or more delivered items have no locked price for the period."""

    code: str = "MISSING_PERIOD_PRICES"

    def __init__(self, period_id: Any, item_ids: Iterable[Any]):
        self.period_id = str(period_id)
        self.item_ids = sorted(str(i) for i in item_ids)
        super().__init__(
            "items",
            f"no period price for {len(self.item_ids)} item(s) in period "
            f"{self.period_id}: {', '.join(self.item_ids)}",
        )


class ResolutionFieldsError(ValidationError):
    """
    resolution_type and financial_impact must both be supplied when an
    NCR is RESOLVED and must both be absent otherwise.
    """

    code: str = "RESOLUTION_FIELDS_INVALID"

    def __init__(self, ncr_no: str, target_status: str, message: str):
        self.ncr_no = ncr_no
        self.target_status = target_status
        super().__init__("resolution", f"NCR {ncr_no} -> {target_status}: {message}")


# Stock


class InsufficientStockError(StockKernelError):
    """Requested quantity exceeds on-hand for one or more items."""

    code: str = "INSUFFICIENT_STOCK"

    def __init__(self, location_id: Any, shortages: list[dict[str, Any]]):
        self.location_id = str(location_id)
        self.shortages = shortages
        detail = "; ".join(
            f"{s.get('item_name') or s['item_id']}: requested {s['requested']}, "
            f"available {s['available']}"
            for s in shortages
        )
        super().__init__(f"Insufficient stock at location {self.location_id}: {detail}")


# State transitions


class InvalidStateTransitionError(StockKernelError):
    """Entity is not in the status required for the requested operation."""

    code: str = "INVALID_STATE_TRANSITION"

    def __init__(
        self,
        entity_type: str,
        entity_id: Any,
        current_status: str,
        requested: str,
        message: str | None = None,
    ):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        self.current_status = str(getattr(current_status, "value", current_status))
        self.requested = requested
        super().__init__(
            message
            or f"{entity_type} {self.entity_id} cannot {requested} from status "
            f"{self.current_status}"
        )


class PeriodNotOpenError(InvalidStateTransitionError):
    """Transactions require an OPEN period and an OPEN period location."""

    code: str = "PERIOD_NOT_OPEN"

    def __init__(self, period_id: Any, status: str, location_id: Any | None = None):
        self.location_id = str(location_id) if location_id is not None else None
        scope = f" at location {self.location_id}" if location_id is not None else ""
        super().__init__(
            "Period",
            period_id,
            status,
            "accept transactions",
            message=(
                f"Period {period_id} does not accept transactions{scope} "
                f"(status {getattr(status, 'value', status)})"
            ),
        )


class NoLocationsError(InvalidStateTransitionError):
    """Period has no associated locations."""

    code: str = "NO_LOCATIONS"

    def __init__(self, period_id: Any, status: str, requested: str):
        super().__init__(
            "Period",
            period_id,
            status,
            requested,
            message=f"Period {period_id} has no locations; cannot {requested}",
        )


class LocationsNotReadyError(InvalidStateTransitionError):
    """Every period location must be READY before close."""

    code: str = "LOCATIONS_NOT_READY"

    def __init__(self, period_id: Any, status: str, not_ready_location_ids: Iterable[Any]):
        self.not_ready_location_ids = sorted(str(i) for i in not_ready_location_ids)
        super().__init__(
            "Period",
            period_id,
            status,
            "close",
            message=(
                f"Period {period_id} has {len(self.not_ready_location_ids)} "
                f"location(s) not READY: {', '.join(self.not_ready_location_ids)}"
            ),
        )


class PriceLockedError(InvalidStateTransitionError):
    """Item prices are editable only while the period is DRAFT."""

    code: str = "PRICE_LOCKED"

    def __init__(self, period_id: Any, status: str):
        super().__init__(
            "Period",
            period_id,
            status,
            "edit prices",
            message=(
                f"Prices for period {period_id} are locked "
                f"(status {getattr(status, 'value', status)})"
            ),
        )


class NCRAlreadyResolvedError(InvalidStateTransitionError):
    """RESOLVED is terminal."""

    code: str = "NCR_ALREADY_RESOLVED"

    def __init__(self, ncr_no: str, requested: str):
        self.ncr_no = ncr_no
        super().__init__(
            "NCR",
            ncr_no,
            "RESOLVED",
            f"move to {requested}",
            message=f"NCR {ncr_no} is already resolved",
        )


# Conflicts


class ConflictError(StockKernelError):
    """Operation conflicts with an existing entity."""

    code: str = "CONFLICT"

    def __init__(self, message: str, conflicting_id: Any | None = None):
        self.conflicting_id = str(conflicting_id) if conflicting_id is not None else None
        super().__init__(message)


class PeriodAlreadyOpenError(ConflictError):
    """At most one period may be OPEN system-wide."""

    code: str = "PERIOD_ALREADY_OPEN"

    def __init__(self, period_id: Any, open_period_id: Any | None):
        self.period_id = str(period_id)
        super().__init__(
            f"Cannot open period {period_id}: period {open_period_id} is already OPEN",
            conflicting_id=open_period_id,
        )


class PeriodOverlapError(ConflictError):
    """New period date range overlaps an existing period."""

    code: str = "PERIOD_OVERLAP"

    def __init__(
        self,
        start_date: str,
        end_date: str,
        existing_period_id: Any,
        existing_period_name: str,
    ):
        self.start_date = start_date
        self.end_date = end_date
        self.existing_period_name = existing_period_name
        super().__init__(
            f"Date range {start_date} to {end_date} overlaps period "
            f"'{existing_period_name}'",
            conflicting_id=existing_period_id,
        )


class DuplicateApprovalError(ConflictError):
    """A PENDING approval already exists for this entity."""

    code: str = "DUPLICATE_APPROVAL"

    def __init__(self, entity_type: str, entity_id: Any, approval_id: Any | None):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(
            f"A pending {entity_type} approval already exists for {entity_id}",
            conflicting_id=approval_id,
        )


# Lookup


class NotFoundError(StockKernelError):
    """Entity id does not resolve."""

    code: str = "NOT_FOUND"

    def __init__(self, entity_type: str, entity_id: Any):
        self.entity_type = entity_type
        self.entity_id = str(entity_id)
        super().__init__(f"{entity_type} {entity_id} not found")
