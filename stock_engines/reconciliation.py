"""
stock_engines.reconciliation -- period consumption and manday cost.

Responsibility:
    Turn the stock movement values of one (period, location), its manual
    adjustments and its NCR aggregates into a consumption figure and a
    cost per manday.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  ReconciliationService
    gathers the inputs from the store; the period close orchestrator
    snapshots the result.

Invariants enforced:
    - total_adjustments = back_charges - credits - condemnations
                          + other_adjustments + ncr_losses - ncr_credits
    - consumption = opening + receipts + transfers_in - transfers_out
                    - closing + total_adjustments
    - ``issues`` is carried for display and cross-checking only; it is
      not a term of the balance equation.
    - Negative consumption is valid (stock build-up).
    - Every monetary output is rounded to 2 places.
    - manday_cost = round(consumption / total_mandays, 2), total_mandays > 0.

Failure modes:
    - ValidationError naming the field, raised before any arithmetic, for
      non-finite input, a negative stock movement or NCR aggregate, or
      total_mandays <= 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.domain.values import ZERO, Numeric, round_money, to_decimal
from stock_kernel.exceptions import ValidationError

MOVEMENT_FIELDS = (
    "opening_stock",
    "receipts",
    "transfers_in",
    "transfers_out",
    "issues",
    "closing_stock",
)

ADJUSTMENT_FIELDS = (
    "back_charges",
    "credits",
    "condemnations",
    "other_adjustments",
    "ncr_credits",
    "ncr_losses",
)

# NCR aggregates are sums of non-negative NCR values.
_NON_NEGATIVE_ADJUSTMENTS = frozenset({"ncr_credits", "ncr_losses"})


@dataclass(frozen=True)
class StockMovements:
    opening_stock: Numeric = ZERO
    receipts: Numeric = ZERO
    transfers_in: Numeric = ZERO
    transfers_out: Numeric = ZERO
    issues: Numeric = ZERO
    closing_stock: Numeric = ZERO


@dataclass(frozen=True)
class ReconciliationAdjustments:
    """Manual adjustments plus the two NCR-derived terms."""

    back_charges: Numeric = ZERO
    credits: Numeric = ZERO
    condemnations: Numeric = ZERO
    other_adjustments: Numeric = ZERO
    ncr_credits: Numeric = ZERO
    ncr_losses: Numeric = ZERO


@dataclass(frozen=True)
class ConsumptionBreakdown:
    """Rounded inputs exactly as they entered the formula."""

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


@dataclass(frozen=True)
class ConsumptionResult:
    consumption: Decimal
    total_adjustments: Decimal
    breakdown: ConsumptionBreakdown


@dataclass(frozen=True)
class MandayCostResult:
    manday_cost: Decimal
    consumption: Decimal
    total_mandays: Decimal


@dataclass(frozen=True)
class ReconciliationResult:
    consumption: ConsumptionResult
    manday: MandayCostResult


def _validated_inputs(
    movements: StockMovements, adjustments: ReconciliationAdjustments
) -> dict[str, Decimal]:
    values: dict[str, Decimal] = {}
    for name in MOVEMENT_FIELDS:
        value = to_decimal(getattr(movements, name), name)
        if value < ZERO:
            raise ValidationError(name, "cannot be negative")
        values[name] = value
    for name in ADJUSTMENT_FIELDS:
        value = to_decimal(getattr(adjustments, name), name)
        if name in _NON_NEGATIVE_ADJUSTMENTS and value < ZERO:
            raise ValidationError(name, "cannot be negative")
        values[name] = value
    return values


@traced_engine("reconciliation", "1.0")
def calculate_consumption(
    movements: StockMovements,
    adjustments: ReconciliationAdjustments | None = None,
) -> ConsumptionResult:
    """
    Consumption of one period/location from the stock balance equation.

    Example:
        calculate_consumption(
            StockMovements(opening_stock=125000, receipts=45000,
                           transfers_in=5000, transfers_out=3000,
                           closing_stock=137000),
            ReconciliationAdjustments(back_charges=1000, credits=500,
                                      condemnations=1000),
        ).consumption
        -> Decimal("34500.00")
    """
    v = {
        name: round_money(value)
        for name, value in _validated_inputs(
            movements, adjustments or ReconciliationAdjustments()
        ).items()
    }

    total_adjustments = (
        v["back_charges"]
        - v["credits"]
        - v["condemnations"]
        + v["other_adjustments"]
        + v["ncr_losses"]
        - v["ncr_credits"]
    )
    consumption = (
        v["opening_stock"]
        + v["receipts"]
        + v["transfers_in"]
        - v["transfers_out"]
        - v["closing_stock"]
        + total_adjustments
    )

    return ConsumptionResult(
        consumption=round_money(consumption),
        total_adjustments=round_money(total_adjustments),
        breakdown=ConsumptionBreakdown(**v),
    )


def calculate_manday_cost(consumption: Numeric, total_mandays: Numeric) -> MandayCostResult:
    """Consumption per person-day, rounded to 2 places."""
    amount = to_decimal(consumption, "consumption")
    mandays = to_decimal(total_mandays, "total_mandays")
    if mandays <= ZERO:
        raise ValidationError("total_mandays", "must be greater than zero")
    return MandayCostResult(
        manday_cost=round_money(amount / mandays),
        consumption=round_money(amount),
        total_mandays=mandays,
    )


def calculate_reconciliation(
    movements: StockMovements,
    adjustments: ReconciliationAdjustments | None,
    total_mandays: Numeric,
) -> ReconciliationResult:
    """Consumption and manday cost in one call."""
    consumption = calculate_consumption(movements, adjustments)
    return ReconciliationResult(
        consumption=consumption,
        manday=calculate_manday_cost(consumption.consumption, total_mandays),
    )


def validate_reconciliation_inputs(
    movements: StockMovements,
    adjustments: ReconciliationAdjustments | None = None,
    total_mandays: Numeric | None = None,
) -> list[str]:
    """Every precondition violation, as messages.  Empty list means valid."""
    errors: list[str] = []
    adjustments = adjustments or ReconciliationAdjustments()
    sources = [(name, getattr(movements, name), True) for name in MOVEMENT_FIELDS]
    sources += [
        (name, getattr(adjustments, name), name in _NON_NEGATIVE_ADJUSTMENTS)
        for name in ADJUSTMENT_FIELDS
    ]
    for name, raw, non_negative in sources:
        try:
            value = to_decimal(raw, name)
        except ValidationError as exc:
            errors.append(str(exc))
            continue
        if non_negative and value < ZERO:
            errors.append(f"Invalid {name}: cannot be negative")

    if total_mandays is not None:
        try:
            if to_decimal(total_mandays, "total_mandays") <= ZERO:
                errors.append("Invalid total_mandays: must be greater than zero")
        except ValidationError as exc:
            errors.append(str(exc))
    return errors
