"""
stock_engines.price_variance -- delivery price vs period-locked price.

Responsibility:
    Compare the actual unit price on a delivery line with the price locked
    for the period and decide whether the difference warrants an automatic
    Non-Conformance Report.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Called by DeliveryService
    for every posted line; NCRService persists the NCR when
    ``exceeds_threshold`` is true.

Invariants enforced:
    - variance = unit_price - period_price
    - variance_percent = variance / period_price * 100; when period_price
      is zero it is 100 if unit_price > 0, else 0.
    - variance_amount = variance * quantity
    - exceeds_threshold requires a non-zero variance and then either no
      configured threshold (any variance triggers) or |percent| strictly
      above threshold_percent or |amount| strictly above threshold_amount.
      Thresholds of zero or None count as not configured.  The comparison
      uses unrounded values.
    - Reported precision: variance and prices 4 places; percent and
      amount 2 places.

Failure modes:
    - ValidationError for negative / non-finite prices or quantity <= 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.domain.values import (
    HUNDRED,
    ZERO,
    Numeric,
    quantize,
    round_money,
    round_percent,
    round_wac,
    to_decimal,
)
from stock_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class VarianceThresholds:
    """Tolerance before a price variance raises an NCR.  None/0 = not set."""

    threshold_percent: Decimal | None = None
    threshold_amount: Decimal | None = None

    @property
    def percent_configured(self) -> bool:
        return self.threshold_percent is not None and self.threshold_percent > ZERO

    @property
    def amount_configured(self) -> bool:
        return self.threshold_amount is not None and self.threshold_amount > ZERO


@dataclass(frozen=True)
class PriceVarianceResult:
    has_variance: bool
    variance: Decimal
    variance_percent: Decimal
    variance_amount: Decimal
    actual_price: Decimal
    expected_price: Decimal
    exceeds_threshold: bool

    @property
    def direction(self) -> str:
        return "increase" if self.variance > ZERO else "decrease"


def _validated(
    unit_price: Numeric, period_price: Numeric, quantity: Numeric
) -> tuple[Decimal, Decimal, Decimal]:
    actual = to_decimal(unit_price, "unit_price")
    expected = to_decimal(period_price, "period_price")
    qty = to_decimal(quantity, "quantity")
    if actual < ZERO:
        raise ValidationError("unit_price", "cannot be negative")
    if expected < ZERO:
        raise ValidationError("period_price", "cannot be negative")
    if qty <= ZERO:
        raise ValidationError("quantity", "must be greater than zero")
    return actual, expected, qty


@traced_engine(
    "price_variance",
    "1.0",
    fingerprint_fields=("unit_price", "period_price", "quantity"),
)
def check_price_variance(
    unit_price: Numeric,
    period_price: Numeric,
    quantity: Numeric,
    thresholds: VarianceThresholds | None = None,
) -> PriceVarianceResult:
    """
    Price variance of one delivery line.

    Example:
        check_price_variance("26.00", "25.50", 100)
        -> variance 0.5, percent 1.96, amount 50.00, exceeds_threshold True
    """
    actual, expected, qty = _validated(unit_price, period_price, quantity)
    thresholds = thresholds or VarianceThresholds()

    variance = actual - expected
    if expected > ZERO:
        variance_percent = variance / expected * HUNDRED
    else:
        variance_percent = HUNDRED if actual > ZERO else ZERO
    variance_amount = variance * qty
    has_variance = variance != ZERO

    exceeds_percent = (
        thresholds.percent_configured
        and abs(variance_percent) > thresholds.threshold_percent
    )
    exceeds_amount = (
        thresholds.amount_configured
        and abs(variance_amount) > thresholds.threshold_amount
    )
    no_thresholds = not (thresholds.percent_configured or thresholds.amount_configured)

    exceeds_threshold = has_variance and (no_thresholds or exceeds_percent or exceeds_amount)

    return PriceVarianceResult(
        has_variance=has_variance,
        variance=round_wac(variance),
        variance_percent=round_percent(variance_percent),
        variance_amount=round_money(variance_amount),
        actual_price=round_wac(actual),
        expected_price=round_wac(expected),
        exceeds_threshold=bool(exceeds_threshold),
    )


def validate_price_variance_inputs(
    unit_price: Numeric, period_price: Numeric, quantity: Numeric
) -> list[str]:
    """Every precondition violation, as messages.  Empty list means valid."""
    errors: list[str] = []
    checks = (
        ("unit_price", unit_price, False),
        ("period_price", period_price, False),
        ("quantity", quantity, True),
    )
    for field, raw, strictly_positive in checks:
        try:
            value = to_decimal(raw, field)
        except ValidationError as exc:
            errors.append(str(exc))
            continue
        if strictly_positive and value <= ZERO:
            errors.append(f"Invalid {field}: must be greater than zero")
        elif value < ZERO:
            errors.append(f"Invalid {field}: cannot be negative")
    return errors


def build_price_variance_reason(
    item_name: str,
    item_code: str,
    quantity: Numeric,
    result: PriceVarianceResult,
    currency: str = "SAR",
) -> str:
    """Human-readable reason text stored on an auto-generated NCR."""
    qty = to_decimal(quantity, "quantity")
    return (
        "Automatic NCR for price variance detected on delivery.\n\n"
        f"Item: {item_name} ({item_code})\n"
        f"Quantity: {qty.normalize():f}\n"
        f"Expected Price (Period): {currency} {quantize(result.expected_price, 4)}\n"
        f"Actual Price (Delivery): {currency} {quantize(result.actual_price, 4)}\n"
        f"Variance: {currency} {quantize(result.variance, 4)} "
        f"({quantize(result.variance_percent, 2)}% {result.direction})\n"
        f"Total Variance Amount: {currency} {quantize(result.variance_amount, 2)}\n\n"
        "This NCR was automatically generated due to price difference from "
        "period-locked price."
    )
