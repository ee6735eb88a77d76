"""
stock_engines.wac -- Weighted Average Cost on receipt.

Responsibility:
    Recompute the per-unit weighted average cost of a (location, item)
    when stock is received, and report the resulting quantity and values.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  Called by
    StockLedgerService for delivery receipts and transfer receipts; the
    caller persists the result against the locked Stock Ledger row.

Invariants enforced:
    - newValue = currentQty * currentWAC + receivedQty * receiptPrice
    - newQuantity = currentQty + receivedQty
    - newWAC = newValue / newQuantity, and receiptPrice exactly when
      currentQty is zero (first receipt).
    - newWAC lies between min(currentWAC, receiptPrice) and
      max(currentWAC, receiptPrice).
    - Output precision: WAC and quantity 4 places; money 2 places.

Failure modes:
    - ValidationError naming the field for non-finite input, negative
      currentQty / currentWAC / receiptPrice, or receivedQty <= 0.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from stock_engines.tracer import traced_engine
from stock_kernel.domain.values import (
    ZERO,
    Numeric,
    round_money,
    round_quantity,
    round_wac,
    to_decimal,
)
from stock_kernel.exceptions import ValidationError


@dataclass(frozen=True)
class WACResult:
    """Outcome of one receipt against the stock ledger."""

    new_wac: Decimal
    new_quantity: Decimal
    new_value: Decimal
    current_value: Decimal
    receipt_value: Decimal


@dataclass(frozen=True)
class WACValidation:
    valid: bool
    error: str | None = None


def _validated(
    current_quantity: Numeric,
    current_wac: Numeric,
    received_quantity: Numeric,
    receipt_price: Numeric,
) -> tuple[Decimal, Decimal, Decimal, Decimal]:
    cq = to_decimal(current_quantity, "current_quantity")
    cw = to_decimal(current_wac, "current_wac")
    rq = to_decimal(received_quantity, "received_quantity")
    rp = to_decimal(receipt_price, "receipt_price")

    if cq < ZERO:
        raise ValidationError("current_quantity", "cannot be negative")
    if cw < ZERO:
        raise ValidationError("current_wac", "cannot be negative")
    if rq <= ZERO:
        raise ValidationError("received_quantity", "must be greater than zero")
    if rp < ZERO:
        raise ValidationError("receipt_price", "cannot be negative")
    return cq, cw, rq, rp


@traced_engine(
    "wac",
    "1.0",
    fingerprint_fields=("current_quantity", "current_wac", "received_quantity", "receipt_price"),
)
def calculate_wac(
    current_quantity: Numeric,
    current_wac: Numeric,
    received_quantity: Numeric,
    receipt_price: Numeric,
) -> WACResult:
    """
    Weighted average cost after receiving stock.

    Example:
        calculate_wac(100, "10.00", 50, "12.00")
        -> new_wac 10.6667, new_quantity 150, new_value 1600.00
    """
    cq, cw, rq, rp = _validated(current_quantity, current_wac, received_quantity, receipt_price)

    current_value = cq * cw
    receipt_value = rq * rp
    new_quantity = cq + rq
    new_value = current_value + receipt_value

    if cq == ZERO:
        new_wac = rp
    else:
        new_wac = new_value / new_quantity

    return WACResult(
        new_wac=round_wac(new_wac),
        new_quantity=round_quantity(new_quantity),
        new_value=round_money(new_value),
        current_value=round_money(current_value),
        receipt_value=round_money(receipt_value),
    )


def preview_wac(
    current_quantity: Numeric,
    current_wac: Numeric,
    received_quantity: Numeric,
    receipt_price: Numeric,
) -> Decimal:
    """WAC a receipt would produce, without any other detail."""
    return calculate_wac(current_quantity, current_wac, received_quantity, receipt_price).new_wac


def calculate_receipt_value_impact(
    current_quantity: Numeric,
    current_wac: Numeric,
    received_quantity: Numeric,
    receipt_price: Numeric,
) -> Decimal:
    """Value a receipt adds to the ledger (receivedQty x receiptPrice)."""
    return calculate_wac(
        current_quantity, current_wac, received_quantity, receipt_price
    ).receipt_value


def validate_wac_inputs(
    current_quantity: Numeric,
    current_wac: Numeric,
    received_quantity: Numeric,
    receipt_price: Numeric,
) -> WACValidation:
    """Non-raising form of the calculate_wac preconditions."""
    try:
        _validated(current_quantity, current_wac, received_quantity, receipt_price)
    except ValidationError as exc:
        return WACValidation(valid=False, error=str(exc))
    return WACValidation(valid=True)
