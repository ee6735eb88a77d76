"""
stock_engines.stock -- stock sufficiency for outbound movements.

Issues and transfers must be fully covered by on-hand stock before any
line is posted; there is no partial posting.  Requested quantities for the
same item on several lines are summed before comparison.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from decimal import Decimal
from typing import Any

from stock_kernel.domain.values import ZERO, Numeric, to_decimal
from stock_kernel.exceptions import InsufficientStockError, ValidationError


@dataclass(frozen=True)
class StockRequirement:
    item_id: Any
    quantity: Decimal
    item_name: str | None = None


@dataclass(frozen=True)
class StockSufficiency:
    sufficient: bool
    requested: Decimal
    available: Decimal
    shortfall: Decimal


def validate_positive_quantity(quantity: Numeric, field: str = "quantity") -> Decimal:
    value = to_decimal(quantity, field)
    if value <= ZERO:
        raise ValidationError(field, "must be greater than zero")
    return value


def check_stock_sufficiency(requested: Numeric, available: Numeric) -> StockSufficiency:
    req = to_decimal(requested, "requested")
    avail = to_decimal(available, "available")
    shortfall = req - avail if req > avail else ZERO
    return StockSufficiency(
        sufficient=shortfall == ZERO,
        requested=req,
        available=avail,
        shortfall=shortfall,
    )


def get_insufficient_stock_items(
    requirements: Iterable[StockRequirement],
    available: Mapping[Any, Numeric],
) -> list[dict[str, Any]]:
    """Every item whose summed requested quantity exceeds availability."""
    totals: dict[Any, Decimal] = {}
    names: dict[Any, str | None] = {}
    for req in requirements:
        totals[req.item_id] = totals.get(req.item_id, ZERO) + validate_positive_quantity(
            req.quantity
        )
        names.setdefault(req.item_id, req.item_name)

    shortages = []
    for item_id, requested in totals.items():
        check = check_stock_sufficiency(requested, available.get(item_id, ZERO))
        if not check.sufficient:
            shortages.append(
                {
                    "item_id": str(item_id),
                    "item_name": names[item_id],
                    "requested": check.requested,
                    "available": check.available,
                    "shortfall": check.shortfall,
                }
            )
    return shortages


def validate_sufficient_stock(
    location_id: Any,
    requirements: Iterable[StockRequirement],
    available: Mapping[Any, Numeric],
) -> None:
    """
    Raises:
        InsufficientStockError: listing every short item.
    """
    shortages = get_insufficient_stock_items(requirements, available)
    if shortages:
        raise InsufficientStockError(location_id, shortages)
