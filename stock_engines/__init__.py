"""
Stock Engines - pure calculation layer.

No I/O, no database access, no clock.  Every function takes plain values
(converted once through stock_kernel.domain.values.to_decimal) and returns
a frozen result dataclass.

Engines:
    wac             Weighted average cost on receipt
    price_variance  Delivery price vs period-locked price, NCR trigger
    ncr             NCR status transitions and financial impact buckets
    reconciliation  Period consumption and manday cost
    stock           Stock sufficiency checks for issues and transfers
"""

from stock_engines.ncr import (
    NCRImpactBucket,
    NCRImpactCategory,
    NCRImpactSummary,
    aggregate_ncr_impact,
    classify_ncr,
    validate_ncr_transition,
)
from stock_engines.price_variance import (
    PriceVarianceResult,
    VarianceThresholds,
    build_price_variance_reason,
    check_price_variance,
    validate_price_variance_inputs,
)
from stock_engines.reconciliation import (
    ConsumptionResult,
    MandayCostResult,
    ReconciliationAdjustments,
    ReconciliationResult,
    StockMovements,
    calculate_consumption,
    calculate_manday_cost,
    calculate_reconciliation,
    validate_reconciliation_inputs,
)
from stock_engines.stock import (
    StockRequirement,
    StockSufficiency,
    check_stock_sufficiency,
    get_insufficient_stock_items,
    validate_positive_quantity,
    validate_sufficient_stock,
)
from stock_engines.wac import (
    WACResult,
    WACValidation,
    calculate_receipt_value_impact,
    calculate_wac,
    preview_wac,
    validate_wac_inputs,
)

__all__ = [
    "ConsumptionResult",
    "MandayCostResult",
    "NCRImpactBucket",
    "NCRImpactCategory",
    "NCRImpactSummary",
    "PriceVarianceResult",
    "ReconciliationAdjustments",
    "ReconciliationResult",
    "StockMovements",
    "StockRequirement",
    "StockSufficiency",
    "VarianceThresholds",
    "WACResult",
    "WACValidation",
    "aggregate_ncr_impact",
    "build_price_variance_reason",
    "calculate_consumption",
    "calculate_manday_cost",
    "calculate_receipt_value_impact",
    "calculate_reconciliation",
    "calculate_wac",
    "check_price_variance",
    "check_stock_sufficiency",
    "classify_ncr",
    "get_insufficient_stock_items",
    "preview_wac",
    "validate_ncr_transition",
    "validate_positive_quantity",
    "validate_price_variance_inputs",
    "validate_reconciliation_inputs",
    "validate_sufficient_stock",
    "validate_wac_inputs",
]
