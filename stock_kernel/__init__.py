"""
Stock Kernel

Inventory valuation and period reconciliation core for a multi-location
stock system:
- Weighted average costing on every receipt
- Period-locked prices with automatic price-variance NCRs
- Per-location period reconciliation
- Period lifecycle (DRAFT -> OPEN -> PENDING_CLOSE -> CLOSED -> roll forward)
"""

__version__ = "0.1.0"
