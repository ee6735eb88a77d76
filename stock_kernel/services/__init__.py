"""Kernel services: flush-only units of work over the stock kernel models."""

from stock_kernel.services.approval_service import ApprovalService
from stock_kernel.services.outbox_service import NotificationOutbox
from stock_kernel.services.period_service import PeriodService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger_service import StockLedgerService

__all__ = [
    "ApprovalService",
    "NotificationOutbox",
    "PeriodService",
    "SequenceService",
    "StockLedgerService",
]
