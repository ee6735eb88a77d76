"""
Stock Services - orchestration over the stock kernel and engines.

Posting (deliveries, issues, transfers), NCR lifecycle, persons-on-board
counts, reconciliation, period close and notification dispatch.
``StockOrchestrator`` builds all of them for one session.
"""

from stock_services._types import (
    CloseRequestResult,
    ConsolidatedLocation,
    ConsolidatedReconciliation,
    ConsolidatedTotals,
    DeliveryInfo,
    DeliveryLineInfo,
    DeliveryLineInput,
    DeliveryResult,
    DispatchResult,
    IssueInfo,
    IssueLineInfo,
    IssueLineInput,
    OpenNCRWarning,
    PeriodCloseResult,
    POBEntryInfo,
    POBEntryInput,
    POBSummary,
    ReconciliationReport,
    RollForwardResult,
    TransferInfo,
    TransferLineInfo,
    TransferLineInput,
    WACUpdate,
)
from stock_services.delivery_service import DeliveryService
from stock_services.issue_service import IssueService
from stock_services.ncr_service import NCRService
from stock_services.notifications import (
    LoggingNotificationSender,
    NotificationDispatcher,
    NotificationSender,
)
from stock_services.period_close_orchestrator import PeriodCloseOrchestrator
from stock_services.pob_service import POBService
from stock_services.reconciliation_service import ReconciliationService
from stock_services.stock_orchestrator import StockOrchestrator
from stock_services.transfer_service import TransferService

__all__ = [
    "CloseRequestResult",
    "ConsolidatedLocation",
    "ConsolidatedReconciliation",
    "ConsolidatedTotals",
    "DeliveryInfo",
    "DeliveryLineInfo",
    "DeliveryLineInput",
    "DeliveryResult",
    "DeliveryService",
    "DispatchResult",
    "IssueInfo",
    "IssueLineInfo",
    "IssueLineInput",
    "IssueService",
    "LoggingNotificationSender",
    "NCRService",
    "NotificationDispatcher",
    "NotificationSender",
    "OpenNCRWarning",
    "POBEntryInfo",
    "POBEntryInput",
    "POBService",
    "POBSummary",
    "PeriodCloseOrchestrator",
    "PeriodCloseResult",
    "ReconciliationReport",
    "ReconciliationService",
    "RollForwardResult",
    "StockOrchestrator",
    "TransferInfo",
    "TransferLineInfo",
    "TransferLineInput",
    "TransferService",
    "WACUpdate",
]
