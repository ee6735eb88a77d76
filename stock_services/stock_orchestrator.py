"""
stock_services.stock_orchestrator -- Central DI container for the stock services.

Responsibility:
    Creates every kernel and orchestration service exactly once per
    session and wires them together.  No service creates another service
    internally.

Architecture position:
    Services -- top of the service layer; the only place where services
    are constructed and composed.

Usage:
    from stock_services import StockOrchestrator

    with db.session_scope() as session:
        stock = StockOrchestrator(session, config=config)
        result = stock.deliveries.post_delivery(location_id, lines, actor_id)

    # Outside the posting transaction:
    with db.session_scope() as session:
        StockOrchestrator(session).notifications.dispatch_pending(sender)
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.services.approval_service import ApprovalService
from stock_kernel.services.outbox_service import NotificationOutbox
from stock_kernel.services.period_service import PeriodService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_services.delivery_service import DeliveryService
from stock_services.issue_service import IssueService
from stock_services.ncr_service import NCRService
from stock_services.notifications import NotificationDispatcher
from stock_services.period_close_orchestrator import PeriodCloseOrchestrator
from stock_services.pob_service import POBService
from stock_services.reconciliation_service import ReconciliationService
from stock_services.transfer_service import TransferService


class StockOrchestrator:
    """All services of one unit of work, sharing a session, clock and config."""

    def __init__(
        self,
        session: Session,
        config: StockConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or StockConfig.with_defaults()

        # Kernel services
        self.sequence_service = SequenceService(session)
        self.period_service = PeriodService(session, self._clock)
        self.ledger = StockLedgerService(session, self._clock)
        self.approval_service = ApprovalService(session, self._clock)
        self.outbox = NotificationOutbox(session, self._clock)

        # Orchestration services
        self.ncrs = NCRService(
            session, self.sequence_service, self.outbox, self._clock, self._config
        )
        self.deliveries = DeliveryService(
            session,
            self.period_service,
            self.ledger,
            self.sequence_service,
            self.ncrs,
            self._clock,
            self._config,
        )
        self.issues = IssueService(
            session,
            self.period_service,
            self.ledger,
            self.sequence_service,
            self._clock,
            self._config,
        )
        self.transfers = TransferService(
            session,
            self.period_service,
            self.ledger,
            self.sequence_service,
            self.approval_service,
            self._clock,
            self._config,
        )
        self.pob = POBService(session, self.period_service)
        self.reconciliations = ReconciliationService(
            session, self.period_service, self.ledger, self.ncrs, self.pob, self._clock
        )
        self.period_close = PeriodCloseOrchestrator(
            session,
            self.period_service,
            self.approval_service,
            self.ledger,
            self.reconciliations,
            self.ncrs,
            self._clock,
            self._config,
        )
        self.notifications = NotificationDispatcher(
            session, self._clock, self._config.notification_max_attempts
        )

    @property
    def session(self) -> Session:
        return self._session

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def config(self) -> StockConfig:
        return self._config
