"""
stock_services.notifications -- Deliver queued outbox events.

Runs after the posting transaction has committed.  A sender failure is
logged and recorded on the outbox row (FAILED, attempt count, last
error); it is never raised, and it never touches the domain data that
produced the event.  Rows are retried on later runs until
``max_attempts`` is reached.
"""

from __future__ import annotations

from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.dtos import NotificationEventType, OutboxStatus
from stock_kernel.logging_config import get_logger
from stock_kernel.models.outbox import OutboxEvent
from stock_services._types import DispatchResult

logger = get_logger("services.notifications")


class NotificationSender(Protocol):
    """Transport for one notification (mail, webhook ...)."""

    def send(
        self,
        event_type: NotificationEventType,
        aggregate_id: UUID,
        payload: dict[str, Any],
    ) -> None: ...


class LoggingNotificationSender:
    """Sender that only writes a log record.  Default when no transport is configured."""

    def send(
        self,
        event_type: NotificationEventType,
        aggregate_id: UUID,
        payload: dict[str, Any],
    ) -> None:
        logger.info(
            "notification_sent",
            extra={
                "event_type": event_type.value,
                "aggregate_id": str(aggregate_id),
                "ncr_no": payload.get("ncr_no"),
            },
        )


class NotificationDispatcher:

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        max_attempts: int = 3,
    ) -> None:
        self._session = session
        self._clock = clock or SystemClock()
        self._max_attempts = max_attempts

    def _due(self, limit: int) -> list[OutboxEvent]:
        return list(
            self._session.execute(
                select(OutboxEvent)
                .where(
                    OutboxEvent.status.in_([OutboxStatus.PENDING, OutboxStatus.FAILED]),
                    OutboxEvent.attempts < self._max_attempts,
                )
                .order_by(OutboxEvent.created_at, OutboxEvent.id)
                .limit(limit)
                .with_for_update(skip_locked=True)
            ).scalars()
        )

    def dispatch_pending(self, sender: NotificationSender, limit: int = 100) -> DispatchResult:
        """Send due events; returns how many were dispatched and how many failed."""
        dispatched = 0
        failed = 0
        for event in self._due(limit):
            event.attempts += 1
            try:
                sender.send(NotificationEventType(event.event_type), event.aggregate_id, event.payload)
            except Exception as exc:
                failed += 1
                event.status = OutboxStatus.FAILED
                event.last_error = f"{type(exc).__name__}: {exc}"[:1000]
                logger.warning(
                    "notification_dispatch_failed",
                    extra={
                        "outbox_event_id": str(event.id),
                        "event_type": NotificationEventType(event.event_type).value,
                        "aggregate_id": str(event.aggregate_id),
                        "attempts": event.attempts,
                        "error": str(exc),
                    },
                    exc_info=True,
                )
                continue

            dispatched += 1
            event.status = OutboxStatus.DISPATCHED
            event.dispatched_at = self._clock.now()
            event.last_error = None
        self._session.flush()

        if dispatched or failed:
            logger.info(
                "notifications_dispatched",
                extra={"dispatched": dispatched, "failed": failed},
            )
        return DispatchResult(dispatched=dispatched, failed=failed)
