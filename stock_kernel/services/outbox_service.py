"""
NotificationOutbox -- records outbound notification events.

Domain services call ``record`` inside their own transaction; nothing is
sent here.  Delivery is done later by
stock_services.notifications.NotificationDispatcher, so a mail or webhook
failure can never roll back or block a posting.
"""

from typing import Any
from uuid import UUID

from stock_kernel.domain.dtos import NotificationEventType, OutboxStatus
from stock_kernel.logging_config import get_logger
from stock_kernel.models.outbox import OutboxEvent
from stock_kernel.services.base import BaseService

logger = get_logger("services.outbox")


class NotificationOutbox(BaseService[OutboxEvent]):

    def record(
        self,
        event_type: NotificationEventType,
        aggregate_id: UUID,
        payload: dict[str, Any],
        actor_id: UUID,
    ) -> UUID:
        """Queue one event.  ``payload`` must be JSON-serializable."""
        event = OutboxEvent(
            event_type=event_type,
            aggregate_id=aggregate_id,
            payload=payload,
            status=OutboxStatus.PENDING,
            attempts=0,
            created_at=self._clock.now(),
            created_by_id=actor_id,
        )
        self.session.add(event)
        self.session.flush()
        logger.debug(
            "notification_queued",
            extra={
                "outbox_event_id": str(event.id),
                "event_type": event_type.value,
                "aggregate_id": str(aggregate_id),
            },
        )
        return event.id
