"""
ApprovalService -- approval request lifecycle.

Responsibility:
    Creates PENDING approval requests and records their resolution
    (APPROVED / REJECTED).  What an approval unlocks is decided by the
    caller (PeriodCloseOrchestrator for PERIOD_CLOSE).

Invariants enforced:
    - One PENDING approval per (entity_type, entity_id): pre-check for a
      clear error, plus the uq_approval_single_pending partial unique
      index so that two concurrent requests cannot both commit.
    - Only PENDING approvals can be resolved.
    - Flush-only.

Failure modes:
    - DuplicateApprovalError, NotFoundError, InvalidStateTransitionError.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.dtos import ApprovalEntityType, ApprovalInfo, ApprovalStatus
from stock_kernel.exceptions import (
    DuplicateApprovalError,
    InvalidStateTransitionError,
    NotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.approval import Approval
from stock_kernel.services.base import BaseService

logger = get_logger("services.approval")


def approval_to_dto(approval: Approval) -> ApprovalInfo:
    return ApprovalInfo(
        id=approval.id,
        entity_type=ApprovalEntityType(approval.entity_type),
        entity_id=approval.entity_id,
        status=ApprovalStatus(approval.status),
        requested_by_id=approval.requested_by_id,
        requested_at=approval.requested_at,
        reviewed_by_id=approval.reviewed_by_id,
        reviewed_at=approval.reviewed_at,
        comments=approval.comments,
    )


class ApprovalService(BaseService[Approval]):
    """Request and resolve approvals."""

    def get_pending(self, entity_type: ApprovalEntityType, entity_id: UUID) -> ApprovalInfo | None:
        approval = self.session.execute(
            select(Approval).where(
                Approval.entity_type == entity_type,
                Approval.entity_id == entity_id,
                Approval.status == ApprovalStatus.PENDING,
            )
        ).scalar_one_or_none()
        return approval_to_dto(approval) if approval is not None else None

    def request(
        self,
        entity_type: ApprovalEntityType,
        entity_id: UUID,
        actor_id: UUID,
        comments: str | None = None,
    ) -> ApprovalInfo:
        """
        Open a PENDING approval.

        Raises:
            DuplicateApprovalError: one is already pending for the entity.
        """
        existing = self.get_pending(entity_type, entity_id)
        if existing is not None:
            raise DuplicateApprovalError(entity_type.value, entity_id, existing.id)

        approval = Approval(
            entity_type=entity_type,
            entity_id=entity_id,
            status=ApprovalStatus.PENDING,
            requested_by_id=actor_id,
            requested_at=self._clock.now(),
            comments=comments,
            created_by_id=actor_id,
        )
        savepoint = self.session.begin_nested()
        try:
            self.session.add(approval)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.warning(
                "concurrent_approval_conflict",
                extra={"entity_type": entity_type.value, "entity_id": str(entity_id)},
            )
            raise DuplicateApprovalError(entity_type.value, entity_id, None) from None

        logger.info(
            "approval_requested",
            extra={
                "approval_id": str(approval.id),
                "entity_type": entity_type.value,
                "entity_id": str(entity_id),
            },
        )
        return approval_to_dto(approval)

    def _pending_for_update(self, approval_id: UUID, requested: str) -> Approval:
        approval = self.session.execute(
            select(Approval).where(Approval.id == approval_id).with_for_update()
        ).scalar_one_or_none()
        if approval is None:
            raise NotFoundError("Approval", approval_id)
        if approval.status != ApprovalStatus.PENDING:
            raise InvalidStateTransitionError("Approval", approval_id, approval.status, requested)
        return approval

    def _resolve(
        self,
        approval_id: UUID,
        status: ApprovalStatus,
        actor_id: UUID,
        comments: str | None,
    ) -> ApprovalInfo:
        approval = self._pending_for_update(approval_id, status.value.lower())
        approval.status = status
        approval.reviewed_by_id = actor_id
        approval.reviewed_at = self._clock.now()
        if comments is not None:
            approval.comments = comments
        approval.updated_by_id = actor_id
        self.session.flush()

        logger.info(
            "approval_resolved",
            extra={
                "approval_id": str(approval_id),
                "entity_type": ApprovalEntityType(approval.entity_type).value,
                "status": status.value,
            },
        )
        return approval_to_dto(approval)

    def approve(self, approval_id: UUID, actor_id: UUID, comments: str | None = None) -> ApprovalInfo:
        return self._resolve(approval_id, ApprovalStatus.APPROVED, actor_id, comments)

    def reject(self, approval_id: UUID, actor_id: UUID, comments: str | None = None) -> ApprovalInfo:
        return self._resolve(approval_id, ApprovalStatus.REJECTED, actor_id, comments)
