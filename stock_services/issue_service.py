"""
stock_services.issue_service -- Post stock issues (consumption).

Every line is checked for sufficiency before the first row changes; an
issue is posted whole or not at all.  Each line records the WAC at the
moment of posting, which later receipts never rewrite.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_config.schema import StockConfig
from stock_engines.stock import StockRequirement, validate_positive_quantity
from stock_kernel.domain.clock import Clock, SystemClock
from stock_kernel.domain.values import ZERO, round_money
from stock_kernel.exceptions import NotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.catalog import Item
from stock_kernel.models.movements import Issue, IssueLine
from stock_kernel.services.period_service import PeriodService
from stock_kernel.services.sequence_service import SequenceService
from stock_kernel.services.stock_ledger_service import StockLedgerService
from stock_services._types import IssueInfo, IssueLineInfo, IssueLineInput

logger = get_logger("services.issue")


def issue_to_dto(issue: Issue) -> IssueInfo:
    return IssueInfo(
        id=issue.id,
        issue_no=issue.issue_no,
        location_id=issue.location_id,
        period_id=issue.period_id,
        issue_date=issue.issue_date,
        total_value=Decimal(issue.total_value),
        cost_centre=issue.cost_centre,
        lines=tuple(
            IssueLineInfo(
                line_no=line.line_no,
                item_id=line.item_id,
                quantity=Decimal(line.quantity),
                wac_at_issue=Decimal(line.wac_at_issue),
                line_value=Decimal(line.line_value),
            )
            for line in issue.lines
        ),
    )


def build_requirements(
    session: Session, item_ids_and_quantities: list[tuple[UUID, Decimal]]
) -> list[StockRequirement]:
    """StockRequirements with item names, rejecting unknown items."""
    item_ids = list(dict.fromkeys(item_id for item_id, _ in item_ids_and_quantities))
    names = dict(
        session.execute(select(Item.id, Item.name).where(Item.id.in_(item_ids))).all()
    )
    for item_id in item_ids:
        if item_id not in names:
            raise NotFoundError("Item", item_id)
    return [
        StockRequirement(item_id=item_id, quantity=quantity, item_name=names[item_id])
        for item_id, quantity in item_ids_and_quantities
    ]


class IssueService:
    """Posts issues against the open period."""

    def __init__(
        self,
        session: Session,
        period_service: PeriodService,
        ledger: StockLedgerService,
        sequence_service: SequenceService,
        clock: Clock | None = None,
        config: StockConfig | None = None,
    ) -> None:
        self._session = session
        self._periods = period_service
        self._ledger = ledger
        self._sequence = sequence_service
        self._clock = clock or SystemClock()
        self._config = config or StockConfig.with_defaults()

    def post_issue(
        self,
        location_id: UUID,
        lines: list[IssueLineInput],
        actor_id: UUID,
        issue_date: date | None = None,
        cost_centre: str | None = None,
    ) -> IssueInfo:
        """
        Deduct stock at current WAC.

        Raises:
            InsufficientStockError: any line exceeds on-hand; nothing posted.
            PeriodNotOpenError: location cannot post in the current period.
        """
        if not lines:
            raise ValidationError("lines", "at least one line is required")
        parsed = [
            (line.item_id, validate_positive_quantity(line.quantity, f"lines[{idx}].quantity"))
            for idx, line in enumerate(lines)
        ]

        period = self._periods.require_postable(location_id)
        requirements = build_requirements(self._session, parsed)
        wacs = self._ledger.deduct_many(location_id, requirements, actor_id)

        posting_date = issue_date or self._clock.today()
        issue = Issue(
            issue_no=self._sequence.next_document_number(
                self._config.issue_prefix, posting_date.year
            ),
            location_id=location_id,
            period_id=period.id,
            issue_date=posting_date,
            cost_centre=cost_centre,
            total_value=ZERO,
            created_by_id=actor_id,
        )
        self._session.add(issue)
        self._session.flush()

        total = ZERO
        for line_no, req in enumerate(requirements, start=1):
            wac = wacs[req.item_id]
            line_value = round_money(req.quantity * wac)
            self._session.add(
                IssueLine(
                    issue_id=issue.id,
                    line_no=line_no,
                    item_id=req.item_id,
                    quantity=req.quantity,
                    wac_at_issue=wac,
                    line_value=line_value,
                    created_by_id=actor_id,
                )
            )
            total += line_value

        issue.total_value = round_money(total)
        self._session.flush()
        self._session.refresh(issue, ["lines"])

        logger.info(
            "issue_posted",
            extra={
                "issue_id": str(issue.id),
                "issue_no": issue.issue_no,
                "location_id": str(location_id),
                "period_id": str(period.id),
                "line_count": len(requirements),
                "total_value": str(issue.total_value),
            },
        )
        return issue_to_dto(issue)

    def get_issue(self, issue_id: UUID) -> IssueInfo:
        issue = self._session.get(Issue, issue_id)
        if issue is None:
            raise NotFoundError("Issue", issue_id)
        return issue_to_dto(issue)
