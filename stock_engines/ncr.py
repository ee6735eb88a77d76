"""
stock_engines.ncr -- NCR lifecycle rules and financial impact aggregation.

Responsibility:
    Decide whether an NCR status change is allowed, and partition the NCRs
    of a (period, location) scope into the four buckets that feed the
    reconciliation: credited, losses, pending, open.

Architecture position:
    Engines -- pure, zero I/O.  NCRService enforces transitions through
    ``validate_ncr_transition``; ReconciliationService and the period close
    orchestrator consume ``aggregate_ncr_impact``.

Invariants enforced:
    - OPEN -> SENT -> {CREDITED | REJECTED | RESOLVED}, plus OPEN -> RESOLVED.
      Other assignments between non-terminal statuses are free; RESOLVED is
      terminal.
    - RESOLVED requires both resolution_type and financial_impact; any other
      status forbids both.
    - Buckets:
        credited = CREDITED, or RESOLVED with financial_impact CREDIT
        losses   = REJECTED, or RESOLVED with financial_impact LOSS
        pending  = SENT
        open     = OPEN
      RESOLVED with financial_impact NONE falls in no bucket.

Failure modes:
    - NCRAlreadyResolvedError on any change to a RESOLVED NCR.
    - ResolutionFieldsError when resolution fields are missing for
      RESOLVED or present for another status.
    - ValidationError for an unknown status or financial_impact value.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum

from stock_engines.tracer import traced_engine
from stock_kernel.domain.dtos import FinancialImpact, NCRStatus, NCRSummary
from stock_kernel.domain.values import ZERO, round_money
from stock_kernel.exceptions import (
    NCRAlreadyResolvedError,
    ResolutionFieldsError,
    ValidationError,
)

# Entering one of these for the first time stamps resolved_at.
RESOLVING_STATUSES = frozenset(
    {NCRStatus.CREDITED, NCRStatus.REJECTED, NCRStatus.RESOLVED}
)


class NCRImpactCategory(str, Enum):
    CREDITED = "credited"
    LOSSES = "losses"
    PENDING = "pending"
    OPEN = "open"


@dataclass(frozen=True)
class NCRTransition:
    """A validated status change, ready to apply."""

    target: NCRStatus
    resolution_type: str | None = None
    financial_impact: FinancialImpact | None = None


@dataclass(frozen=True)
class NCRImpactBucket:
    total: Decimal = ZERO
    count: int = 0
    ncrs: tuple[NCRSummary, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class NCRImpactSummary:
    credited: NCRImpactBucket
    losses: NCRImpactBucket
    pending: NCRImpactBucket
    open: NCRImpactBucket

    def bucket(self, category: NCRImpactCategory) -> NCRImpactBucket:
        return getattr(self, category.value)


def _coerce_status(value: NCRStatus | str) -> NCRStatus:
    try:
        return NCRStatus(value)
    except ValueError:
        raise ValidationError("status", f"unknown NCR status '{value}'") from None


def _coerce_impact(value: FinancialImpact | str | None) -> FinancialImpact | None:
    if value is None:
        return None
    try:
        return FinancialImpact(value)
    except ValueError:
        raise ValidationError(
            "financial_impact", f"must be one of NONE, CREDIT, LOSS (got '{value}')"
        ) from None


def validate_ncr_transition(
    ncr_no: str,
    current: NCRStatus | str,
    target: NCRStatus | str,
    resolution_type: str | None = None,
    financial_impact: FinancialImpact | str | None = None,
) -> NCRTransition:
    """Check a status change against the NCR lifecycle rules."""
    current_status = _coerce_status(current)
    target_status = _coerce_status(target)
    impact = _coerce_impact(financial_impact)
    resolution = (resolution_type or "").strip() or None

    if current_status == NCRStatus.RESOLVED:
        raise NCRAlreadyResolvedError(ncr_no, target_status.value)

    if target_status == NCRStatus.RESOLVED:
        missing = [
            name
            for name, val in (("resolution_type", resolution), ("financial_impact", impact))
            if val is None
        ]
        if missing:
            raise ResolutionFieldsError(
                ncr_no, target_status.value, f"missing {', '.join(missing)}"
            )
    elif resolution is not None or impact is not None:
        raise ResolutionFieldsError(
            ncr_no,
            target_status.value,
            "resolution_type and financial_impact are only allowed when RESOLVED",
        )

    return NCRTransition(
        target=target_status,
        resolution_type=resolution,
        financial_impact=impact,
    )


def classify_ncr(
    status: NCRStatus | str, financial_impact: FinancialImpact | str | None = None
) -> NCRImpactCategory | None:
    """Bucket for one NCR, or None when it has no reconciliation effect."""
    status = _coerce_status(status)
    impact = _coerce_impact(financial_impact)

    if status == NCRStatus.CREDITED:
        return NCRImpactCategory.CREDITED
    if status == NCRStatus.REJECTED:
        return NCRImpactCategory.LOSSES
    if status == NCRStatus.SENT:
        return NCRImpactCategory.PENDING
    if status == NCRStatus.OPEN:
        return NCRImpactCategory.OPEN
    if impact == FinancialImpact.CREDIT:
        return NCRImpactCategory.CREDITED
    if impact == FinancialImpact.LOSS:
        return NCRImpactCategory.LOSSES
    return None


@traced_engine("ncr_impact", "1.0")
def aggregate_ncr_impact(ncrs: Iterable[NCRSummary]) -> NCRImpactSummary:
    """Partition NCRs into credited / losses / pending / open buckets."""
    grouped: dict[NCRImpactCategory, list[NCRSummary]] = {
        category: [] for category in NCRImpactCategory
    }
    for ncr in ncrs:
        category = classify_ncr(ncr.status, ncr.financial_impact)
        if category is not None:
            grouped[category].append(ncr)

    def _bucket(members: list[NCRSummary]) -> NCRImpactBucket:
        total = sum((n.value for n in members), ZERO)
        return NCRImpactBucket(
            total=round_money(total),
            count=len(members),
            ncrs=tuple(members),
        )

    return NCRImpactSummary(
        credited=_bucket(grouped[NCRImpactCategory.CREDITED]),
        losses=_bucket(grouped[NCRImpactCategory.LOSSES]),
        pending=_bucket(grouped[NCRImpactCategory.PENDING]),
        open=_bucket(grouped[NCRImpactCategory.OPEN]),
    )
