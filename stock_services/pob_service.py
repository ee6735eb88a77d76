"""
stock_services.pob_service -- Daily persons-on-board (POB) counts.

Mandays for the manday cost come from these entries: per day, crew plus
extra headcount.  Entries can be written only while the location is
still OPEN in a DRAFT or OPEN period; once it is READY, or the period is
closing or closed, the counts are frozen.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import PeriodLocationStatus, PeriodStatus
from stock_kernel.exceptions import NotFoundError, PeriodNotOpenError, ValidationError
from stock_kernel.logging_config import LogContext, get_logger
from stock_kernel.models.period import Period, PeriodLocation
from stock_kernel.models.pob import POBEntry
from stock_kernel.services.period_service import PeriodService
from stock_services._types import POBEntryInfo, POBEntryInput, POBSummary

logger = get_logger("services.pob")

_WRITABLE_PERIOD_STATUSES = (PeriodStatus.DRAFT, PeriodStatus.OPEN)


def pob_entry_to_dto(entry: POBEntry) -> POBEntryInfo:
    return POBEntryInfo(
        id=entry.id,
        period_id=entry.period_id,
        location_id=entry.location_id,
        entry_date=entry.entry_date,
        crew_count=entry.crew_count,
        extra_count=entry.extra_count,
    )


def _headcount(value: object, field: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(field, "must be a whole number")
    if value < 0:
        raise ValidationError(field, "cannot be negative")
    return value


class POBService:

    def __init__(
        self,
        session: Session,
        period_service: PeriodService,
    ) -> None:
        self._session = session
        self._periods = period_service

    def _writable_period(self, period_id: UUID | None, location_id: UUID) -> Period:
        if period_id is None:
            open_period = self._periods.get_open_period()
            if open_period is None:
                raise PeriodNotOpenError("none", "NO_OPEN_PERIOD", location_id)
            period_id = open_period.id
        period = self._periods.get_for_update(period_id)

        row = self._session.execute(
            select(PeriodLocation).where(
                PeriodLocation.period_id == period.id,
                PeriodLocation.location_id == location_id,
            )
        ).scalar_one_or_none()
        if period.status not in _WRITABLE_PERIOD_STATUSES:
            raise PeriodNotOpenError(period.id, period.status, location_id)
        if row is None or row.status != PeriodLocationStatus.OPEN:
            status = row.status if row is not None else "NOT_IN_PERIOD"
            raise PeriodNotOpenError(period.id, status, location_id)
        return period

    def _entry_for(self, period_id: UUID, location_id: UUID, day: date) -> POBEntry | None:
        return self._session.execute(
            select(POBEntry).where(
                POBEntry.period_id == period_id,
                POBEntry.location_id == location_id,
                POBEntry.entry_date == day,
            )
        ).scalar_one_or_none()

    def record_entries(
        self,
        location_id: UUID,
        entries: list[POBEntryInput],
        actor_id: UUID,
        period_id: UUID | None = None,
    ) -> POBSummary:
        """
        Create or overwrite the counts of the given days.

        The period defaults to the OPEN one.  Every date must fall inside
        the period; a date given twice keeps its last counts.

        Raises:
            ValidationError: no entries, a negative or fractional count, or
                a date outside the period.
            PeriodNotOpenError: the location no longer accepts entries.
        """
        if not entries:
            raise ValidationError("entries", "at least one entry is required")
        counts = [
            (
                entry.entry_date,
                _headcount(entry.crew_count, f"entries[{idx}].crew_count"),
                _headcount(entry.extra_count, f"entries[{idx}].extra_count"),
            )
            for idx, entry in enumerate(entries)
        ]

        period = self._writable_period(period_id, location_id)
        for idx, (day, _, _) in enumerate(counts):
            if not period.contains_date(day):
                raise ValidationError(
                    f"entries[{idx}].entry_date",
                    f"{day} is outside the period ({period.start_date} to {period.end_date})",
                )

        saved: dict[date, POBEntry] = {}
        for day, crew, extra in counts:
            entry = saved.get(day) or self._entry_for(period.id, location_id, day)
            if entry is None:
                entry = POBEntry(
                    period_id=period.id,
                    location_id=location_id,
                    entry_date=day,
                    created_by_id=actor_id,
                )
                self._session.add(entry)
            else:
                entry.updated_by_id = actor_id
            entry.crew_count = crew
            entry.extra_count = extra
            saved[day] = entry
        self._session.flush()

        summary = POBSummary(
            period_id=period.id,
            location_id=location_id,
            entries=tuple(pob_entry_to_dto(e) for _, e in sorted(saved.items())),
        )
        with LogContext.bind(period_id=str(period.id), location_id=str(location_id)):
            logger.info(
                "pob_entries_recorded",
                extra={"entry_count": len(saved), "mandays": summary.total_mandays},
            )
        return summary

    def update_entry(
        self,
        entry_id: UUID,
        actor_id: UUID,
        crew_count: int | None = None,
        extra_count: int | None = None,
    ) -> POBEntryInfo:
        """Change one entry's counts; at least one count must be given."""
        if crew_count is None and extra_count is None:
            raise ValidationError("counts", "crew_count or extra_count is required")
        entry = self._session.get(POBEntry, entry_id)
        if entry is None:
            raise NotFoundError("POBEntry", entry_id)
        self._writable_period(entry.period_id, entry.location_id)

        if crew_count is not None:
            entry.crew_count = _headcount(crew_count, "crew_count")
        if extra_count is not None:
            entry.extra_count = _headcount(extra_count, "extra_count")
        entry.updated_by_id = actor_id
        self._session.flush()

        logger.info(
            "pob_entry_updated",
            extra={"entry_id": str(entry_id), "total_count": entry.total_count},
        )
        return pob_entry_to_dto(entry)

    def list_entries(
        self,
        period_id: UUID,
        location_id: UUID,
        start_date: date | None = None,
        end_date: date | None = None,
    ) -> POBSummary:
        stmt = select(POBEntry).where(
            POBEntry.period_id == period_id,
            POBEntry.location_id == location_id,
        )
        if start_date is not None:
            stmt = stmt.where(POBEntry.entry_date >= start_date)
        if end_date is not None:
            stmt = stmt.where(POBEntry.entry_date <= end_date)
        rows = self._session.execute(stmt.order_by(POBEntry.entry_date)).scalars()
        return POBSummary(
            period_id=period_id,
            location_id=location_id,
            entries=tuple(pob_entry_to_dto(row) for row in rows),
        )

    def total_mandays(self, period_id: UUID, location_id: UUID) -> int:
        """Sum of crew and extra counts over every day of the period."""
        total = self._session.execute(
            select(
                func.coalesce(func.sum(POBEntry.crew_count + POBEntry.extra_count), 0)
            ).where(
                POBEntry.period_id == period_id,
                POBEntry.location_id == location_id,
            )
        ).scalar()
        return int(total)
