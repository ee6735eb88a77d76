"""
Document numbering from locked counter rows.

Numbers look like ``<PREFIX>-<YYYY>-<NNN>`` (NCR, DEL, ISS, TRF).  Each
prefix/year pair owns one ``SequenceCounter`` row; allocating a number
locks that row with ``SELECT ... FOR UPDATE`` and increments it.  The
next number is never derived from the highest existing document number.

Allocations belong to the caller's transaction: a rollback gives the
number back.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from stock_kernel.logging_config import get_logger
from stock_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Usage:
        with db.session_scope() as session:
            ncr_no = SequenceService(session).next_document_number("NCR", 2025)
            # "NCR-2025-001", then "NCR-2025-002", ...
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _create(self, sequence_name: str) -> SequenceCounter:
        # Two sessions may both see no row; the loser of the unique
        # constraint rolls back its savepoint and locks the winner's row.
        savepoint = self._session.begin_nested()
        try:
            counter = SequenceCounter(name=sequence_name, current_value=0)
            self._session.add(counter)
            self._session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={"sequence_name": sequence_name})
            counter = self._lock(sequence_name)
            if counter is None:
                raise
            return counter
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Increment the named counter, creating it at zero on first use."""
        counter = self._lock(sequence_name) or self._create(sequence_name)
        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last allocated value, or None if nothing was allocated yet."""
        value = self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return value or None

    def next_document_number(self, prefix: str, year: int) -> str:
        return f"{prefix}-{year}-{self.next_value(f'{prefix}-{year}'):03d}"
