"""
SequenceService -- race-safe monthly document numbers.

Responsibility:
    Issues ``SAL-/RCP-/RFD-/EXP-YYYY-MM-NNNNN`` numbers from one counter row
    per (prefix, month).  The counter row is locked (``SELECT ... FOR
    UPDATE``) and incremented; scanning for the highest existing number
    and adding one is never done.

Architecture position:
    Kernel > Services.  Called by every module service that creates a
    numbered document, inside that service's unit of work.

Invariants enforced:
    - Numbers are unique per prefix and month; the counter row's unique
      name and the document tables' unique number columns back this up.
    - The increment commits or rolls back with the caller's transaction.

Failure modes:
    - IntegrityError on concurrent first use of a month's counter; handled
      by a savepoint and re-read of the winner's row.
"""

from datetime import date

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from estate_kernel.db.base import Base
from estate_kernel.domain.identifiers import (
    DocumentKind,
    counter_name,
    format_document_number,
)
from estate_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """One row per named counter, e.g. ``RCP-2024-02``."""

    __tablename__ = "estate_sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)


class SequenceService:
    """
    Allocates counter values and document numbers.

    Does not commit; the caller's unit of work owns the transaction.
    """

    def __init__(self, session: Session):
        self._session = session

    def _locked_counter(self, name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, name: str) -> int:
        counter = self._locked_counter(name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug("sequence_allocated", extra={"sequence_name": name, "value": 1})
                return 1
            except IntegrityError:
                logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
                savepoint.rollback()
                counter = self._locked_counter(name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value

    def next_document_number(self, kind: DocumentKind, on: date) -> str:
        """Next ``PREFIX-YYYY-MM-NNNNN`` for the month containing ``on``."""
        value = self.next_value(counter_name(kind, on))
        return format_document_number(kind, on, value)

    def current_value(self, name: str) -> int | None:
        return self._session.execute(
            select(SequenceCounter.current_value).where(SequenceCounter.name == name)
        ).scalar_one_or_none()
