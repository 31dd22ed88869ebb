"""
Sequence allocation (``asset_kernel.services.sequence_service``).

Two consumers share one counter table:

* document numbers -- one counter per prefix and month (``REQ-2024-03``,
  ``DEL-2024-03``), formatted by ``DocumentNumberAllocator``;
* approval-history ordering -- the single ``approval_history`` counter whose
  values become ``seq`` on each history row.

Every allocation locks its counter row (``SELECT ... FOR UPDATE``) and
increments it inside the caller's transaction.  Nothing here commits: a
rolled-back operation hands its numbers back, so committed numbers have no
gaps.  Deriving the next value from ``max(...)`` over existing rows is
never used.

Lock order: callers take the document counter before the history counter.
A lock wait past the configured timeout surfaces as ``OperationalError`` and
is translated to ``LockTimeoutError`` by ``db.transaction.atomic``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime

from sqlalchemy import String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from asset_kernel.db.base import Base
from asset_kernel.exceptions import InvalidDocumentNumberError
from asset_kernel.logging_config import get_logger
from asset_kernel.services.base import BaseService

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """Last value handed out for one named sequence."""

    __tablename__ = "sequence_counters"

    # "approval_history", or a document key such as "REQ-2024-03"
    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)


class SequenceService(BaseService):
    """Locked, gap-free counters.  Flushes only; the caller commits."""

    APPROVAL_HISTORY = "approval_history"

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _first_use(self, sequence_name: str) -> SequenceCounter | None:
        """
        Insert the counter at 1 inside a savepoint.

        Returns None when another transaction created it first; the
        caller then locks the winner's row.
        """
        savepoint = self.session.begin_nested()
        counter = SequenceCounter(name=sequence_name, current_value=1)
        self.session.add(counter)
        try:
            self.session.flush()
        except IntegrityError:
            savepoint.rollback()
            logger.debug("sequence_counter_race_retry", extra={
                "sequence_name": sequence_name,
            })
            return None
        savepoint.commit()
        return counter

    def next_value(self, sequence_name: str) -> int:
        """Next value for ``sequence_name``; the row stays locked until commit."""
        if not sequence_name:
            raise ValueError("sequence_name must be non-empty")

        counter = self._locked_counter(sequence_name)
        if counter is None:
            created = self._first_use(sequence_name)
            if created is not None:
                value = created.current_value
                logger.debug("sequence_allocated", extra={
                    "sequence_name": sequence_name, "value": value,
                })
                return value
            counter = self._locked_counter(sequence_name)
            if counter is None:
                raise RuntimeError(f"Sequence counter {sequence_name!r} vanished after race")

        counter.current_value += 1
        self.session.flush()
        logger.debug("sequence_allocated", extra={
            "sequence_name": sequence_name, "value": counter.current_value,
        })
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Last allocated value, without locking or incrementing."""
        return self.session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """Set a counter outright.  Tests and data migrations only."""
        counter = self._locked_counter(sequence_name)
        if counter is None:
            self.session.add(SequenceCounter(name=sequence_name, current_value=value))
        else:
            counter.current_value = value
        self.session.flush()


_NUMBER_PATTERN = re.compile(r"^([A-Z][A-Z0-9]*)-(\d{4})-(\d{2})-(\d+)$")


@dataclass(frozen=True)
class ParsedDocumentNumber:
    prefix: str
    year: int
    month: int
    sequence: int


class DocumentNumberAllocator:
    """
    Month-scoped human-readable document numbers.

    Format: ``PREFIX-YYYY-MM-NNNN``.  The counter key is ``PREFIX-YYYY-MM``,
    so numbering restarts at 1 every calendar month.  The sequence part is
    zero-padded to ``width`` digits and simply grows wider past the maximum.
    """

    def __init__(self, session: Session, width: int = 4):
        if width < 1:
            raise ValueError("width must be >= 1")
        self._sequences = SequenceService(session)
        self._width = width

    @staticmethod
    def counter_key(prefix: str, as_of: date | datetime) -> str:
        return f"{prefix}-{as_of.year:04d}-{as_of.month:02d}"

    def next_number(self, prefix: str, as_of: date | datetime) -> str:
        key = self.counter_key(prefix, as_of)
        value = self._sequences.next_value(key)
        return f"{key}-{value:0{self._width}d}"

    @staticmethod
    def parse(number: str) -> ParsedDocumentNumber:
        """Split a document number into its parts.

        Raises:
            InvalidDocumentNumberError: ``number`` is not PREFIX-YYYY-MM-NNNN.
        """
        match = _NUMBER_PATTERN.match(number or "")
        if match is None:
            raise InvalidDocumentNumberError(number)
        prefix, year, month, seq = match.groups()
        if not 1 <= int(month) <= 12 or int(seq) < 1:
            raise InvalidDocumentNumberError(number)
        return ParsedDocumentNumber(
            prefix=prefix, year=int(year), month=int(month), sequence=int(seq),
        )
