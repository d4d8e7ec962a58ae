"""
SequenceService -- monotonic voucher numbers via locked counter rows.

Responsibility:
    Provides strictly increasing sequence values per named sequence and
    formats them as voucher numbers (``RV-000001``).  Uses the
    ``lease_sequence_counters`` table with row-level locking
    (``SELECT ... FOR UPDATE``) so concurrent posters never share a number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.  Called by
    PostingLedger.

Invariants enforced:
    - Voucher numbers are unique and strictly increasing per prefix.  The
      aggregate-max-plus-one pattern is never used.
    - The increment is transactional: a rolled-back posting returns its
      number.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from lease_kernel.logging_config import get_logger
from lease_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it and return the value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any value
              previously returned for ``sequence_name``.
        """
        counter = self._locked_counter(sequence_name)

        if counter is None:
            # First use; another session may create it at the same time.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._locked_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def next_voucher(self, prefix: str) -> str:
        value = self.next_value(f"voucher:{prefix}")
        return f"{prefix}-{value:06d}"

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def _locked_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
