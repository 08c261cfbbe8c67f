"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Allocates strictly increasing numbers for named sequences.  Request
    numbers use one sequence per calendar year (``request_number:2026``).

Architecture position:
    Kernel > Services.  Called by the request repository when a request is
    inserted.

Invariants enforced:
    - The locked counter row is the sole source of the next value; the
      aggregate-max-plus-one pattern is never used.
    - The increment is only visible once the caller's transaction commits.
      Rollback returns the value.

Failure modes:
    - ConcurrencyConflictError when two transactions race to create the
      same counter row.  The caller's transaction is rolled back and the
      operation may be retried against the now-existing row.
"""

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from workflow_kernel.exceptions import ConcurrencyConflictError
from workflow_kernel.logging_config import get_logger
from workflow_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


class SequenceService:
    """
    Transactional sequence numbers.

    Non-goals:
        - Does NOT call ``session.commit()``; the caller controls boundaries.
    """

    REQUEST_NUMBER = "request_number"

    def __init__(self, session: Session):
        self._session = session

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it, and return the new value.

        Returns:
            An integer > 0, strictly greater than any value previously
            returned for ``sequence_name``.
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=1)
            self._session.add(counter)
            try:
                self._session.flush()
            except IntegrityError as exc:
                logger.warning(
                    "sequence_counter_creation_race",
                    extra={"sequence_name": sequence_name},
                )
                raise ConcurrencyConflictError("SequenceCounter", sequence_name) from exc
        else:
            counter.current_value += 1
            self._session.flush()

        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if unused."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def next_request_number(self, prefix: str, year: int) -> str:
        """Allocate the next human-readable request number for ``year``."""
        value = self.next_value(f"{self.REQUEST_NUMBER}:{year}")
        return f"{prefix}-{year}-{value:06d}"
