"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing numbers for every human-readable identifier
    in the system: drug codes, batch ids, the ledger ordering sequence and
    the per-day transaction id sequence.  Uses a dedicated counter table with
    row-level locking (``SELECT ... FOR UPDATE``) so two workers can never
    draw the same value.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by CatalogService, BatchService, LedgerWriter and
    TransactionIdGenerator.

Invariants enforced:
    - Monotonicity: the locked counter row is the sole source of the next
      value.  Counting rows or MAX(...)+1 is never used; both hand out
      duplicates under concurrent writers.
    - Transactional: an increment is only visible once the caller commits.
      A rolled-back transaction returns its value.

Failure modes:
    - IntegrityError: concurrent first creation of the same counter
      (handled via savepoint rollback and retry).

Audit relevance:
    Allocation is logged at DEBUG with sequence_name and value.
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from pharmacy_kernel.db.base import Base
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    """

    __tablename__ = "sequence_counters"

    # e.g. "drug_code", "batch_id", "inventory_ledger", "txn:2026-01-16"
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Contract:
        Accepts a sequence name and returns the next strictly-monotonic
        integer value.  Does NOT call ``session.commit()``.

    Usage:
        seq = SequenceService(session).next_value(SequenceService.BATCH_ID)
    """

    # Well-known sequence names
    DRUG_CODE = "drug_code"
    BATCH_ID = "batch_id"
    LEDGER = "inventory_ledger"

    WELL_KNOWN = (DRUG_CODE, BATCH_ID, LEDGER)

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def daily_name(prefix: str, day) -> str:
        """Counter name for a per-day sequence, e.g. ``txn:2026-01-16``."""
        return f"{prefix}:{day.isoformat()}"

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        # populate_existing: a counter already in the identity map must be
        # refreshed with the value read under the lock.
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        1. Locks the sequence row (or creates it if it does not exist)
        2. Increments the counter
        3. Returns the new value

        Postconditions:
            - Returns an integer > 0, strictly greater than any value
              previously returned for this name.
            - The counter row stays locked until the transaction completes.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use.  Another worker may be creating the same row; the
            # savepoint keeps a losing INSERT from aborting the caller's work.
            savepoint = self._session.begin_nested()
            try:
                self._session.add(SequenceCounter(name=sequence_name, current_value=1))
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
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value without incrementing; None if the sequence is unused."""
        return self._session.execute(
            select(SequenceCounter.current_value)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: tests and migration scripts only.  Resetting a live sequence
        re-issues identifiers that already exist.
        """
        counter = self._lock_counter(sequence_name)
        if counter is None:
            self._session.add(SequenceCounter(name=sequence_name, current_value=value))
        else:
            counter.current_value = value
        self._session.flush()

    def initialize_sequences(self) -> None:
        """Create the well-known counters at zero.  Called during database setup."""
        for name in self.WELL_KNOWN:
            if self.current_value(name) is None:
                self._session.add(SequenceCounter(name=name, current_value=0))
        self._session.flush()
