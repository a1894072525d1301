"""
TransactionIdGenerator -- allocates ledger transaction ids.

Responsibility:
    Produces ``TXN`` + YYMMDD + daily sequence + random suffix identifiers
    (see domain/transaction_id.py for the format).

Architecture position:
    Kernel > Services.  Called only by LedgerWriter.

Invariants enforced:
    - Uniqueness under concurrency comes from the per-day locked counter row
      (``txn:YYYY-MM-DD`` in sequence_counters), never from counting the
      day's ledger rows.  Two workers appending at the same moment draw
      different sequence numbers.
    - The daily sequence restarts at 1 on each clinic-local day.
    - The random suffix adds unpredictability only.  The unique constraint
      on inventory_ledger.transaction_id backs all of the above.
"""

import random
from datetime import tzinfo

from sqlalchemy.orm import Session

from pharmacy_kernel.domain.clock import Clock
from pharmacy_kernel.domain.transaction_id import (
    SUFFIX_MAX,
    SUFFIX_MIN,
    format_transaction_id,
)
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.services.sequence_service import SequenceService

logger = get_logger("services.transaction_id")

DAILY_SEQUENCE_PREFIX = "txn"


class TransactionIdGenerator:
    """
    Allocates transaction ids within the caller's transaction.

    ``rng`` is injectable so tests can pin the suffix.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock,
        tz: tzinfo | None = None,
        rng: random.Random | None = None,
        sequence_service: SequenceService | None = None,
    ):
        self._clock = clock
        self._tz = tz
        self._rng = rng or random.SystemRandom()
        self._sequences = sequence_service or SequenceService(session)

    def next_id(self) -> str:
        day = self._clock.today(self._tz)
        sequence = self._sequences.next_value(
            SequenceService.daily_name(DAILY_SEQUENCE_PREFIX, day)
        )
        suffix = self._rng.randint(SUFFIX_MIN, SUFFIX_MAX)
        transaction_id = format_transaction_id(day, sequence, suffix)
        if sequence == 1000:
            logger.warning(
                "transaction_daily_sequence_widened",
                extra={"day": day, "sequence": sequence},
            )
        return transaction_id
