"""
LedgerWriter -- the single write path into the inventory ledger.

Responsibility:
    Appends one immutable LedgerEntry per batch movement, assigning its
    transaction id and ordering sequence, and checking the row's arithmetic
    before it is flushed.

Architecture position:
    Kernel > Services.  Called only by BatchService (receive) and
    DispenseService (dispense, dispense_from_batch, adjust), always inside
    their atomic unit and always AFTER the batch row has been updated.

Invariants enforced:
    - quantity != 0 and its sign matches the transaction type
      (receive > 0, dispense < 0, adjust either).
    - quantity_after == quantity_before + quantity, quantity_after >= 0.
    - quantity_after equals the batch's new quantity_on_hand; the ledger
      and the batch cannot drift apart.
    - total_value == quantity x unit_cost (same sign as quantity).

Failure modes:
    - InvalidQuantityError when any of the above does not hold.  This means
      a caller bug; the enclosing transaction is rolled back by the module
      service.
"""

from datetime import tzinfo
from decimal import Decimal

from sqlalchemy.orm import Session

from pharmacy_kernel.domain.clock import Clock
from pharmacy_kernel.domain.dtos import TransactionType
from pharmacy_kernel.exceptions import InvalidQuantityError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.ledger import LedgerEntry
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.services.sequence_service import SequenceService
from pharmacy_kernel.services.transaction_id_service import TransactionIdGenerator

logger = get_logger("services.ledger_writer")


class LedgerWriter(BaseService[LedgerEntry]):
    """Appends ledger entries.  Flush-only."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        tz: tzinfo | None = None,
        id_generator: TransactionIdGenerator | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._sequences = SequenceService(session)
        self._ids = id_generator or TransactionIdGenerator(
            session, clock, tz=tz, sequence_service=self._sequences,
        )

    def append(
        self,
        *,
        batch: DrugBatch,
        transaction_type: TransactionType,
        quantity: int,
        quantity_before: int,
        performed_by: str,
        related_type: str | None = None,
        related_id: str | None = None,
        notes: str | None = None,
    ) -> LedgerEntry:
        """
        Append one movement against ``batch``.

        Preconditions:
            - ``batch.quantity_on_hand`` already reflects this movement.
        Postconditions:
            - A flushed LedgerEntry with a fresh transaction id and seq.
        """
        self._check(batch, transaction_type, quantity, quantity_before)

        unit_cost: Decimal = batch.unit_cost
        entry = LedgerEntry(
            transaction_id=self._ids.next_id(),
            seq=self._sequences.next_value(SequenceService.LEDGER),
            drug_id=batch.drug_id,
            batch_id=batch.id,
            transaction_type=transaction_type.value,
            quantity=quantity,
            quantity_before=quantity_before,
            quantity_after=quantity_before + quantity,
            unit_cost=unit_cost,
            total_value=unit_cost * quantity,
            related_type=related_type,
            related_id=related_id,
            performed_by=performed_by,
            notes=notes,
            created_at=self._clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_appended",
            extra={
                "transaction_id": entry.transaction_id,
                "transaction_type": transaction_type.value,
                "batch_code": batch.batch_id,
                "quantity": quantity,
                "quantity_after": entry.quantity_after,
                "seq": entry.seq,
            },
        )
        return entry

    @staticmethod
    def _check(
        batch: DrugBatch,
        transaction_type: TransactionType,
        quantity: int,
        quantity_before: int,
    ) -> None:
        if quantity == 0:
            raise InvalidQuantityError(quantity, "ledger movement cannot be zero")
        if transaction_type is TransactionType.RECEIVE and quantity < 0:
            raise InvalidQuantityError(quantity, "receipts must add stock")
        if transaction_type is TransactionType.DISPENSE and quantity > 0:
            raise InvalidQuantityError(quantity, "dispenses must remove stock")

        quantity_after = quantity_before + quantity
        if quantity_after < 0:
            raise InvalidQuantityError(
                quantity, f"would leave batch {batch.batch_id} at {quantity_after}"
            )
        if quantity_after != batch.quantity_on_hand:
            raise InvalidQuantityError(
                quantity,
                f"ledger quantity_after {quantity_after} does not match batch "
                f"{batch.batch_id} on hand {batch.quantity_on_hand}",
            )