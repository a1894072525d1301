"""
BatchService -- receives stock into new expiry-dated batches.

Responsibility:
    Validates a receipt, creates the DrugBatch row and appends its single
    ``receive`` ledger entry, all within the caller's transaction.

Architecture position:
    Kernel > Services.  Flush-only.  Uses LedgerWriter for the ledger row.

Invariants enforced:
    - Every batch starts with exactly one ledger row: receive, +quantity,
      before 0, after quantity.  Batch and ledger agree from the first flush.
    - When both carton fields are given, quantity = units_per_carton x
      cartons_received.  An explicit quantity that disagrees is rejected.
    - Batch ids (``BATCH`` + 6 digits) come from the locked ``batch_id``
      counter.

Failure modes (all raised before any row is written):
    - DrugNotFoundError, InvalidQuantityError, InvalidCostError,
      InvalidExpiryError.
"""

import math
from datetime import date, datetime, tzinfo
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.clock import Clock
from pharmacy_kernel.domain.dtos import BatchInfo, TransactionType
from pharmacy_kernel.exceptions import (
    DrugNotFoundError,
    InvalidCostError,
    InvalidExpiryError,
    InvalidFieldError,
    InvalidQuantityError,
)
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.selectors.batch_selector import to_batch_info
from pharmacy_kernel.selectors.drug_selector import drug_ref_clause
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.services.ledger_writer import LedgerWriter
from pharmacy_kernel.services.sequence_service import SequenceService

logger = get_logger("services.batch")

BATCH_ID_PREFIX = "BATCH"


def parse_expiry(value: Any) -> date:
    """Accept a date, a datetime (its date part) or an ISO ``YYYY-MM-DD`` string."""
    if value is None:
        raise InvalidExpiryError(value, "expiry date is required")
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return date.fromisoformat(value.strip())
        except ValueError:
            raise InvalidExpiryError(value, "not an ISO date (YYYY-MM-DD)")
    raise InvalidExpiryError(value, "not a date")


def parse_unit_cost(value: Any) -> Decimal:
    if value is None or isinstance(value, bool):
        raise InvalidCostError(value)
    if isinstance(value, float) and not math.isfinite(value):
        raise InvalidCostError(value)
    try:
        cost = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise InvalidCostError(value)
    if not cost.is_finite() or cost < 0:
        raise InvalidCostError(value)
    return cost


def _positive_int(field: str, value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantityError(value, f"{field} must be an integer")
    if value <= 0:
        raise InvalidQuantityError(value, f"{field} must be positive")
    return value


def resolve_quantity(
    quantity: int | None,
    units_per_carton: int | None,
    cartons_received: int | None,
) -> int:
    """
    Final received quantity.

    Carton fields win when both are present; a conflicting explicit
    quantity is an error rather than being silently overridden.
    """
    if units_per_carton is not None:
        _positive_int("units_per_carton", units_per_carton)
    if cartons_received is not None:
        _positive_int("cartons_received", cartons_received)

    if units_per_carton is not None and cartons_received is not None:
        derived = units_per_carton * cartons_received
        if quantity is not None and quantity != derived:
            raise InvalidQuantityError(
                quantity,
                f"does not match {units_per_carton} units x "
                f"{cartons_received} cartons = {derived}",
            )
        return derived

    if quantity is None:
        raise InvalidQuantityError(
            quantity, "quantity is required unless both carton fields are given"
        )
    return _positive_int("quantity", quantity)


class BatchService(BaseService[DrugBatch]):
    """Stock receipt."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        tz: tzinfo | None = None,
        reject_expired_receipts: bool = False,
        ledger_writer: LedgerWriter | None = None,
        sequence_service: SequenceService | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._tz = tz
        self._reject_expired = reject_expired_receipts
        self._sequences = sequence_service or SequenceService(session)
        self._ledger = ledger_writer or LedgerWriter(session, clock, tz=tz)

    def receive_batch(
        self,
        *,
        drug_ref: UUID | str,
        expiry_date: date | str,
        unit_cost: Decimal | int | str,
        received_by: str,
        quantity: int | None = None,
        lot_number: str | None = None,
        units_per_carton: int | None = None,
        cartons_received: int | None = None,
        supplier: str | None = None,
        notes: str | None = None,
    ) -> BatchInfo:
        """
        Receive stock as a new batch.

        Postconditions:
            - One new DrugBatch with quantity_on_hand == quantity_received.
            - One new ``receive`` LedgerEntry referencing it.
        """
        drug = self.session.scalars(
            select(Drug).where(drug_ref_clause(drug_ref))
        ).one_or_none()
        if drug is None:
            raise DrugNotFoundError(str(drug_ref))

        qty = resolve_quantity(quantity, units_per_carton, cartons_received)
        cost = parse_unit_cost(unit_cost)
        expiry = parse_expiry(expiry_date)
        if not isinstance(received_by, str) or not received_by.strip():
            raise InvalidFieldError("received_by", "must be a non-empty string")

        today = self._clock.today(self._tz)
        if expiry < today:
            if self._reject_expired:
                raise InvalidExpiryError(expiry, f"already expired (today is {today})")
            logger.warning(
                "batch_received_already_expired",
                extra={"drug_code": drug.code, "expiry_date": expiry, "today": today},
            )
        if not drug.is_active:
            logger.warning("batch_received_for_inactive_drug", extra={"drug_code": drug.code})

        seq = self._sequences.next_value(SequenceService.BATCH_ID)
        batch = DrugBatch(
            batch_id=f"{BATCH_ID_PREFIX}{seq:06d}",
            drug_id=drug.id,
            lot_number=lot_number,
            expiry_date=expiry,
            quantity_received=qty,
            quantity_on_hand=qty,
            unit_cost=cost,
            units_per_carton=units_per_carton,
            cartons_received=cartons_received,
            supplier=supplier,
            received_at=self._clock.now(),
            received_by=received_by,
            created_by=received_by,
        )
        self.session.add(batch)
        self.session.flush()

        entry = self._ledger.append(
            batch=batch,
            transaction_type=TransactionType.RECEIVE,
            quantity=qty,
            quantity_before=0,
            performed_by=received_by,
            notes=notes,
        )

        logger.info(
            "batch_received",
            extra={
                "batch_code": batch.batch_id,
                "drug_code": drug.code,
                "quantity": qty,
                "unit_cost": cost,
                "expiry_date": expiry,
                "transaction_id": entry.transaction_id,
            },
        )
        return to_batch_info(batch, drug.code, drug.name)
