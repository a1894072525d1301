"""
DispenseService -- the FEFO dispense engine.

Responsibility:
    Removes stock from batches and records each removal in the ledger:
    ``dispense`` (FEFO across a drug's batches), ``dispense_from_batch``
    (manual override of FEFO) and ``adjust`` (signed correction with a
    mandatory reason).

Architecture position:
    Kernel > Services.  Flush-only; PharmacyInventoryService owns the
    transaction, so a dispense touching three batches commits or rolls back
    as one unit.

Invariants enforced:
    - Non-negativity: a movement that would take a batch below zero is
      rejected before any row is written.
    - Atomicity under shortfall: the full FEFO plan is computed against
      locked rows first; InsufficientStockError leaves batches and ledger
      untouched.
    - FEFO order: expiry ascending, then received_at, then batch_id
      (domain/fefo.py).  Only batches with quantity_on_hand > 0 take part.
    - Every touched batch gets exactly one ledger row whose quantity_after
      equals the batch's new quantity_on_hand.

Concurrency:
    Candidate batch rows are locked with SELECT ... FOR UPDATE in FEFO
    order, so concurrent dispensers of the same drug serialize and always
    acquire locks in the same order.  populate_existing refreshes rows
    already in the identity map with the values read under the lock.  The
    batch ``version`` column is the optimistic backstop: a write that still
    races raises StaleDataError, which the module service reports as
    ConcurrentModificationError.

Failure modes:
    - InvalidQuantityError, DrugNotFoundError, BatchNotFoundError,
      InsufficientStockError, InvalidAdjustmentError.
"""

from datetime import tzinfo
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.clock import Clock
from pharmacy_kernel.domain.dtos import (
    BatchConsumption,
    DispenseResult,
    LedgerEntryView,
    TransactionType,
)
from pharmacy_kernel.domain.fefo import plan_fefo
from pharmacy_kernel.exceptions import (
    BatchNotFoundError,
    DrugNotFoundError,
    InsufficientStockError,
    InvalidAdjustmentError,
    InvalidFieldError,
    InvalidQuantityError,
)
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.selectors.batch_selector import FEFO_ORDER, batch_ref_clause
from pharmacy_kernel.selectors.drug_selector import drug_ref_clause
from pharmacy_kernel.selectors.ledger_selector import LedgerSelector
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.services.ledger_writer import LedgerWriter

logger = get_logger("services.dispense")


def _require_positive(quantity) -> int:
    if isinstance(quantity, bool) or not isinstance(quantity, int):
        raise InvalidQuantityError(quantity, "quantity must be an integer")
    if quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


def _require_actor(performed_by) -> None:
    if not isinstance(performed_by, str) or not performed_by.strip():
        raise InvalidFieldError("performed_by", "must be a non-empty string")


class DispenseService(BaseService[DrugBatch]):
    """Stock removal and correction."""

    def __init__(
        self,
        session: Session,
        clock: Clock,
        tz: tzinfo | None = None,
        exclude_expired: bool = False,
        ledger_writer: LedgerWriter | None = None,
    ):
        super().__init__(session)
        self._clock = clock
        self._tz = tz
        self._exclude_expired = exclude_expired
        self._ledger = ledger_writer or LedgerWriter(session, clock, tz=tz)

    # ------------------------------------------------------------------
    # Locking reads
    # ------------------------------------------------------------------

    def _load_drug(self, drug_ref: UUID | str) -> Drug:
        drug = self.session.scalars(
            select(Drug).where(drug_ref_clause(drug_ref))
        ).one_or_none()
        if drug is None:
            raise DrugNotFoundError(str(drug_ref))
        return drug

    def _lock_candidates(self, drug: Drug) -> list[DrugBatch]:
        stmt = (
            select(DrugBatch)
            .where(DrugBatch.drug_id == drug.id)
            .where(DrugBatch.quantity_on_hand > 0)
            .order_by(*FEFO_ORDER)
            .with_for_update()
            .execution_options(populate_existing=True)
        )
        if self._exclude_expired:
            stmt = stmt.where(DrugBatch.expiry_date >= self._clock.today(self._tz))
        return list(self.session.scalars(stmt))

    def _lock_batch(self, batch_ref: UUID | str) -> DrugBatch:
        batch = self.session.scalars(
            select(DrugBatch)
            .where(batch_ref_clause(batch_ref))
            .with_for_update()
            .execution_options(populate_existing=True)
        ).one_or_none()
        if batch is None:
            raise BatchNotFoundError(str(batch_ref))
        return batch

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def _take(
        self,
        batch: DrugBatch,
        take: int,
        performed_by: str,
        related_type: str | None,
        related_id: str | None,
        notes: str | None,
    ) -> BatchConsumption:
        if batch.expiry_date < self._clock.today(self._tz):
            logger.warning(
                "dispensing_expired_batch",
                extra={"batch_code": batch.batch_id, "expiry_date": batch.expiry_date},
            )
        before = batch.quantity_on_hand
        batch.quantity_on_hand = before - take
        batch.updated_by = performed_by
        self.session.flush()

        entry = self._ledger.append(
            batch=batch,
            transaction_type=TransactionType.DISPENSE,
            quantity=-take,
            quantity_before=before,
            performed_by=performed_by,
            related_type=related_type,
            related_id=related_id,
            notes=notes,
        )
        return BatchConsumption(
            batch_id=batch.id,
            batch_code=batch.batch_id,
            expiry_date=batch.expiry_date,
            quantity=take,
            unit_cost=batch.unit_cost,
            transaction_id=entry.transaction_id,
        )

    def dispense(
        self,
        *,
        drug_ref: UUID | str,
        quantity: int,
        performed_by: str,
        related_type: str | None = None,
        related_id: str | None = None,
        notes: str | None = None,
    ) -> DispenseResult:
        """
        Dispense ``quantity`` units of a drug in FEFO order.

        Raises:
            InvalidQuantityError: quantity <= 0.
            DrugNotFoundError: No such drug.
            InsufficientStockError: Available stock < quantity.  No mutation.
        """
        quantity = _require_positive(quantity)
        _require_actor(performed_by)
        drug = self._load_drug(drug_ref)

        with LogContext.bind(drug_id=str(drug.id)):
            candidates = self._lock_candidates(drug)
            plan = plan_fefo(candidates, quantity)
            if not plan.is_satisfiable:
                logger.warning(
                    "stock_insufficient",
                    extra={
                        "drug_code": drug.code,
                        "requested": quantity,
                        "available": plan.available,
                    },
                )
                raise InsufficientStockError(
                    drug_id=str(drug.id),
                    requested=quantity,
                    available=plan.available,
                )

            consumptions = tuple(
                self._take(batch, take, performed_by, related_type, related_id, notes)
                for batch, take in plan.allocations
            )
            result = DispenseResult(drug_id=drug.id, consumptions=consumptions)

            logger.info(
                "dispense_completed",
                extra={
                    "drug_code": drug.code,
                    "quantity": quantity,
                    "batches_touched": len(consumptions),
                    "total_value": result.total_value,
                    "related_type": related_type,
                    "related_id": related_id,
                },
            )
        return result

    def dispense_from_batch(
        self,
        *,
        batch_ref: UUID | str,
        quantity: int,
        performed_by: str,
        related_type: str | None = None,
        related_id: str | None = None,
        notes: str | None = None,
    ) -> DispenseResult:
        """
        Dispense from one named batch, bypassing FEFO.

        Raises:
            InvalidQuantityError: quantity <= 0.
            BatchNotFoundError: No such batch.
            InsufficientStockError: Batch holds fewer than quantity.
        """
        quantity = _require_positive(quantity)
        _require_actor(performed_by)
        batch = self._lock_batch(batch_ref)

        with LogContext.bind(drug_id=str(batch.drug_id), batch_id=batch.batch_id):
            if batch.quantity_on_hand < quantity:
                logger.warning(
                    "stock_insufficient",
                    extra={
                        "batch_code": batch.batch_id,
                        "requested": quantity,
                        "available": batch.quantity_on_hand,
                    },
                )
                raise InsufficientStockError(
                    drug_id=str(batch.drug_id),
                    requested=quantity,
                    available=batch.quantity_on_hand,
                    batch_id=batch.batch_id,
                )

            consumption = self._take(
                batch, quantity, performed_by, related_type, related_id, notes
            )
            logger.info(
                "dispense_from_batch_completed",
                extra={
                    "batch_code": batch.batch_id,
                    "quantity": quantity,
                    "quantity_after": batch.quantity_on_hand,
                },
            )
        return DispenseResult(drug_id=batch.drug_id, consumptions=(consumption,))

    def adjust(
        self,
        *,
        batch_ref: UUID | str,
        delta: int,
        reason: str,
        performed_by: str,
    ) -> LedgerEntryView:
        """
        Apply a signed correction to one batch (stock count, breakage, ...).

        Raises:
            InvalidQuantityError: delta is zero or not an integer.
            BatchNotFoundError: No such batch.
            InvalidFieldError: Blank performed_by.
            InvalidAdjustmentError: Blank reason, a positive delta on an empty
                batch, or the batch would go below zero.
        """
        _require_actor(performed_by)
        if isinstance(delta, bool) or not isinstance(delta, int):
            raise InvalidQuantityError(delta, "delta must be an integer")
        if delta == 0:
            raise InvalidQuantityError(delta, "adjustment delta cannot be zero")

        batch = self._lock_batch(batch_ref)
        before = batch.quantity_on_hand

        if not isinstance(reason, str) or not reason.strip():
            raise InvalidAdjustmentError(batch.batch_id, delta, before, "a reason is required")
        if before == 0 and delta > 0:
            logger.warning(
                "adjustment_rejected_empty_batch",
                extra={"batch_code": batch.batch_id, "delta": delta},
            )
            raise InvalidAdjustmentError(
                batch.batch_id, delta, before, "batch is empty; receive a new batch"
            )
        if before + delta < 0:
            logger.warning(
                "adjustment_rejected_negative",
                extra={"batch_code": batch.batch_id, "delta": delta, "on_hand": before},
            )
            raise InvalidAdjustmentError(
                batch.batch_id, delta, before, "would leave the batch below zero"
            )

        batch.quantity_on_hand = before + delta
        batch.updated_by = performed_by
        self.session.flush()

        entry = self._ledger.append(
            batch=batch,
            transaction_type=TransactionType.ADJUST,
            quantity=delta,
            quantity_before=before,
            performed_by=performed_by,
            notes=reason.strip(),
        )
        logger.info(
            "stock_adjusted",
            extra={
                "batch_code": batch.batch_id,
                "delta": delta,
                "quantity_after": batch.quantity_on_hand,
                "transaction_id": entry.transaction_id,
            },
        )
        return LedgerSelector(self.session).get_entry(entry.transaction_id)
