"""
Pharmacy Inventory Service (``pharmacy_modules.inventory.service``).

Responsibility
--------------
The public operation surface of the inventory subsystem.  Composes the
kernel services (catalog, receipt, FEFO dispense, auditor) and selectors
into one facade and owns the transaction boundary of every mutating call.
It contains no business rules of its own.

Architecture
------------
Layer: **Modules** -- stateful orchestration wrapper over ``pharmacy_kernel``.
Translates a ``PharmacyConfig`` into kernel constructor arguments so the
kernel never imports configuration.

Invariants
----------
- Each mutating method is one atomic unit: kernel services only flush;
  this service calls ``session.commit()`` on success and
  ``session.rollback()`` on any failure before re-raising.
- Storage-level conflicts (``StaleDataError`` from the batch version
  column, PostgreSQL serialization failures and deadlocks) surface as
  ``ConcurrentModificationError``, the only error callers may retry.
- Every result is a frozen DTO; ORM instances never leave the kernel.

Usage::

    service = PharmacyInventoryService(session, clock=SystemClock())
    drug = service.create_drug(name="Paracetamol", form="Tablet",
                               strength="500mg", reorder_level=50,
                               created_by="pharmacist")
    service.receive_batch(drug_ref=drug.code, quantity=100,
                          expiry_date="2026-01-10", unit_cost="2.50",
                          received_by="pharmacist")
    result = service.dispense(drug_ref=drug.code, quantity=8,
                              performed_by="pharmacist",
                              related_type="prescription", related_id="RX-1")
"""

from __future__ import annotations

from collections.abc import Iterator
from contextlib import contextmanager
from datetime import date
from decimal import Decimal
from typing import Any
from uuid import UUID

from sqlalchemy.exc import DBAPIError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from pharmacy_config import PharmacyConfig, get_active_config
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.dtos import (
    BatchInfo,
    ConservationReport,
    DispenseResult,
    DrugInfo,
    DrugStockLevel,
    ExpiringBatch,
    LedgerEntryView,
    TransactionType,
)
from pharmacy_kernel.exceptions import ConcurrentModificationError
from pharmacy_kernel.logging_config import LogContext, get_logger
from pharmacy_kernel.selectors.batch_selector import BatchSelector, FefoBatches
from pharmacy_kernel.selectors.drug_selector import DrugSelector
from pharmacy_kernel.selectors.ledger_selector import LedgerSelector
from pharmacy_kernel.selectors.stock_selector import StockSelector
from pharmacy_kernel.services.auditor_service import AuditorService
from pharmacy_kernel.services.batch_service import BatchService
from pharmacy_kernel.services.catalog_service import CatalogService
from pharmacy_kernel.services.dispense_service import DispenseService
from pharmacy_kernel.services.ledger_writer import LedgerWriter
from pharmacy_kernel.services.sequence_service import SequenceService

logger = get_logger("modules.inventory.service")

# SQLSTATEs PostgreSQL uses for serialization_failure and deadlock_detected
_RETRYABLE_PGCODES = frozenset({"40001", "40P01"})


def _is_retryable_db_error(exc: DBAPIError) -> bool:
    return getattr(exc.orig, "pgcode", None) in _RETRYABLE_PGCODES


class PharmacyInventoryService:
    """
    Orchestrates catalog, receipt, dispense and reporting operations.

    Contract
    --------
    Mutating methods commit on success and roll back on failure.  Read
    methods never commit; they run in whatever transaction the session is
    in and take no locks.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        config: PharmacyConfig | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._config = config or get_active_config()
        tz = self._config.tzinfo

        sequences = SequenceService(session)
        ledger = LedgerWriter(session, self._clock, tz=tz)

        self._catalog = CatalogService(session, sequence_service=sequences)
        self._batches = BatchService(
            session,
            self._clock,
            tz=tz,
            reject_expired_receipts=self._config.reject_expired_receipts,
            ledger_writer=ledger,
            sequence_service=sequences,
        )
        self._dispenser = DispenseService(
            session,
            self._clock,
            tz=tz,
            exclude_expired=self._config.exclude_expired_from_dispense,
            ledger_writer=ledger,
        )
        self._auditor = AuditorService(session)

        self._drug_selector = DrugSelector(session)
        self._batch_selector = BatchSelector(session)
        self._ledger_selector = LedgerSelector(session)
        self._stock_selector = StockSelector(
            session,
            clock=self._clock,
            tz=tz,
            critical_ratio=self._config.critical_stock_ratio,
            expiry_critical_days=self._config.expiry_critical_days,
            expiry_warning_days=self._config.expiry_alert_days,
        )

    @property
    def config(self) -> PharmacyConfig:
        return self._config

    # =========================================================================
    # Transaction boundary
    # =========================================================================

    @contextmanager
    def _atomic(
        self,
        operation: str,
        entity_type: str,
        entity_id: Any,
        actor: str | None = None,
    ) -> Iterator[None]:
        with LogContext.bind(actor_id=actor):
            try:
                yield
                self._session.commit()
            except StaleDataError as exc:
                self._session.rollback()
                logger.warning(
                    "concurrent_modification_detected",
                    extra={"operation": operation, "entity_type": entity_type,
                           "entity_id": str(entity_id)},
                )
                raise ConcurrentModificationError(entity_type, str(entity_id)) from exc
            except DBAPIError as exc:
                self._session.rollback()
                if _is_retryable_db_error(exc):
                    logger.warning(
                        "concurrent_modification_detected",
                        extra={"operation": operation, "entity_type": entity_type,
                               "entity_id": str(entity_id)},
                    )
                    raise ConcurrentModificationError(entity_type, str(entity_id)) from exc
                logger.warning(
                    "inventory_operation_rolled_back",
                    extra={"operation": operation},
                    exc_info=True,
                )
                raise
            except Exception as exc:
                self._session.rollback()
                logger.warning(
                    "inventory_operation_rolled_back",
                    extra={"operation": operation, "error_code": getattr(exc, "code", None)},
                    exc_info=True,
                )
                raise

    # =========================================================================
    # Catalog
    # =========================================================================

    def create_drug(
        self,
        *,
        name: str,
        form: str,
        created_by: str,
        code: str | None = None,
        generic_name: str | None = None,
        strength: str | None = None,
        reorder_level: int = 0,
        is_active: bool = True,
    ) -> DrugInfo:
        with self._atomic("create_drug", "Drug", code or name, actor=created_by):
            return self._catalog.create_drug(
                name=name,
                form=form,
                created_by=created_by,
                code=code,
                generic_name=generic_name,
                strength=strength,
                reorder_level=reorder_level,
                is_active=is_active,
            )

    def update_drug(
        self,
        drug_ref: UUID | str,
        fields: dict[str, Any],
        updated_by: str,
    ) -> DrugInfo:
        with self._atomic("update_drug", "Drug", drug_ref, actor=updated_by):
            return self._catalog.update_drug(drug_ref, fields, updated_by)

    def deactivate_drug(self, drug_ref: UUID | str, updated_by: str) -> DrugInfo:
        with self._atomic("deactivate_drug", "Drug", drug_ref, actor=updated_by):
            return self._catalog.set_active(drug_ref, False, updated_by)

    def activate_drug(self, drug_ref: UUID | str, updated_by: str) -> DrugInfo:
        with self._atomic("activate_drug", "Drug", drug_ref, actor=updated_by):
            return self._catalog.set_active(drug_ref, True, updated_by)

    def get_drug(self, drug_ref: UUID | str) -> DrugInfo:
        return self._drug_selector.get_drug(drug_ref)

    def list_drugs(self, active_only: bool = False) -> list[DrugInfo]:
        return self._drug_selector.list_drugs(active_only=active_only)

    def search_drugs(self, term: str, active_only: bool = True) -> list[DrugInfo]:
        return self._drug_selector.search(term, active_only=active_only)

    # =========================================================================
    # Receipts
    # =========================================================================

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
        Receive stock as a new batch with one ``receive`` ledger row.

        Raises:
            DrugNotFoundError, InvalidQuantityError, InvalidCostError,
            InvalidExpiryError, InvalidFieldError.  Nothing is written.
        """
        with self._atomic("receive_batch", "Drug", drug_ref, actor=received_by):
            return self._batches.receive_batch(
                drug_ref=drug_ref,
                expiry_date=expiry_date,
                unit_cost=unit_cost,
                received_by=received_by,
                quantity=quantity,
                lot_number=lot_number,
                units_per_carton=units_per_carton,
                cartons_received=cartons_received,
                supplier=supplier,
                notes=notes,
            )

    # =========================================================================
    # Dispensing
    # =========================================================================

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
        FEFO dispense across the drug's batches.

        Raises:
            InsufficientStockError: Nothing is written.
            ConcurrentModificationError: A concurrent writer won; safe to retry.
        """
        with self._atomic("dispense", "DrugBatch", drug_ref, actor=performed_by):
            return self._dispenser.dispense(
                drug_ref=drug_ref,
                quantity=quantity,
                performed_by=performed_by,
                related_type=related_type,
                related_id=related_id,
                notes=notes,
            )

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
        with self._atomic("dispense_from_batch", "DrugBatch", batch_ref, actor=performed_by):
            return self._dispenser.dispense_from_batch(
                batch_ref=batch_ref,
                quantity=quantity,
                performed_by=performed_by,
                related_type=related_type,
                related_id=related_id,
                notes=notes,
            )

    def adjust(
        self,
        *,
        batch_ref: UUID | str,
        delta: int,
        reason: str,
        performed_by: str,
    ) -> LedgerEntryView:
        with self._atomic("adjust", "DrugBatch", batch_ref, actor=performed_by):
            return self._dispenser.adjust(
                batch_ref=batch_ref,
                delta=delta,
                reason=reason,
                performed_by=performed_by,
            )

    # =========================================================================
    # Batches and stock
    # =========================================================================

    def get_batch(self, batch_ref: UUID | str) -> BatchInfo:
        return self._batch_selector.get_batch(batch_ref)

    def list_batches(
        self,
        drug_ref: UUID | str | None = None,
        include_empty: bool = True,
    ) -> list[BatchInfo]:
        return self._batch_selector.list_batches(drug_ref, include_empty=include_empty)

    def get_batches_fefo(self, drug_ref: UUID | str) -> FefoBatches:
        return self._batch_selector.get_batches_fefo(drug_ref)

    def stock_on_hand(self, drug_ref: UUID | str) -> int:
        return self._stock_selector.stock_on_hand(drug_ref)

    def all_drugs_with_stock(self) -> list[DrugStockLevel]:
        return self._stock_selector.all_drugs_with_stock()

    def low_stock_drugs(self) -> list[DrugStockLevel]:
        return self._stock_selector.low_stock_drugs()

    def out_of_stock_drugs(self) -> list[DrugStockLevel]:
        return self._stock_selector.out_of_stock_drugs()

    def expiring_soon(self, threshold_days: int | None = None) -> list[ExpiringBatch]:
        if threshold_days is None:
            threshold_days = self._config.expiry_alert_days
        return self._stock_selector.expiring_soon(threshold_days)

    def inventory_value(self) -> Decimal:
        return self._stock_selector.inventory_value()

    # =========================================================================
    # Ledger and audit
    # =========================================================================

    def list_ledger(
        self,
        drug_ref: UUID | str | None = None,
        batch_ref: UUID | str | None = None,
        transaction_type: TransactionType | str | None = None,
        limit: int | None = None,
    ) -> list[LedgerEntryView]:
        return self._ledger_selector.list_entries(
            drug_ref=drug_ref,
            batch_ref=batch_ref,
            transaction_type=transaction_type,
            limit=limit,
        )

    def get_ledger_entry(self, transaction_id: str) -> LedgerEntryView:
        return self._ledger_selector.get_entry(transaction_id)

    def entries_for_related(self, related_type: str, related_id: str) -> list[LedgerEntryView]:
        return self._ledger_selector.entries_for_related(related_type, related_id)

    def verify_conservation(self, drug_ref: UUID | str | None = None) -> ConservationReport:
        return self._auditor.verify_conservation(drug_ref)
