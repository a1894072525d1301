"""
BatchSelector -- read access to drug batches, including the FEFO view.

The FEFO view is what a pharmacist sees before dispensing: non-empty batches
of one drug in the order the dispense engine will consume them.  It is a
lazy, finite and restartable iterable; each iteration re-reads the table,
so it always reflects committed stock at that moment.
"""

from typing import Iterator
from uuid import UUID

from sqlalchemy import Select, select
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.dtos import BatchInfo
from pharmacy_kernel.exceptions import BatchNotFoundError, DrugNotFoundError
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.selectors.base import BaseSelector, as_uuid
from pharmacy_kernel.selectors.drug_selector import drug_ref_clause

# SQL form of domain.fefo.fefo_sort_key
FEFO_ORDER = (DrugBatch.expiry_date, DrugBatch.received_at, DrugBatch.batch_id)


def to_batch_info(batch: DrugBatch, drug_code: str, drug_name: str) -> BatchInfo:
    return BatchInfo(
        id=batch.id,
        batch_id=batch.batch_id,
        drug_id=batch.drug_id,
        drug_code=drug_code,
        drug_name=drug_name,
        lot_number=batch.lot_number,
        expiry_date=batch.expiry_date,
        quantity_received=batch.quantity_received,
        quantity_on_hand=batch.quantity_on_hand,
        unit_cost=batch.unit_cost,
        units_per_carton=batch.units_per_carton,
        cartons_received=batch.cartons_received,
        supplier=batch.supplier,
        received_at=batch.received_at,
        received_by=batch.received_by,
    )


def batch_ref_clause(ref: UUID | str):
    """WHERE clause matching a batch by UUID or by display id."""
    batch_uuid = as_uuid(ref)
    if batch_uuid is not None:
        return DrugBatch.id == batch_uuid
    return DrugBatch.batch_id == str(ref)


def _with_drug() -> Select:
    # populate_existing: batches already in the identity map may be stale
    # when another session has committed since they were loaded.
    return (
        select(DrugBatch, Drug.code, Drug.name)
        .join(Drug, Drug.id == DrugBatch.drug_id)
        .execution_options(populate_existing=True)
    )


class FefoBatches:
    """Restartable FEFO view over one drug's non-empty batches."""

    def __init__(self, session: Session, drug_id: UUID):
        self._session = session
        self._drug_id = drug_id

    def __iter__(self) -> Iterator[BatchInfo]:
        stmt = (
            _with_drug()
            .where(DrugBatch.drug_id == self._drug_id)
            .where(DrugBatch.quantity_on_hand > 0)
            .order_by(*FEFO_ORDER)
        )
        for batch, code, drug_name in self._session.execute(stmt):
            yield to_batch_info(batch, code, drug_name)


class BatchSelector(BaseSelector[DrugBatch]):
    """Batch queries."""

    def get_batches_fefo(self, drug_ref: UUID | str) -> FefoBatches:
        """
        Non-empty batches of a drug in FEFO order.

        Raises:
            DrugNotFoundError: If the drug does not exist.
        """
        drug_id = self.session.scalar(select(Drug.id).where(drug_ref_clause(drug_ref)))
        if drug_id is None:
            raise DrugNotFoundError(str(drug_ref))
        return FefoBatches(self.session, drug_id)

    def list_batches(
        self,
        drug_ref: UUID | str | None = None,
        include_empty: bool = True,
    ) -> list[BatchInfo]:
        """Batches (optionally of one drug), ordered by drug name then FEFO."""
        stmt = _with_drug().order_by(Drug.name, *FEFO_ORDER)
        if drug_ref is not None:
            stmt = stmt.where(drug_ref_clause(drug_ref))
        if not include_empty:
            stmt = stmt.where(DrugBatch.quantity_on_hand > 0)
        return [
            to_batch_info(batch, code, drug_name)
            for batch, code, drug_name in self.session.execute(stmt)
        ]

    def get_batch(self, batch_ref: UUID | str) -> BatchInfo:
        """
        Raises:
            BatchNotFoundError: If no batch matches.
        """
        row = self.session.execute(
            _with_drug().where(batch_ref_clause(batch_ref))
        ).one_or_none()
        if row is None:
            raise BatchNotFoundError(str(batch_ref))
        batch, code, drug_name = row
        return to_batch_info(batch, code, drug_name)
