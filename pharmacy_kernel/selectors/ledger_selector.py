"""
LedgerSelector -- read access to the inventory ledger.

Every row is returned denormalized with the owning drug's code, name and
strength and the batch display id, newest first (``seq`` descending).
"""

from uuid import UUID

from sqlalchemy import Select, select

from pharmacy_kernel.domain.dtos import LedgerEntryView, TransactionType
from pharmacy_kernel.exceptions import LedgerEntryNotFoundError
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.models.ledger import LedgerEntry
from pharmacy_kernel.selectors.base import BaseSelector
from pharmacy_kernel.selectors.batch_selector import batch_ref_clause
from pharmacy_kernel.selectors.drug_selector import drug_ref_clause


def _view_query() -> Select:
    return (
        select(
            LedgerEntry,
            Drug.code,
            Drug.name,
            Drug.strength,
            DrugBatch.batch_id,
        )
        .join(Drug, Drug.id == LedgerEntry.drug_id)
        .outerjoin(DrugBatch, DrugBatch.id == LedgerEntry.batch_id)
    )


def _to_view(row) -> LedgerEntryView:
    entry, drug_code, drug_name, drug_strength, batch_code = row
    return LedgerEntryView(
        transaction_id=entry.transaction_id,
        seq=entry.seq,
        transaction_type=TransactionType(entry.transaction_type),
        drug_id=entry.drug_id,
        drug_code=drug_code,
        drug_name=drug_name,
        drug_strength=drug_strength,
        batch_id=entry.batch_id,
        batch_code=batch_code,
        quantity=entry.quantity,
        quantity_before=entry.quantity_before,
        quantity_after=entry.quantity_after,
        unit_cost=entry.unit_cost,
        total_value=entry.total_value,
        related_type=entry.related_type,
        related_id=entry.related_id,
        performed_by=entry.performed_by,
        notes=entry.notes,
        created_at=entry.created_at,
    )


class LedgerSelector(BaseSelector[LedgerEntry]):
    """Ledger queries.  Pure reads."""

    def list_entries(
        self,
        drug_ref: UUID | str | None = None,
        batch_ref: UUID | str | None = None,
        transaction_type: TransactionType | str | None = None,
        limit: int | None = None,
    ) -> list[LedgerEntryView]:
        """Ledger rows newest-first, optionally filtered."""
        stmt = _view_query().order_by(LedgerEntry.seq.desc())
        if drug_ref is not None:
            stmt = stmt.where(drug_ref_clause(drug_ref))
        if batch_ref is not None:
            stmt = stmt.where(batch_ref_clause(batch_ref))
        if transaction_type is not None:
            stmt = stmt.where(
                LedgerEntry.transaction_type == TransactionType(transaction_type).value
            )
        if limit is not None:
            stmt = stmt.limit(limit)
        return [_to_view(row) for row in self.session.execute(stmt)]

    def get_entry(self, transaction_id: str) -> LedgerEntryView:
        """
        Raises:
            LedgerEntryNotFoundError: If no row has this transaction id.
        """
        row = self.session.execute(
            _view_query().where(LedgerEntry.transaction_id == transaction_id)
        ).one_or_none()
        if row is None:
            raise LedgerEntryNotFoundError(transaction_id)
        return _to_view(row)

    def entries_for_related(self, related_type: str, related_id: str) -> list[LedgerEntryView]:
        """All movements caused by one originating document, oldest first."""
        stmt = (
            _view_query()
            .where(LedgerEntry.related_type == related_type)
            .where(LedgerEntry.related_id == related_id)
            .order_by(LedgerEntry.seq)
        )
        return [_to_view(row) for row in self.session.execute(stmt)]
