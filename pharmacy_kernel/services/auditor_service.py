"""
AuditorService -- verifies that the ledger explains every batch quantity.

Responsibility:
    For each batch, compares quantity_on_hand with the sum of the signed
    quantities of its ledger rows.  The two must be equal: the ledger is the
    history, the batch column is its running total.

Architecture position:
    Kernel > Services.  Read-only; never repairs anything.  A discrepancy is
    reported (and logged at WARNING) for a human to investigate.
"""

from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.dtos import ConservationDiscrepancy, ConservationReport
from pharmacy_kernel.exceptions import DrugNotFoundError
from pharmacy_kernel.logging_config import get_logger
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.models.ledger import LedgerEntry
from pharmacy_kernel.services.base import BaseService
from pharmacy_kernel.selectors.drug_selector import drug_ref_clause

logger = get_logger("services.auditor")


class AuditorService(BaseService[DrugBatch]):
    """Quantity conservation checks."""

    def __init__(self, session: Session):
        super().__init__(session)

    def verify_conservation(self, drug_ref: UUID | str | None = None) -> ConservationReport:
        """
        Check every batch (or only one drug's batches) against its ledger.

        Raises:
            DrugNotFoundError: If ``drug_ref`` is given and does not exist.
        """
        ledger_totals = (
            select(
                LedgerEntry.batch_id.label("batch_id"),
                func.sum(LedgerEntry.quantity).label("total"),
            )
            .where(LedgerEntry.batch_id.is_not(None))
            .group_by(LedgerEntry.batch_id)
            .subquery()
        )
        stmt = (
            select(
                DrugBatch.id,
                DrugBatch.batch_id,
                DrugBatch.drug_id,
                DrugBatch.quantity_on_hand,
                func.coalesce(ledger_totals.c.total, 0),
            )
            .outerjoin(ledger_totals, ledger_totals.c.batch_id == DrugBatch.id)
            .order_by(DrugBatch.batch_id)
        )
        if drug_ref is not None:
            drug_id = self.session.scalar(select(Drug.id).where(drug_ref_clause(drug_ref)))
            if drug_id is None:
                raise DrugNotFoundError(str(drug_ref))
            stmt = stmt.where(DrugBatch.drug_id == drug_id)

        checked = 0
        discrepancies = []
        for batch_pk, batch_code, drug_id, on_hand, ledger_total in self.session.execute(stmt):
            checked += 1
            if on_hand != int(ledger_total):
                discrepancies.append(
                    ConservationDiscrepancy(
                        batch_id=batch_pk,
                        batch_code=batch_code,
                        drug_id=drug_id,
                        quantity_on_hand=on_hand,
                        ledger_total=int(ledger_total),
                    )
                )

        for d in discrepancies:
            logger.warning(
                "conservation_discrepancy",
                extra={
                    "batch_code": d.batch_code,
                    "quantity_on_hand": d.quantity_on_hand,
                    "ledger_total": d.ledger_total,
                    "difference": d.difference,
                },
            )
        logger.info(
            "conservation_verified",
            extra={"batches_checked": checked, "discrepancy_count": len(discrepancies)},
        )
        return ConservationReport(batches_checked=checked, discrepancies=tuple(discrepancies))
