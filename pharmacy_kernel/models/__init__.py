"""ORM models for the pharmacy kernel."""

from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.models.ledger import LedgerEntry, TransactionType
from pharmacy_kernel.services.sequence_service import SequenceCounter

__all__ = [
    "Drug",
    "DrugBatch",
    "LedgerEntry",
    "SequenceCounter",
    "TransactionType",
]
