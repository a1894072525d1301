"""
Module: pharmacy_kernel.models.ledger
Responsibility: ORM persistence for the inventory ledger -- the append-only
    record of every quantity movement.  The audit and valuation source of truth.
Architecture position: Kernel > Models.  May import from db/ and domain/.

Invariants enforced:
    - Append-only: no UPDATE, no DELETE, ever (db/immutability.py +
      PostgreSQL trigger trg_inventory_ledger_immutability_*).
    - transaction_id and seq are unique (DB constraints).
    - quantity_after = quantity_before + quantity (DB check constraint).
    - quantity != 0 (DB check constraint).

Failure modes:
    - IntegrityError on a duplicate transaction_id or seq.
    - ImmutabilityViolationError on any ORM update/delete.

Audit relevance:
    The ledger is the only place a stock movement is explained: who, when,
    which batch, why (notes / related order).  Batch quantities are a cached
    projection of it and can be re-derived at any time.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from pharmacy_kernel.db.base import Base, UUIDString
from pharmacy_kernel.domain.dtos import TransactionType


class LedgerEntry(Base):
    """
    One immutable quantity movement.

    Contract:
        Created only by LedgerWriter.append().  ``quantity`` is signed:
        positive for receipts, negative for dispenses, either sign for
        adjustments.  ``quantity_before`` / ``quantity_after`` are scoped to
        the referenced batch.  ``total_value`` = quantity x unit_cost and
        therefore carries the same sign as ``quantity``.

    Guarantees:
        - ``seq`` is allocated from the locked ``inventory_ledger`` counter
          and gives a total newest-first order independent of clock skew.

    Non-goals:
        - Drug-level running balances are not stored; they are derived.
    """

    __tablename__ = "inventory_ledger"

    __table_args__ = (
        CheckConstraint("quantity <> 0", name="ck_ledger_quantity_nonzero"),
        CheckConstraint(
            "quantity_after = quantity_before + quantity",
            name="ck_ledger_quantity_arithmetic",
        ),
        Index("idx_ledger_drug_seq", "drug_id", "seq"),
        Index("idx_ledger_batch_seq", "batch_id", "seq"),
        Index("idx_ledger_related", "related_type", "related_id"),
    )

    # Human-readable id, e.g. TXN2601160017423
    transaction_id: Mapped[str] = mapped_column(
        String(32), nullable=False, unique=True,
    )

    # Monotonic ordering
    seq: Mapped[int] = mapped_column(nullable=False, unique=True)

    drug_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("drugs.id"),
        nullable=False,
    )

    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("drug_batches.id"),
        nullable=True,
    )

    transaction_type: Mapped[TransactionType] = mapped_column(
        String(10),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    quantity_before: Mapped[int] = mapped_column(nullable=False)

    quantity_after: Mapped[int] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    total_value: Mapped[Decimal] = mapped_column(nullable=False)

    # Originating document, e.g. ("pharmacy_order", "ORD-123")
    related_type: Mapped[str | None] = mapped_column(String(50), nullable=True)

    related_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.transaction_id} {self.transaction_type} "
            f"qty={self.quantity:+d}>"
        )
