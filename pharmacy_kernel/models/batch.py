"""
Module: pharmacy_kernel.models.batch
Responsibility: ORM persistence for physical stock lots (expiry-dated batches).
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity_on_hand >= 0 (DB check constraint ck_drug_batches_qoh_nonneg).
    - quantity_received > 0 and unit_cost >= 0 (DB check constraints).
    - Identity fields (batch_id, drug_id, expiry_date, unit_cost,
      quantity_received, received_at) are frozen after insert
      (db/immutability.py + PostgreSQL trigger).
    - ``version`` is the optimistic-lock counter: every UPDATE is issued as
      ``... WHERE id = :id AND version = :expected``.  A stale write raises
      StaleDataError, surfaced by the module service as
      ConcurrentModificationError.

Failure modes:
    - IntegrityError on a direct write that drives quantity_on_hand below 0.
    - StaleDataError on a concurrent write that slipped past row locking.

Audit relevance:
    For every batch, quantity_on_hand equals the sum of ledger quantities
    referencing it.  AuditorService verifies this.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import TrackedBase, UUIDString

# Fields that may never change after the batch is received
BATCH_IDENTITY_FIELDS = frozenset({
    "batch_id",
    "drug_id",
    "expiry_date",
    "unit_cost",
    "quantity_received",
    "received_at",
})


class DrugBatch(TrackedBase):
    """
    One physically distinct lot of a drug.

    Contract:
        Created only by BatchService.receive_batch().  quantity_on_hand is
        mutated only by DispenseService (dispense, dispense_from_batch,
        adjust).  Never deleted.  A batch at zero is inert and never
        resurrected; new stock always arrives as a new batch.
    """

    __tablename__ = "drug_batches"

    __table_args__ = (
        CheckConstraint(
            "quantity_on_hand >= 0", name="ck_drug_batches_qoh_nonneg"
        ),
        CheckConstraint(
            "quantity_received > 0", name="ck_drug_batches_received_positive"
        ),
        CheckConstraint("unit_cost >= 0", name="ck_drug_batches_cost_nonneg"),
        # FEFO scan: drug, then expiry, then receipt time
        Index("idx_batches_fefo", "drug_id", "expiry_date", "received_at"),
        Index("idx_batches_expiry", "expiry_date"),
    )

    # Display id, e.g. BATCH000001
    batch_id: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    drug_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("drugs.id"),
        nullable=False,
    )

    lot_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    quantity_received: Mapped[int] = mapped_column(nullable=False)

    quantity_on_hand: Mapped[int] = mapped_column(nullable=False)

    unit_cost: Mapped[Decimal] = mapped_column(nullable=False)

    units_per_carton: Mapped[int | None] = mapped_column(nullable=True)

    cartons_received: Mapped[int | None] = mapped_column(nullable=True)

    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)

    received_at: Mapped[datetime] = mapped_column(nullable=False)

    received_by: Mapped[str] = mapped_column(String(100), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False)

    drug: Mapped["Drug"] = relationship(back_populates="batches")  # noqa: F821

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<DrugBatch {self.batch_id} on_hand={self.quantity_on_hand} "
            f"expiry={self.expiry_date}>"
        )

    @property
    def is_empty(self) -> bool:
        return self.quantity_on_hand == 0
