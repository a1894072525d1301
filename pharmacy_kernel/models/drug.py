"""
Module: pharmacy_kernel.models.drug
Responsibility: ORM persistence for the drug catalog -- the registry of
    sellable drug identities.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - ``code`` is unique (DB constraint uq_drugs_code).
    - ``reorder_level`` >= 0 (DB check constraint).
    - Drugs are never hard-deleted; ``is_active`` is the soft toggle.
      Deletion is blocked by db/immutability.py and a PostgreSQL trigger.

Audit relevance:
    Ledger entries reference drugs by UUID.  Keeping every drug row forever
    keeps historical ledger rows resolvable to a name and strength.
"""

from sqlalchemy import Boolean, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from pharmacy_kernel.db.base import TrackedBase


class Drug(TrackedBase):
    """
    A drug identity (code, names, form, strength, reorder level).

    Contract:
        Stock is NEVER stored here.  Stock-on-hand is always derived from
        the drug's batches at read time.

    Non-goals:
        - Pricing, tax and patient-facing education content.
    """

    __tablename__ = "drugs"

    __table_args__ = (
        CheckConstraint("reorder_level >= 0", name="ck_drugs_reorder_level_nonneg"),
        Index("idx_drugs_name", "name"),
        Index("idx_drugs_active", "is_active"),
    )

    # Display code, e.g. DRG00001
    code: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    generic_name: Mapped[str | None] = mapped_column(String(200), nullable=True)

    # Tablet, Capsule, Syrup, Injection, ...
    form: Mapped[str] = mapped_column(String(50), nullable=False)

    strength: Mapped[str | None] = mapped_column(String(50), nullable=True)

    reorder_level: Mapped[int] = mapped_column(nullable=False, default=0)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    batches: Mapped[list["DrugBatch"]] = relationship(  # noqa: F821
        back_populates="drug",
        order_by="DrugBatch.expiry_date",
    )

    def __repr__(self) -> str:
        return f"<Drug {self.code} {self.name!r} active={self.is_active}>"
