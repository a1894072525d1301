"""
Domain DTOs -- immutable value objects returned across the kernel boundary.

Responsibility:
    Frozen dataclasses that selectors and services hand to callers.  ORM
    instances never leave the kernel; callers only ever see these.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  May import from domain/ only.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from pharmacy_kernel.domain.alerts import ExpiryStatus, StockStatus


class TransactionType(str, Enum):
    """Kind of stock movement recorded by a ledger entry."""

    RECEIVE = "receive"
    DISPENSE = "dispense"
    ADJUST = "adjust"


@dataclass(frozen=True)
class DrugInfo:
    """A catalog entry."""

    id: UUID
    code: str
    name: str
    generic_name: str | None
    form: str
    strength: str | None
    reorder_level: int
    is_active: bool

    @property
    def display_name(self) -> str:
        return f"{self.name} {self.strength}" if self.strength else self.name


@dataclass(frozen=True)
class BatchInfo:
    """A batch as seen by callers, denormalized with its drug's code and name."""

    id: UUID
    batch_id: str
    drug_id: UUID
    drug_code: str
    drug_name: str
    lot_number: str | None
    expiry_date: date
    quantity_received: int
    quantity_on_hand: int
    unit_cost: Decimal
    units_per_carton: int | None
    cartons_received: int | None
    supplier: str | None
    received_at: datetime
    received_by: str

    @property
    def is_empty(self) -> bool:
        return self.quantity_on_hand == 0

    @property
    def stock_value(self) -> Decimal:
        return self.unit_cost * self.quantity_on_hand


@dataclass(frozen=True)
class LedgerEntryView:
    """
    One ledger row joined with the drug and batch it refers to.

    ``quantity`` and ``total_value`` are signed: negative for outflows.
    """

    transaction_id: str
    seq: int
    transaction_type: TransactionType
    drug_id: UUID
    drug_code: str
    drug_name: str
    drug_strength: str | None
    batch_id: UUID | None
    batch_code: str | None
    quantity: int
    quantity_before: int
    quantity_after: int
    unit_cost: Decimal
    total_value: Decimal
    related_type: str | None
    related_id: str | None
    performed_by: str
    notes: str | None
    created_at: datetime


@dataclass(frozen=True)
class BatchConsumption:
    """Quantity taken from one batch by a dispense. All values positive."""

    batch_id: UUID
    batch_code: str
    expiry_date: date
    quantity: int
    unit_cost: Decimal
    transaction_id: str

    @property
    def value(self) -> Decimal:
        return self.unit_cost * self.quantity


@dataclass(frozen=True)
class DispenseResult:
    """
    Outcome of a successful dispense.

    ``consumptions`` is in the order batches were drawn (FEFO order for
    ``dispense``; a single element for ``dispense_from_batch``).
    """

    drug_id: UUID
    consumptions: tuple[BatchConsumption, ...]

    @property
    def total_quantity(self) -> int:
        return sum(c.quantity for c in self.consumptions)

    @property
    def total_value(self) -> Decimal:
        return sum((c.value for c in self.consumptions), Decimal("0"))

    @property
    def transaction_ids(self) -> tuple[str, ...]:
        return tuple(c.transaction_id for c in self.consumptions)


@dataclass(frozen=True)
class DrugStockLevel:
    """Live stock-on-hand for one drug with its alert classification."""

    drug: DrugInfo
    stock_on_hand: int
    batch_count: int
    stock_status: StockStatus

    @property
    def is_low_stock(self) -> bool:
        return 0 < self.stock_on_hand <= self.drug.reorder_level

    @property
    def is_out_of_stock(self) -> bool:
        return self.stock_on_hand == 0


@dataclass(frozen=True)
class ExpiringBatch:
    """A non-empty batch inside the expiry alert window."""

    batch: BatchInfo
    days_to_expiry: int
    expiry_status: ExpiryStatus
    label: str


@dataclass(frozen=True)
class ConservationDiscrepancy:
    """A batch whose quantity disagrees with the sum of its ledger rows."""

    batch_id: UUID
    batch_code: str
    drug_id: UUID
    quantity_on_hand: int
    ledger_total: int

    @property
    def difference(self) -> int:
        return self.quantity_on_hand - self.ledger_total


@dataclass(frozen=True)
class ConservationReport:
    batches_checked: int
    discrepancies: tuple[ConservationDiscrepancy, ...]

    @property
    def is_consistent(self) -> bool:
        return not self.discrepancies
