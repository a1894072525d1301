"""
FEFO -- First-Expiry-First-Out allocation, pure and deterministic.

Responsibility:
    Given a drug's candidate batches and a requested quantity, decide how
    much to take from each batch.  Performs no I/O and mutates nothing; the
    dispense service applies the plan to locked rows.

Ordering (a total order, so the plan is reproducible):
    1. expiry_date ascending
    2. received_at ascending
    3. batch_id ascending

Empty batches are never part of a plan.
"""

from dataclasses import dataclass
from datetime import date, datetime
from typing import Generic, Iterable, Protocol, Sequence, TypeVar


class FefoCandidate(Protocol):
    batch_id: str
    expiry_date: date
    received_at: datetime
    quantity_on_hand: int


T = TypeVar("T", bound=FefoCandidate)


def fefo_sort_key(batch: FefoCandidate) -> tuple:
    return (batch.expiry_date, batch.received_at, batch.batch_id)


def fefo_order(batches: Iterable[T]) -> list[T]:
    """Non-empty batches in consumption order."""
    return sorted(
        (b for b in batches if b.quantity_on_hand > 0),
        key=fefo_sort_key,
    )


@dataclass(frozen=True)
class FefoPlan(Generic[T]):
    """
    Result of planning a dispense.

    ``allocations`` is empty when the request cannot be satisfied; callers
    must check ``is_satisfiable`` and reject before touching any row.
    """

    requested: int
    available: int
    allocations: tuple[tuple[T, int], ...]

    @property
    def is_satisfiable(self) -> bool:
        return self.available >= self.requested

    @property
    def shortfall(self) -> int:
        return max(0, self.requested - self.available)


def plan_fefo(batches: Sequence[T], requested: int) -> FefoPlan[T]:
    """
    Plan consumption of ``requested`` units across ``batches`` in FEFO order.

    Each batch contributes min(remaining, quantity_on_hand).  The walk stops
    as soon as the request is covered, so later batches are untouched.
    """
    if requested <= 0:
        raise ValueError(f"requested must be positive, got {requested}")

    ordered = fefo_order(batches)
    available = sum(b.quantity_on_hand for b in ordered)
    if available < requested:
        return FefoPlan(requested=requested, available=available, allocations=())

    allocations: list[tuple[T, int]] = []
    remaining = requested
    for batch in ordered:
        if remaining == 0:
            break
        take = min(remaining, batch.quantity_on_hand)
        allocations.append((batch, take))
        remaining -= take

    return FefoPlan(
        requested=requested,
        available=available,
        allocations=tuple(allocations),
    )
