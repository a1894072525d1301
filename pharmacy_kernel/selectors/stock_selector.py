"""
StockSelector -- live stock-on-hand and the alert queries built on it.

Responsibility:
    Aggregates batch quantities per drug and classifies drugs and batches
    into low-stock, out-of-stock and expiring-soon alerts.  Nothing is
    cached: every call re-reads drug_batches.  Alerts never read the ledger.

Invariants enforced:
    - stock_on_hand(drug) == sum(quantity_on_hand) over its batches with
      quantity_on_hand > 0.
    - Low stock is 0 < stock <= reorder_level.  Zero stock is out-of-stock
      and never low stock.
    - Low / out-of-stock consider active drugs only.  Expiring-soon covers
      every drug: stock of a deactivated drug still expires on the shelf.
"""

from datetime import timedelta, tzinfo
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session

from pharmacy_kernel.domain.alerts import (
    DEFAULT_CRITICAL_STOCK_RATIO,
    DEFAULT_EXPIRY_CRITICAL_DAYS,
    DEFAULT_EXPIRY_WARNING_DAYS,
    classify_expiry,
    classify_stock,
    days_until,
    expiry_label,
)
from pharmacy_kernel.domain.clock import Clock, SystemClock
from pharmacy_kernel.domain.dtos import DrugStockLevel, ExpiringBatch
from pharmacy_kernel.exceptions import DrugNotFoundError, InvalidFieldError
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.selectors.base import BaseSelector
from pharmacy_kernel.selectors.batch_selector import FEFO_ORDER, to_batch_info
from pharmacy_kernel.selectors.drug_selector import drug_ref_clause, to_drug_info


class StockSelector(BaseSelector[DrugBatch]):
    """Stock aggregation and alerting."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        tz: tzinfo | None = None,
        critical_ratio: Decimal = DEFAULT_CRITICAL_STOCK_RATIO,
        expiry_critical_days: int = DEFAULT_EXPIRY_CRITICAL_DAYS,
        expiry_warning_days: int = DEFAULT_EXPIRY_WARNING_DAYS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._tz = tz
        self._critical_ratio = critical_ratio
        self._expiry_critical_days = expiry_critical_days
        self._expiry_warning_days = expiry_warning_days

    def stock_on_hand(self, drug_ref: UUID | str) -> int:
        """
        Raises:
            DrugNotFoundError: If the drug does not exist.
        """
        drug_id = self.session.scalar(select(Drug.id).where(drug_ref_clause(drug_ref)))
        if drug_id is None:
            raise DrugNotFoundError(str(drug_ref))
        total = self.session.scalar(
            select(func.coalesce(func.sum(DrugBatch.quantity_on_hand), 0))
            .where(DrugBatch.drug_id == drug_id)
            .where(DrugBatch.quantity_on_hand > 0)
        )
        return int(total)

    def _levels_query(self) -> tuple[Select, object]:
        per_drug = (
            select(
                DrugBatch.drug_id.label("drug_id"),
                func.sum(DrugBatch.quantity_on_hand).label("stock"),
                func.count(DrugBatch.id).label("batch_count"),
            )
            .where(DrugBatch.quantity_on_hand > 0)
            .group_by(DrugBatch.drug_id)
            .subquery()
        )
        stock = func.coalesce(per_drug.c.stock, 0)
        stmt = (
            select(Drug, stock, func.coalesce(per_drug.c.batch_count, 0))
            .outerjoin(per_drug, per_drug.c.drug_id == Drug.id)
            .where(Drug.is_active.is_(True))
            .order_by(Drug.name, Drug.code)
        )
        return stmt, stock

    def _levels(self, stmt: Select) -> list[DrugStockLevel]:
        levels = []
        for drug, stock, batch_count in self.session.execute(stmt):
            stock = int(stock)
            levels.append(
                DrugStockLevel(
                    drug=to_drug_info(drug),
                    stock_on_hand=stock,
                    batch_count=int(batch_count),
                    stock_status=classify_stock(
                        stock, drug.reorder_level, self._critical_ratio
                    ),
                )
            )
        return levels

    def all_drugs_with_stock(self) -> list[DrugStockLevel]:
        """One entry per active drug, computed in a single grouped query."""
        stmt, _ = self._levels_query()
        return self._levels(stmt)

    def low_stock_drugs(self) -> list[DrugStockLevel]:
        """Active drugs with 0 < stock_on_hand <= reorder_level."""
        stmt, stock = self._levels_query()
        return self._levels(
            stmt.where(stock > 0).where(stock <= Drug.reorder_level)
        )

    def out_of_stock_drugs(self) -> list[DrugStockLevel]:
        """Active drugs with no stock in any batch."""
        stmt, stock = self._levels_query()
        return self._levels(stmt.where(stock == 0))

    def expiring_soon(self, threshold_days: int = DEFAULT_EXPIRY_WARNING_DAYS) -> list[ExpiringBatch]:
        """
        Non-empty batches expiring within ``threshold_days`` of today,
        soonest first.  Already-expired batches are included and labelled.

        Raises:
            InvalidFieldError: If threshold_days is negative.
        """
        if threshold_days < 0:
            raise InvalidFieldError("threshold_days", "must be >= 0")

        today = self._clock.today(self._tz)
        cutoff = today + timedelta(days=threshold_days)
        stmt = (
            select(DrugBatch, Drug.code, Drug.name)
            .join(Drug, Drug.id == DrugBatch.drug_id)
            .where(DrugBatch.quantity_on_hand > 0)
            .where(DrugBatch.expiry_date <= cutoff)
            .order_by(*FEFO_ORDER)
            .execution_options(populate_existing=True)
        )
        result = []
        for batch, code, drug_name in self.session.execute(stmt):
            days = days_until(batch.expiry_date, today)
            result.append(
                ExpiringBatch(
                    batch=to_batch_info(batch, code, drug_name),
                    days_to_expiry=days,
                    expiry_status=classify_expiry(
                        days, self._expiry_critical_days, self._expiry_warning_days
                    ),
                    label=expiry_label(days),
                )
            )
        return result

    def inventory_value(self) -> Decimal:
        """Value of all stock on hand at batch unit cost."""
        total = self.session.scalar(
            select(
                func.coalesce(
                    func.sum(DrugBatch.quantity_on_hand * DrugBatch.unit_cost), 0
                )
            ).where(DrugBatch.quantity_on_hand > 0)
        )
        return Decimal(str(total))
