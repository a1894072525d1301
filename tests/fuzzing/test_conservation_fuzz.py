"""
Hypothesis-based fuzzing of FEFO allocation and stock conservation.

Properties:
- A satisfiable plan takes exactly the requested quantity, never more than
  a batch holds, and only drains a batch before touching a later-expiring one.
- After any sequence of receipts, dispenses and adjustments, each batch's
  quantity_on_hand equals the sum of its ledger rows, and refused
  operations leave stock untouched.
"""

from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from pharmacy_kernel.domain.fefo import fefo_sort_key, plan_fefo
from pharmacy_kernel.exceptions import InsufficientStockError, InvalidAdjustmentError

ACTOR = "fuzzer"


@dataclass(frozen=True)
class FakeBatch:
    batch_id: str
    expiry_date: date
    quantity_on_hand: int
    received_at: datetime = datetime(2024, 1, 1, tzinfo=UTC)


batches_strategy = st.lists(
    st.builds(
        FakeBatch,
        batch_id=st.text(alphabet="0123456789", min_size=6, max_size=6).map(lambda s: f"BATCH{s}"),
        expiry_date=st.dates(min_value=date(2024, 1, 1), max_value=date(2027, 12, 31)),
        quantity_on_hand=st.integers(min_value=0, max_value=50),
    ),
    max_size=8,
)


class TestFefoPlanProperties:

    @given(batches=batches_strategy, requested=st.integers(min_value=1, max_value=200))
    def test_plan_takes_exactly_requested(self, batches, requested):
        plan = plan_fefo(batches, requested)
        available = sum(b.quantity_on_hand for b in batches)

        assert plan.available == available
        if requested > available:
            assert plan.allocations == ()
            assert plan.shortfall == requested - available
            return

        assert sum(take for _, take in plan.allocations) == requested
        for batch, take in plan.allocations:
            assert 0 < take <= batch.quantity_on_hand

        # Every allocation except the last drains its batch
        for batch, take in plan.allocations[:-1]:
            assert take == batch.quantity_on_hand

        keys = [fefo_sort_key(b) for b, _ in plan.allocations]
        assert keys == sorted(keys)


operations_strategy = st.lists(
    st.one_of(
        st.tuples(st.just("receive"), st.integers(1, 30), st.integers(-5, 400)),
        st.tuples(st.just("dispense"), st.integers(1, 40), st.just(0)),
        st.tuples(st.just("adjust"), st.integers(-20, 20).filter(lambda d: d != 0), st.integers(0, 5)),
    ),
    min_size=1,
    max_size=12,
)


class TestLedgerConservation:

    @settings(
        max_examples=25,
        deadline=None,
        suppress_health_check=[HealthCheck.function_scoped_fixture],
    )
    @given(operations=operations_strategy)
    def test_stock_always_matches_ledger(self, inventory_service, deterministic_clock, operations):
        drug = inventory_service.create_drug(name="Fuzzamol", form="Tablet", created_by=ACTOR)
        batch_codes: list[str] = []
        expected = 0

        for kind, amount, extra in operations:
            if kind == "receive":
                batch = inventory_service.receive_batch(
                    drug_ref=drug.id,
                    quantity=amount,
                    unit_cost="1.25",
                    expiry_date=deterministic_clock.today() + timedelta(days=extra),
                    received_by=ACTOR,
                )
                batch_codes.append(batch.batch_id)
                expected += amount

            elif kind == "dispense":
                if amount > expected:
                    try:
                        inventory_service.dispense(drug_ref=drug.id, quantity=amount, performed_by=ACTOR)
                    except InsufficientStockError:
                        pass
                    else:
                        raise AssertionError("dispense beyond stock succeeded")
                else:
                    result = inventory_service.dispense(
                        drug_ref=drug.id, quantity=amount, performed_by=ACTOR,
                    )
                    assert result.total_quantity == amount
                    expected -= amount

            elif batch_codes:
                code = batch_codes[extra % len(batch_codes)]
                on_hand = inventory_service.get_batch(code).quantity_on_hand
                if on_hand + amount < 0 or (on_hand == 0 and amount > 0):
                    try:
                        inventory_service.adjust(
                            batch_ref=code, delta=amount, reason="count", performed_by=ACTOR,
                        )
                    except InvalidAdjustmentError:
                        pass
                    else:
                        raise AssertionError("invalid adjustment succeeded")
                else:
                    inventory_service.adjust(
                        batch_ref=code, delta=amount, reason="count", performed_by=ACTOR,
                    )
                    expected += amount

            assert inventory_service.stock_on_hand(drug.id) == expected

        report = inventory_service.verify_conservation(drug.id)
        assert report.is_consistent
        assert report.batches_checked == len(batch_codes)
