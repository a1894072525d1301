"""
Immutability enforcement for ledger rows, batch identity and drugs.

ORM listeners are exercised on every backend.  The PostgreSQL trigger
tests bypass the ORM with raw SQL and therefore need real commits.
"""

from decimal import Decimal

import pytest
from sqlalchemy import select, text
from sqlalchemy.exc import DBAPIError

from pharmacy_config import PharmacyConfig
from pharmacy_kernel.db.engine import get_engine
from pharmacy_kernel.db.triggers import triggers_installed
from pharmacy_kernel.domain.clock import DeterministicClock
from pharmacy_kernel.exceptions import ImmutabilityViolationError
from pharmacy_kernel.models.batch import DrugBatch
from pharmacy_kernel.models.drug import Drug
from pharmacy_kernel.models.ledger import LedgerEntry
from pharmacy_modules.inventory.service import PharmacyInventoryService


@pytest.fixture
def received(make_drug, receive):
    drug = make_drug()
    batch = receive(drug, quantity=10)
    return drug, batch


def _ledger_row(session, batch_code: str) -> LedgerEntry:
    return session.execute(
        select(LedgerEntry)
        .join(DrugBatch, LedgerEntry.batch_id == DrugBatch.id)
        .where(DrugBatch.batch_id == batch_code)
    ).scalars().first()


def _batch_row(session, batch_code: str) -> DrugBatch:
    return session.execute(
        select(DrugBatch).where(DrugBatch.batch_id == batch_code)
    ).scalar_one()


class TestLedgerEntryImmutability:

    def test_update_blocked(self, session, received):
        _, batch = received
        entry = _ledger_row(session, batch.batch_id)
        entry.quantity = 999

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "LedgerEntry"

    def test_delete_blocked(self, session, received):
        _, batch = received
        session.delete(_ledger_row(session, batch.batch_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_violation_logged(self, session, received, captured_logs):
        _, batch = received
        entry = _ledger_row(session, batch.batch_id)
        entry.notes = "rewritten"

        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        blocked = [r for r in captured_logs() if r["message"] == "immutability_violation_blocked"]
        assert blocked[0]["operation"] == "UPDATE"


class TestDrugBatchImmutability:

    @pytest.mark.parametrize("field, value", [
        ("unit_cost", Decimal("9.99")),
        ("quantity_received", 500),
        ("batch_id", "BATCH999999"),
    ])
    def test_identity_fields_frozen(self, session, received, field, value):
        _, batch = received
        row = _batch_row(session, batch.batch_id)
        setattr(row, field, value)

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert field in exc_info.value.reason

    def test_quantity_on_hand_writable(self, session, received):
        _, batch = received
        row = _batch_row(session, batch.batch_id)
        row.quantity_on_hand = 7
        session.flush()
        assert row.version == 2

    def test_delete_blocked(self, session, received):
        _, batch = received
        session.delete(_batch_row(session, batch.batch_id))

        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestDrugImmutability:

    def test_delete_blocked(self, session, make_drug):
        drug = make_drug()
        session.delete(session.get(Drug, drug.id))

        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_id == drug.code


@pytest.mark.postgres
class TestDatabaseTriggers:
    """Triggers block raw SQL that never passes through the ORM."""

    @pytest.fixture
    def committed_batch(self, pg_session_factory):
        if not triggers_installed(get_engine()):
            pytest.skip("Database triggers not installed (requires PostgreSQL)")
        session = pg_session_factory()
        service = PharmacyInventoryService(session, clock=DeterministicClock(), config=PharmacyConfig())
        drug = service.create_drug(name="Amoxicillin", form="Capsule", created_by="setup")
        batch = service.receive_batch(
            drug_ref=drug.id, quantity=20, unit_cost="1.00",
            expiry_date="2026-06-30", received_by="setup",
        )
        return session, drug, batch

    def test_raw_ledger_update_blocked(self, committed_batch):
        session, _, _ = committed_batch
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            session.execute(text("UPDATE inventory_ledger SET quantity = 0"))
        session.rollback()

    def test_raw_ledger_delete_blocked(self, committed_batch):
        session, _, _ = committed_batch
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            session.execute(text("DELETE FROM inventory_ledger"))
        session.rollback()

    def test_raw_batch_identity_update_blocked(self, committed_batch):
        session, _, batch = committed_batch
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            session.execute(
                text("UPDATE drug_batches SET unit_cost = 0 WHERE batch_id = :b"),
                {"b": batch.batch_id},
            )
        session.rollback()

    def test_raw_drug_delete_blocked(self, committed_batch):
        session, drug, _ = committed_batch
        with pytest.raises(DBAPIError, match="IMMUTABILITY_VIOLATION"):
            session.execute(text("DELETE FROM drugs WHERE code = :c"), {"c": drug.code})
        session.rollback()
