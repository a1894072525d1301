"""
ORM-Level Immutability Enforcement (Layer 1 of 2).

===============================================================================
WHY THIS EXISTS
===============================================================================

Stock movements must be explainable after the fact.  A ledger row that can be
edited or deleted makes every stock figure unverifiable, so the ledger is
append-only: mistakes are corrected by a new ``adjust`` entry, never by
rewriting history.

  Layer 1: THIS FILE (ORM event listeners)
    - Catches modifications through Python/SQLAlchemy code
    - Fires BEFORE the SQL is sent to the database

  Layer 2: db/sql/*.sql (PostgreSQL triggers)
    - Catches raw SQL, bulk UPDATE statements, direct psql access

===============================================================================
PROTECTED ENTITIES
===============================================================================

Entity        | Rule
--------------|---------------------------------------------------------------
LedgerEntry   | ALWAYS immutable: no UPDATE, no DELETE
DrugBatch     | Identity fields frozen after insert; never deleted
Drug          | Never deleted (deactivate instead)

quantity_on_hand, version, updated_at and updated_by on DrugBatch remain
writable; they are the fields dispense and adjust are supposed to move.

===============================================================================
USAGE
===============================================================================

    from pharmacy_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that need to bypass the guard call unregister_immutability_listeners()
and re-register afterwards.
"""

from sqlalchemy import event, inspect

from pharmacy_kernel.exceptions import ImmutabilityViolationError
from pharmacy_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _blocked(entity_type: str, entity_id: str, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": entity_id,
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=entity_id,
        reason=reason,
    )


def _check_ledger_entry_update(mapper, connection, target):
    """Ledger entries are immutable from creation."""
    _blocked(
        "LedgerEntry",
        target.transaction_id,
        "UPDATE",
        "Ledger entries are append-only and cannot be modified",
    )


def _check_ledger_entry_delete(mapper, connection, target):
    """Ledger entries can never be deleted."""
    _blocked(
        "LedgerEntry",
        target.transaction_id,
        "DELETE",
        "Ledger entries are append-only and cannot be deleted",
    )


def _check_batch_identity(mapper, connection, target):
    """
    Block changes to a batch's identity fields.

    Uses attribute history: a field with pending changes on a persistent
    batch is a modification after receipt.
    """
    from pharmacy_kernel.models.batch import BATCH_IDENTITY_FIELDS

    insp = inspect(target)
    for attr in insp.attrs:
        if attr.key not in BATCH_IDENTITY_FIELDS:
            continue
        if attr.history.has_changes():
            _blocked(
                "DrugBatch",
                target.batch_id,
                "UPDATE",
                f"Cannot modify field '{attr.key}' after the batch is received",
                field=attr.key,
            )


def _check_batch_delete(mapper, connection, target):
    _blocked(
        "DrugBatch",
        target.batch_id,
        "DELETE",
        "Batches are never deleted; an empty batch stays as history",
    )


def _check_drug_delete(mapper, connection, target):
    _blocked(
        "Drug",
        target.code,
        "DELETE",
        "Drugs are never deleted; deactivate the drug instead",
    )


def _listeners():
    from pharmacy_kernel.models.batch import DrugBatch
    from pharmacy_kernel.models.drug import Drug
    from pharmacy_kernel.models.ledger import LedgerEntry

    return [
        (LedgerEntry, "before_update", _check_ledger_entry_update),
        (LedgerEntry, "before_delete", _check_ledger_entry_delete),
        (DrugBatch, "before_update", _check_batch_identity),
        (DrugBatch, "before_delete", _check_batch_delete),
        (Drug, "before_delete", _check_drug_delete),
    ]


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners (idempotent).

    Call after models are imported and before any database operations.
    """
    for target, event_name, fn in _listeners():
        if not event.contains(target, event_name, fn):
            event.listen(target, event_name, fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that deliberately violate the rules.
    """
    for target, event_name, fn in _listeners():
        if event.contains(target, event_name, fn):
            event.remove(target, event_name, fn)
