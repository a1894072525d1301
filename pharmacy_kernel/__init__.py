"""
Pharmacy kernel: drug catalog, expiry-dated batches, the append-only
inventory ledger and the FEFO dispense engine.

Layering mirrors the import rules enforced by code review:

    db/         engine, declarative base, immutability guards
    models/     ORM tables (Drug, DrugBatch, LedgerEntry)
    domain/     pure functions and frozen DTOs, zero I/O
    services/   flush-only writers; callers own commit/rollback
    selectors/  read-only queries returning DTOs
"""
