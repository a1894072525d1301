#!/usr/bin/env python3
"""
Pharmacy inventory admin tool.

Initialises the schema and runs day-to-day operations and reports against
the configured database (pharmacy_config: defaults.yaml, PHARMACY_CONFIG_FILE,
PHARMACY_DATABASE_URL).

Usage:
  python3 scripts/pharmacy_admin.py init-db
  python3 scripts/pharmacy_admin.py add-drug --name Paracetamol --form Tablet --strength 500mg --reorder-level 50
  python3 scripts/pharmacy_admin.py receive DRG00001 --quantity 100 --expiry 2026-01-10 --unit-cost 2.50
  python3 scripts/pharmacy_admin.py dispense DRG00001 8 --related-type prescription --related-id RX-1
  python3 scripts/pharmacy_admin.py adjust BATCH000001 -2 --reason "broken in storage"
  python3 scripts/pharmacy_admin.py stock
  python3 scripts/pharmacy_admin.py alerts [--days 90]
  python3 scripts/pharmacy_admin.py ledger [--drug DRG00001] [--limit 20]
  python3 scripts/pharmacy_admin.py audit
"""

import argparse
import getpass
import sys
from decimal import Decimal
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT))


def _fmt(v) -> str:
    d = Decimal(str(v))
    return f"{d:,.2f}"


def _parse_args(argv: list[str] | None) -> argparse.Namespace:
    p = argparse.ArgumentParser(description="Pharmacy inventory administration")
    p.add_argument("--db-url", help="Database URL (overrides configuration)")
    p.add_argument("--user", default=None, help="Actor recorded on writes (default: OS user)")
    sub = p.add_subparsers(dest="command", required=True)

    sub.add_parser("init-db", help="Create tables (and triggers on PostgreSQL)")

    add = sub.add_parser("add-drug", help="Register a drug")
    add.add_argument("--name", required=True)
    add.add_argument("--form", required=True)
    add.add_argument("--code")
    add.add_argument("--generic-name")
    add.add_argument("--strength")
    add.add_argument("--reorder-level", type=int, default=0)

    rcv = sub.add_parser("receive", help="Receive a batch")
    rcv.add_argument("drug")
    rcv.add_argument("--quantity", type=int)
    rcv.add_argument("--expiry", required=True, help="YYYY-MM-DD")
    rcv.add_argument("--unit-cost", required=True)
    rcv.add_argument("--lot-number")
    rcv.add_argument("--units-per-carton", type=int)
    rcv.add_argument("--cartons", type=int)
    rcv.add_argument("--supplier")

    dsp = sub.add_parser("dispense", help="Dispense FEFO (or from one batch with --batch)")
    dsp.add_argument("drug", help="Drug code or id; ignored with --batch")
    dsp.add_argument("quantity", type=int)
    dsp.add_argument("--batch")
    dsp.add_argument("--related-type")
    dsp.add_argument("--related-id")

    adj = sub.add_parser("adjust", help="Correct a batch quantity")
    adj.add_argument("batch")
    adj.add_argument("delta", type=int)
    adj.add_argument("--reason", required=True)

    sub.add_parser("stock", help="Stock on hand per active drug")

    alerts = sub.add_parser("alerts", help="Low stock, out of stock and expiring batches")
    alerts.add_argument("--days", type=int, default=None)

    ledger = sub.add_parser("ledger", help="Recent ledger entries")
    ledger.add_argument("--drug")
    ledger.add_argument("--batch")
    ledger.add_argument("--limit", type=int, default=20)

    sub.add_parser("audit", help="Verify batch quantities against the ledger")
    return p.parse_args(argv)


def _print_stock(service) -> None:
    print(f"  {'Code':<10} {'Drug':<34} {'Stock':>8} {'Reorder':>8}  Status")
    print(f"  {'-'*10} {'-'*34} {'-'*8} {'-'*8}  {'-'*12}")
    for level in service.all_drugs_with_stock():
        print(
            f"  {level.drug.code:<10} {level.drug.display_name[:34]:<34} "
            f"{level.stock_on_hand:>8} {level.drug.reorder_level:>8}  "
            f"{level.stock_status.value}"
        )
    print()
    print(f"  Inventory value: {_fmt(service.inventory_value())}")


def _print_alerts(service, days: int | None) -> None:
    print("LOW STOCK")
    for level in service.low_stock_drugs():
        print(f"  {level.drug.code:<10} {level.drug.display_name:<34} "
              f"{level.stock_on_hand:>6} / {level.drug.reorder_level}")
    print()
    print("OUT OF STOCK")
    for level in service.out_of_stock_drugs():
        print(f"  {level.drug.code:<10} {level.drug.display_name}")
    print()
    print("EXPIRING")
    for item in service.expiring_soon(days):
        b = item.batch
        print(f"  {b.batch_id:<12} {b.drug_code:<10} {b.expiry_date}  "
              f"{b.quantity_on_hand:>6}  {item.label}")


def _print_ledger(service, drug, batch, limit) -> None:
    print(f"  {'Transaction':<20} {'Type':<9} {'Batch':<12} {'Qty':>6} {'After':>6} {'Value':>12}  By")
    print(f"  {'-'*20} {'-'*9} {'-'*12} {'-'*6} {'-'*6} {'-'*12}  {'-'*10}")
    for e in service.list_ledger(drug_ref=drug, batch_ref=batch, limit=limit):
        print(
            f"  {e.transaction_id:<20} {e.transaction_type.value:<9} "
            f"{(e.batch_code or ''):<12} {e.quantity:>6} {e.quantity_after:>6} "
            f"{_fmt(e.total_value):>12}  {e.performed_by}"
        )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)

    from pharmacy_config import get_active_config
    from pharmacy_kernel.db.engine import (
        create_tables,
        get_session,
        init_engine_from_url,
        session_scope,
    )
    from pharmacy_kernel.db.immutability import register_immutability_listeners
    from pharmacy_kernel.exceptions import PharmacyKernelError
    from pharmacy_kernel.logging_config import configure_logging
    from pharmacy_modules.inventory import PharmacyInventoryService, run_with_conflict_retry

    config = get_active_config()
    configure_logging(level=config.log_level, stream=sys.stderr)

    try:
        init_engine_from_url(
            args.db_url or config.database_url,
            echo=config.echo_sql,
            pool_size=config.pool_size,
            max_overflow=config.max_overflow,
        )
    except Exception as exc:
        print(f"  ERROR: {exc}", file=sys.stderr)
        return 1

    if args.command == "init-db":
        from pharmacy_kernel.services.sequence_service import SequenceService

        create_tables(install_triggers=True)
        with session_scope() as session:
            SequenceService(session).initialize_sequences()
        print("  Schema ready.")
        return 0

    register_immutability_listeners()
    actor = args.user or getpass.getuser()
    session = get_session()
    service = PharmacyInventoryService(session, config=config)

    def retrying(operation):
        return run_with_conflict_retry(operation, max_attempts=config.conflict_retry_attempts)

    try:
        if args.command == "add-drug":
            drug = service.create_drug(
                name=args.name,
                form=args.form,
                code=args.code,
                generic_name=args.generic_name,
                strength=args.strength,
                reorder_level=args.reorder_level,
                created_by=actor,
            )
            print(f"  Registered {drug.code}  {drug.display_name}")

        elif args.command == "receive":
            batch = retrying(lambda: service.receive_batch(
                drug_ref=args.drug,
                quantity=args.quantity,
                expiry_date=args.expiry,
                unit_cost=args.unit_cost,
                lot_number=args.lot_number,
                units_per_carton=args.units_per_carton,
                cartons_received=args.cartons,
                supplier=args.supplier,
                received_by=actor,
            ))
            print(f"  Received {batch.batch_id}: {batch.quantity_received} x "
                  f"{batch.drug_name} expiring {batch.expiry_date}")

        elif args.command == "dispense":
            if args.batch:
                result = retrying(lambda: service.dispense_from_batch(
                    batch_ref=args.batch,
                    quantity=args.quantity,
                    performed_by=actor,
                    related_type=args.related_type,
                    related_id=args.related_id,
                ))
            else:
                result = retrying(lambda: service.dispense(
                    drug_ref=args.drug,
                    quantity=args.quantity,
                    performed_by=actor,
                    related_type=args.related_type,
                    related_id=args.related_id,
                ))
            for c in result.consumptions:
                print(f"  {c.transaction_id}  {c.batch_code:<12} -{c.quantity:<6} "
                      f"exp {c.expiry_date}  {_fmt(c.value)}")
            print(f"  Total: {result.total_quantity} units, {_fmt(result.total_value)}")

        elif args.command == "adjust":
            entry = retrying(lambda: service.adjust(
                batch_ref=args.batch,
                delta=args.delta,
                reason=args.reason,
                performed_by=actor,
            ))
            print(f"  {entry.transaction_id}  {entry.batch_code}  "
                  f"{entry.quantity_before} -> {entry.quantity_after}")

        elif args.command == "stock":
            _print_stock(service)

        elif args.command == "alerts":
            _print_alerts(service, args.days)

        elif args.command == "ledger":
            _print_ledger(service, args.drug, args.batch, args.limit)

        elif args.command == "audit":
            report = service.verify_conservation()
            print(f"  Batches checked: {report.batches_checked}")
            for d in report.discrepancies:
                print(f"  MISMATCH {d.batch_code}: on hand {d.quantity_on_hand}, "
                      f"ledger {d.ledger_total} (diff {d.difference})")
            if not report.is_consistent:
                return 2
            print("  Ledger and batches agree.")

    except PharmacyKernelError as exc:
        print(f"  ERROR [{exc.code}]: {exc}", file=sys.stderr)
        return 1
    finally:
        session.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
