"""
Module: pharmacy_kernel.db.triggers
Responsibility: Loading, installing, and verifying PostgreSQL immutability
    triggers (Layer 2 of 2).  Database-level complement to the ORM listeners
    in db/immutability.py.
Architecture position: Kernel > DB.  May import from db/ only.

Invariants enforced (via 5 PostgreSQL triggers across 3 SQL files):
    - inventory_ledger rows: no UPDATE, no DELETE.
    - drug_batches identity columns: no change after INSERT; no DELETE.
    - drugs: no DELETE.

Failure modes:
    - PostgreSQL RAISE EXCEPTION on any trigger violation (surfaced by
      SQLAlchemy as IntegrityError / InternalError).
    - FileNotFoundError if SQL files are missing from the sql/ directory.
"""

from pathlib import Path

from sqlalchemy import text
from sqlalchemy.engine import Engine

from pharmacy_kernel.logging_config import get_logger

logger = get_logger("db.triggers")

SQL_DIR = Path(__file__).parent / "sql"

# Installed in this order
TRIGGER_FILES = [
    "01_inventory_ledger.sql",
    "02_drug_batch.sql",
    "03_drug.sql",
]

DROP_FILE = "99_drop_all.sql"

ALL_TRIGGER_NAMES = [
    "trg_inventory_ledger_immutability_update",
    "trg_inventory_ledger_immutability_delete",
    "trg_drug_batch_identity_update",
    "trg_drug_batch_delete",
    "trg_drug_delete",
]


def _load_sql_file(filename: str) -> str:
    return (SQL_DIR / filename).read_text(encoding="utf-8")


def _load_all_trigger_sql() -> str:
    """Concatenate all trigger files in numbered order."""
    sql_parts = []
    for filename in TRIGGER_FILES:
        sql_parts.append(f"-- Loading: {filename}")
        sql_parts.append(_load_sql_file(filename))
        sql_parts.append("")
    return "\n".join(sql_parts)


def install_immutability_triggers(engine: Engine) -> None:
    """
    Install database-level immutability triggers.

    Preconditions: Tables exist.  Engine is connected to PostgreSQL.
    Postconditions: All triggers in ALL_TRIGGER_NAMES are installed.
        Functions use CREATE OR REPLACE, triggers DROP IF EXISTS first,
        so installation is idempotent.
    """
    sql_content = _load_all_trigger_sql()
    with engine.connect() as conn:
        conn.execute(text(sql_content))
        conn.commit()
    logger.info("immutability_triggers_installed", extra={"count": len(ALL_TRIGGER_NAMES)})


def uninstall_immutability_triggers(engine: Engine) -> None:
    """
    Remove database-level immutability triggers.

    WARNING: Only for migrations and test teardown.  Re-install immediately.
    """
    with engine.connect() as conn:
        conn.execute(text(_load_sql_file(DROP_FILE)))
        conn.commit()
    logger.warning("immutability_triggers_uninstalled")


def get_installed_triggers(engine: Engine) -> list[str]:
    """Names of the immutability triggers currently present in pg_trigger."""
    with engine.connect() as conn:
        result = conn.execute(
            text(
                "SELECT tgname FROM pg_trigger "
                "WHERE tgname = ANY(:names) ORDER BY tgname"
            ),
            {"names": ALL_TRIGGER_NAMES},
        )
        return [row[0] for row in result]


def triggers_installed(engine: Engine) -> bool:
    """True iff every trigger in ALL_TRIGGER_NAMES is installed."""
    return not get_missing_triggers(engine)


def get_missing_triggers(engine: Engine) -> list[str]:
    """Immutability triggers that should be installed but aren't."""
    installed = set(get_installed_triggers(engine))
    return sorted(set(ALL_TRIGGER_NAMES) - installed)
