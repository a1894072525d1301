"""
PharmacyConfig schema.

The single typed runtime configuration for the inventory subsystem.  YAML
fragments and environment overrides are parsed into this frozen dataclass
by ``pharmacy_config.loader``; nothing downstream reads files or the
environment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import UTC, tzinfo
from decimal import Decimal
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

VALID_LOG_LEVELS = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

DEFAULT_DATABASE_URL = "sqlite:///pharmacy_inventory.db"


def resolve_timezone(name: str) -> tzinfo:
    """Map an IANA name to a tzinfo.  ``UTC`` never needs the tz database."""
    if name.upper() == "UTC":
        return UTC
    return ZoneInfo(name)


@dataclass(frozen=True)
class PharmacyConfig:
    """
    Runtime settings.

    ``timezone`` defines the clinic-local day used for transaction id dates,
    expiry comparisons and alert windows.
    """

    database_url: str = DEFAULT_DATABASE_URL
    echo_sql: bool = False
    pool_size: int = 20
    max_overflow: int = 10

    timezone: str = "UTC"

    # Alerts
    expiry_alert_days: int = 90
    expiry_critical_days: int = 30
    critical_stock_ratio: Decimal = Decimal("0.5")

    # Policy switches
    reject_expired_receipts: bool = False
    exclude_expired_from_dispense: bool = False

    conflict_retry_attempts: int = 3
    log_level: str = "INFO"

    def __post_init__(self):
        if not isinstance(self.database_url, str) or not self.database_url.strip():
            raise ValueError("database_url must be a non-empty string")
        if self.pool_size < 1:
            raise ValueError(f"pool_size must be >= 1, got {self.pool_size}")
        if self.max_overflow < 0:
            raise ValueError(f"max_overflow cannot be negative, got {self.max_overflow}")

        try:
            resolve_timezone(self.timezone)
        except (ZoneInfoNotFoundError, ValueError) as exc:
            raise ValueError(f"timezone {self.timezone!r} is not a known IANA zone") from exc

        if self.expiry_critical_days < 0:
            raise ValueError("expiry_critical_days cannot be negative")
        if self.expiry_alert_days < self.expiry_critical_days:
            raise ValueError(
                f"expiry_alert_days ({self.expiry_alert_days}) must be >= "
                f"expiry_critical_days ({self.expiry_critical_days})"
            )
        if not (Decimal("0") <= self.critical_stock_ratio <= Decimal("1")):
            raise ValueError(
                f"critical_stock_ratio must be between 0 and 1, got {self.critical_stock_ratio}"
            )
        if self.conflict_retry_attempts < 1:
            raise ValueError("conflict_retry_attempts must be >= 1")
        if self.log_level not in VALID_LOG_LEVELS:
            raise ValueError(
                f"log_level must be one of {sorted(VALID_LOG_LEVELS)}, got '{self.log_level}'"
            )

    @property
    def tzinfo(self) -> tzinfo:
        return resolve_timezone(self.timezone)
