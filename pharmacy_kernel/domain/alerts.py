"""
Stock and expiry classification -- pure functions, zero I/O.

Stock status (per drug, compared against its reorder level R):

    stock == 0                      OUT_OF_STOCK
    0 < stock <= R * critical_ratio CRITICAL
    stock <= R                      LOW
    otherwise                       HEALTHY

Expiry status (per batch, days until expiry d):

    d < 0                   EXPIRED
    d < critical_days (30)  CRITICAL
    d < warning_days (90)   WARNING
    otherwise               OK

A drug is reported as "low stock" when 0 < stock <= R, i.e. CRITICAL or LOW.
Out-of-stock is its own, more severe category and is never low stock.
"""

from datetime import date
from decimal import Decimal
from enum import Enum

DEFAULT_CRITICAL_STOCK_RATIO = Decimal("0.5")
DEFAULT_EXPIRY_CRITICAL_DAYS = 30
DEFAULT_EXPIRY_WARNING_DAYS = 90


class StockStatus(str, Enum):
    OUT_OF_STOCK = "out_of_stock"
    CRITICAL = "critical"
    LOW = "low"
    HEALTHY = "healthy"


class ExpiryStatus(str, Enum):
    EXPIRED = "expired"
    CRITICAL = "critical"
    WARNING = "warning"
    OK = "ok"


def classify_stock(
    stock_on_hand: int,
    reorder_level: int,
    critical_ratio: Decimal = DEFAULT_CRITICAL_STOCK_RATIO,
) -> StockStatus:
    """Classify a drug's stock-on-hand against its reorder level."""
    if stock_on_hand <= 0:
        return StockStatus.OUT_OF_STOCK
    if stock_on_hand <= reorder_level * Decimal(critical_ratio):
        return StockStatus.CRITICAL
    if stock_on_hand <= reorder_level:
        return StockStatus.LOW
    return StockStatus.HEALTHY


def is_low_stock(stock_on_hand: int, reorder_level: int) -> bool:
    return 0 < stock_on_hand <= reorder_level


def days_until(expiry_date: date, today: date) -> int:
    """Whole days from ``today`` to ``expiry_date``; negative once expired."""
    return (expiry_date - today).days


def classify_expiry(
    days_to_expiry: int,
    critical_days: int = DEFAULT_EXPIRY_CRITICAL_DAYS,
    warning_days: int = DEFAULT_EXPIRY_WARNING_DAYS,
) -> ExpiryStatus:
    if days_to_expiry < 0:
        return ExpiryStatus.EXPIRED
    if days_to_expiry < critical_days:
        return ExpiryStatus.CRITICAL
    if days_to_expiry < warning_days:
        return ExpiryStatus.WARNING
    return ExpiryStatus.OK


def expiry_label(days_to_expiry: int) -> str:
    """Human-readable expiry text: "EXPIRED", "expires today" or "expiring in N days"."""
    if days_to_expiry < 0:
        return "EXPIRED"
    if days_to_expiry == 0:
        return "expires today"
    if days_to_expiry == 1:
        return "expiring in 1 day"
    return f"expiring in {days_to_expiry} days"
