"""
Inventory Module (``pharmacy_modules.inventory``).

Thin glue over ``pharmacy_kernel``: the ``PharmacyInventoryService``
facade that owns every transaction boundary, and the bounded conflict
retry helper for callers.  Business rules live in the kernel.
"""

from pharmacy_modules.inventory.retry import run_with_conflict_retry
from pharmacy_modules.inventory.service import PharmacyInventoryService

__all__ = [
    "PharmacyInventoryService",
    "run_with_conflict_retry",
]
