"""
Pharmacy Modules.

Orchestration layers over the Pharmacy Kernel.  Modules own transaction
boundaries and translate configuration into kernel arguments; the actual
processing logic lives in the kernel.

Modules:
- Inventory: drug catalog, receipts, FEFO dispensing, stock alerts, ledger
"""

from pharmacy_modules import inventory

__all__ = ["inventory"]
