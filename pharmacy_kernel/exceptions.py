"""
Typed Exception Hierarchy for the Pharmacy Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Stock movements must fail precisely. A dispense that cannot be satisfied, a
receipt with a negative cost and a lost update under concurrency all need a
different reaction from the caller, and matching on message text is fragile.

Every error in this module therefore:
  1. Has its own class (catch by type, not by message)
  2. Has a ``code`` class attribute (machine-readable, API-safe)
  3. Carries structured data as attributes (not just a message string)

Example - WRONG way to handle errors:
    try:
        service.dispense(drug_id, 40, "pharmacist")
    except Exception as e:
        if "insufficient" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        service.dispense(drug_id, 40, "pharmacist")
    except InsufficientStockError as e:
        api_response(code=e.code, requested=e.requested, available=e.available)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

All exceptions inherit from PharmacyKernelError:

    PharmacyKernelError (base)
    |
    +-- NotFoundError
    |   +-- DrugNotFoundError
    |   +-- BatchNotFoundError
    |   +-- LedgerEntryNotFoundError
    |
    +-- DuplicateCodeError
    |
    +-- ValidationError
    |   +-- InvalidQuantityError
    |   +-- InvalidCostError
    |   +-- InvalidExpiryError
    |   +-- InvalidFieldError
    |
    +-- StockError
    |   +-- InsufficientStockError
    |   +-- InvalidAdjustmentError
    |
    +-- ConcurrencyError
    |   +-- ConcurrentModificationError
    |
    +-- ImmutabilityError
        +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Lookup          | DRUG_NOT_FOUND              | Drug id/code doesn't exist
                | BATCH_NOT_FOUND             | Batch id doesn't exist
                | LEDGER_ENTRY_NOT_FOUND      | Transaction id doesn't exist
----------------|-----------------------------|-----------------------------------------
Catalog         | DUPLICATE_CODE              | Drug code already registered
----------------|-----------------------------|-----------------------------------------
Validation      | INVALID_QUANTITY            | Quantity <= 0 or carton mismatch
                | INVALID_COST                | Unit cost negative or not a number
                | INVALID_EXPIRY              | Expiry missing, unparseable, rejected
                | INVALID_FIELD               | Blank name/form, unknown field, etc.
----------------|-----------------------------|-----------------------------------------
Stock           | INSUFFICIENT_STOCK          | Requested > available (no mutation)
                | INVALID_ADJUSTMENT          | Blank reason or adjust below zero
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENT_MODIFICATION     | Batch row changed under us
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Modifying a ledger row or batch identity

===============================================================================
HANDLING PATTERNS
===============================================================================

1. VALIDATION ERRORS are raised before any row is touched. Nothing to undo.

2. STOCK ERRORS are raised after locks are taken but before any write. The
   module service rolls back the transaction and re-raises.

3. CONCURRENCY ERRORS are the only retryable class:

    from pharmacy_modules.inventory.retry import run_with_conflict_retry

    result = run_with_conflict_retry(
        lambda: service.dispense(drug_id, 5, "pharmacist"),
        max_attempts=3,
    )

4. IMMUTABILITY ERRORS indicate a programming error or tampering. Log and
   investigate; never retry.

===============================================================================
DESIGN DECISIONS
===============================================================================

1. WHY INHERIT FROM Exception (not ValueError, etc.)?
   Domain exceptions should be catchable as a group without also catching
   programming errors.

2. WHY code CLASS ATTRIBUTE (not instance)?
   Codes are static per exception type: ``InsufficientStockError.code``
   works without instantiation.

3. WHY STORE ALL CONTEXT AS ATTRIBUTES?
   The structured log formatter emits every public attribute of the
   exception as an ``exc_*`` field.

===============================================================================
"""


class PharmacyKernelError(Exception):
    """
    Base exception for all pharmacy kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "PHARMACY_KERNEL_ERROR"


# Lookup exceptions


class NotFoundError(PharmacyKernelError):
    """Base exception for missing entities."""

    code: str = "NOT_FOUND"


class DrugNotFoundError(NotFoundError):
    """Drug with given id or code was not found."""

    code: str = "DRUG_NOT_FOUND"

    def __init__(self, drug_id: str):
        self.drug_id = drug_id
        super().__init__(f"Drug not found: {drug_id}")


class BatchNotFoundError(NotFoundError):
    """Batch with given id was not found."""

    code: str = "BATCH_NOT_FOUND"

    def __init__(self, batch_id: str):
        self.batch_id = batch_id
        super().__init__(f"Batch not found: {batch_id}")


class LedgerEntryNotFoundError(NotFoundError):
    """Ledger entry with given transaction id was not found."""

    code: str = "LEDGER_ENTRY_NOT_FOUND"

    def __init__(self, transaction_id: str):
        self.transaction_id = transaction_id
        super().__init__(f"Ledger entry not found: {transaction_id}")


# Catalog exceptions


class DuplicateCodeError(PharmacyKernelError):
    """A drug with this code already exists."""

    code: str = "DUPLICATE_CODE"

    def __init__(self, drug_code: str):
        self.drug_code = drug_code
        super().__init__(f"Drug code already exists: {drug_code}")


# Validation exceptions


class ValidationError(PharmacyKernelError):
    """Base exception for rejected input."""

    code: str = "VALIDATION_ERROR"


class InvalidQuantityError(ValidationError):
    """Quantity is not a positive integer (or carton fields disagree)."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, quantity: object, reason: str = "quantity must be positive"):
        self.quantity = quantity
        self.reason = reason
        super().__init__(f"Invalid quantity {quantity!r}: {reason}")


class InvalidCostError(ValidationError):
    """Unit cost is negative or not a number."""

    code: str = "INVALID_COST"

    def __init__(self, unit_cost: object):
        self.unit_cost = unit_cost
        super().__init__(
            f"Invalid unit cost {unit_cost!r}: must be a non-negative number"
        )


class InvalidExpiryError(ValidationError):
    """Expiry date is missing, malformed or rejected by policy."""

    code: str = "INVALID_EXPIRY"

    def __init__(self, expiry_date: object, reason: str):
        self.expiry_date = expiry_date
        self.reason = reason
        super().__init__(f"Invalid expiry date {expiry_date!r}: {reason}")


class InvalidFieldError(ValidationError):
    """A named field failed validation."""

    code: str = "INVALID_FIELD"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid field '{field}': {reason}")


# Stock exceptions


class StockError(PharmacyKernelError):
    """Base exception for stock movement failures."""

    code: str = "STOCK_ERROR"


class InsufficientStockError(StockError):
    """
    Requested quantity exceeds what is available.

    Raised before any batch or ledger row is written, so state is unchanged.
    ``batch_id`` is set when the request targeted a single batch.
    """

    code: str = "INSUFFICIENT_STOCK"

    def __init__(
        self,
        drug_id: str,
        requested: int,
        available: int,
        batch_id: str | None = None,
    ):
        self.drug_id = drug_id
        self.batch_id = batch_id
        self.requested = requested
        self.available = available
        scope = f"batch {batch_id}" if batch_id else f"drug {drug_id}"
        super().__init__(
            f"Insufficient stock for {scope}: requested {requested}, "
            f"available {available}"
        )


class InvalidAdjustmentError(StockError):
    """Adjustment has no reason or would drive the batch below zero."""

    code: str = "INVALID_ADJUSTMENT"

    def __init__(
        self,
        batch_id: str,
        delta: int,
        quantity_on_hand: int,
        reason: str,
    ):
        self.batch_id = batch_id
        self.delta = delta
        self.quantity_on_hand = quantity_on_hand
        self.reason = reason
        super().__init__(
            f"Invalid adjustment of {delta:+d} on batch {batch_id} "
            f"(on hand {quantity_on_hand}): {reason}"
        )


# Concurrency exceptions


class ConcurrencyError(PharmacyKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class ConcurrentModificationError(ConcurrencyError):
    """
    A row was modified by another transaction between read and write.

    The only error class callers may retry.
    """

    code: str = "CONCURRENT_MODIFICATION"

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Concurrent modification of {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


# Immutability exceptions


class ImmutabilityError(PharmacyKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """
    Attempted to modify or delete an immutable record.

    Ledger entries are immutable from creation; batch identity fields are
    immutable after receipt; drugs are never deleted.
    """

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
