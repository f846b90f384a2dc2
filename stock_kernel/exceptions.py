"""
Typed Exception Hierarchy for the Stock Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (job workflows, receiving screens, serial intake) must react to
ledger failures precisely.  Parsing message strings is fragile, so:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (part_id, quantities, states)

Example:
    try:
        ledger.append(part_id, MovementType.DAMAGE, -4)
    except NegativeStockError as e:
        log.warning("rejected", extra={"part_id": e.part_id, "after": e.quantity_after})
        api_response(code=e.code)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    StockKernelError (base)
    |
    +-- ValidationError
    |   +-- PartNotFoundError
    |   +-- JobPartNotFoundError
    |   +-- PurchaseOrderNotFoundError
    |   +-- POItemNotFoundError
    |   +-- SerializedItemNotFoundError
    |   +-- InvalidQuantityError
    |   +-- NegativeStockError
    |   +-- InvalidMovementTypeError
    |   +-- DuplicatePartNumberError
    |   +-- DuplicatePONumberError
    |   +-- DuplicateSerialNumberError
    |   +-- ReceivingClosedError
    |   +-- InvalidContextError
    |
    +-- ConcurrencyConflictError
    +-- PartialFailureError
    +-- InvalidTransitionError
    +-- TenantAccessError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category        | Code                        | When Raised
----------------|-----------------------------|-----------------------------------------
Validation      | PART_NOT_FOUND              | Part id unknown in the tenant
                | JOB_PART_NOT_FOUND          | Job part id unknown
                | PURCHASE_ORDER_NOT_FOUND    | PO id unknown
                | PO_ITEM_NOT_FOUND           | PO item unknown or not on this PO
                | SERIALIZED_ITEM_NOT_FOUND   | Serialized item id unknown
                | INVALID_QUANTITY            | Zero / non-positive quantity input
                | NEGATIVE_STOCK              | Append would drive stock below zero
                | INVALID_MOVEMENT_TYPE       | Unknown movement type
                | DUPLICATE_PART_NUMBER       | Part number already used in tenant
                | DUPLICATE_PO_NUMBER         | PO number already used in tenant
                | DUPLICATE_SERIAL_NUMBER     | Serial already registered for part
                | RECEIVING_CLOSED            | Receive against a cancelled PO
                | INVALID_CONTEXT             | Missing tenant or actor
----------------|-----------------------------|-----------------------------------------
Concurrency     | CONCURRENCY_CONFLICT        | quantity_before changed under append
----------------|-----------------------------|-----------------------------------------
Batch           | PARTIAL_FAILURE             | Some batch lines failed
----------------|-----------------------------|-----------------------------------------
State machine   | INVALID_TRANSITION          | Edge not in the allowed transition map
----------------|-----------------------------|-----------------------------------------
Permission      | TENANT_ACCESS_DENIED        | Row belongs to another tenant
----------------|-----------------------------|-----------------------------------------
Immutability    | IMMUTABILITY_VIOLATION      | Movement edit, deducted line edit,
                |                             | direct Part.quantity write

===============================================================================
HANDLING PATTERNS
===============================================================================

1. CONCURRENCY CONFLICTS ARE RETRYABLE:

    except ConcurrencyConflictError:
        session.rollback()
        retry_later()

2. BATCHES REPORT, THEY DO NOT RAISE:

    result = reservations.deduct_for_job(job_id)
    for failure in result.failed:
        notify(failure.line_id, failure.code)
    result.raise_for_failures()   # opt-in PartialFailureError

3. TENANT ACCESS ERRORS ARE FATAL:

    TenantAccessError must never be retried; the surrounding application
    treats it as a permission failure.

===============================================================================
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from stock_kernel.domain.dtos import BatchResult


class StockKernelError(Exception):
    """
    Base exception for all stock kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "STOCK_KERNEL_ERROR"


# Validation exceptions


class ValidationError(StockKernelError):
    """Base exception for rejected inputs and unknown references."""

    code: str = "VALIDATION_ERROR"


class PartNotFoundError(ValidationError):
    """Part with given ID was not found in the tenant."""

    code: str = "PART_NOT_FOUND"

    def __init__(self, part_id: str):
        self.part_id = part_id
        super().__init__(f"Part not found: {part_id}")


class JobPartNotFoundError(ValidationError):
    """Job part with given ID was not found."""

    code: str = "JOB_PART_NOT_FOUND"

    def __init__(self, job_part_id: str):
        self.job_part_id = job_part_id
        super().__init__(f"Job part not found: {job_part_id}")


class PurchaseOrderNotFoundError(ValidationError):
    """Purchase order with given ID was not found."""

    code: str = "PURCHASE_ORDER_NOT_FOUND"

    def __init__(self, purchase_order_id: str):
        self.purchase_order_id = purchase_order_id
        super().__init__(f"Purchase order not found: {purchase_order_id}")


class POItemNotFoundError(ValidationError):
    """PO item does not exist or does not belong to the purchase order."""

    code: str = "PO_ITEM_NOT_FOUND"

    def __init__(self, po_item_id: str, purchase_order_id: str):
        self.po_item_id = po_item_id
        self.purchase_order_id = purchase_order_id
        super().__init__(
            f"PO item {po_item_id} not found on purchase order {purchase_order_id}"
        )


class SerializedItemNotFoundError(ValidationError):
    """Serialized item with given ID was not found."""

    code: str = "SERIALIZED_ITEM_NOT_FOUND"

    def __init__(self, item_id: str):
        self.item_id = item_id
        super().__init__(f"Serialized item not found: {item_id}")


class InvalidQuantityError(ValidationError):
    """A quantity input is zero or negative where that is not allowed."""

    code: str = "INVALID_QUANTITY"

    def __init__(self, field: str, value: object, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid {field} {value!r}: {reason}")


class NegativeStockError(ValidationError):
    """Appending the movement would drive on-hand quantity below zero."""

    code: str = "NEGATIVE_STOCK"

    def __init__(
        self,
        part_id: str,
        movement_type: str,
        quantity_before: int,
        quantity_change: int,
    ):
        self.part_id = part_id
        self.movement_type = movement_type
        self.quantity_before = quantity_before
        self.quantity_change = quantity_change
        self.quantity_after = quantity_before + quantity_change
        super().__init__(
            f"Movement {movement_type} of {quantity_change} on part {part_id} "
            f"would leave {self.quantity_after} on hand (before={quantity_before})"
        )


class InvalidMovementTypeError(ValidationError):
    """Movement type is not one of the known ledger movement types."""

    code: str = "INVALID_MOVEMENT_TYPE"

    def __init__(self, movement_type: str):
        self.movement_type = movement_type
        super().__init__(f"Unknown movement type: {movement_type}")


class DuplicatePartNumberError(ValidationError):
    """Part number is already used by another part in the tenant."""

    code: str = "DUPLICATE_PART_NUMBER"

    def __init__(self, part_number: str):
        self.part_number = part_number
        super().__init__(f"Part number already exists: {part_number}")


class DuplicatePONumberError(ValidationError):
    """PO number is already used by another purchase order in the tenant."""

    code: str = "DUPLICATE_PO_NUMBER"

    def __init__(self, po_number: str):
        self.po_number = po_number
        super().__init__(f"PO number already exists: {po_number}")


class DuplicateSerialNumberError(ValidationError):
    """Serial number is already registered for this part."""

    code: str = "DUPLICATE_SERIAL_NUMBER"

    def __init__(self, part_id: str, serial_number: str):
        self.part_id = part_id
        self.serial_number = serial_number
        super().__init__(
            f"Serial number {serial_number!r} already registered for part {part_id}"
        )


class ReceivingClosedError(ValidationError):
    """Purchase order does not accept receipts in its current status."""

    code: str = "RECEIVING_CLOSED"

    def __init__(self, purchase_order_id: str, status: str):
        self.purchase_order_id = purchase_order_id
        self.status = status
        super().__init__(
            f"Purchase order {purchase_order_id} is {status} and cannot receive"
        )


class InvalidContextError(ValidationError):
    """Ledger context is missing its tenant or actor."""

    code: str = "INVALID_CONTEXT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid ledger context: {reason}")


# Concurrency


class ConcurrencyConflictError(StockKernelError):
    """
    Part quantity changed between read and write of an append.

    The caller must re-read and retry.
    """

    code: str = "CONCURRENCY_CONFLICT"

    def __init__(
        self,
        part_id: str,
        expected_quantity: int,
        actual_quantity: int | None = None,
        attempts: int = 1,
    ):
        self.part_id = part_id
        self.expected_quantity = expected_quantity
        self.actual_quantity = actual_quantity
        self.attempts = attempts
        super().__init__(
            f"Concurrent modification of part {part_id}: expected quantity "
            f"{expected_quantity}, found {actual_quantity} after {attempts} attempt(s)"
        )


# Batch


class PartialFailureError(StockKernelError):
    """A batch committed some lines and failed others."""

    code: str = "PARTIAL_FAILURE"

    def __init__(self, result: BatchResult):
        self.result = result
        self.failed_line_ids = [str(f.line_id) for f in result.failed]
        self.succeeded_line_ids = [str(line_id) for line_id in result.succeeded]
        super().__init__(
            f"{result.operation} for {result.reference_id}: "
            f"{len(result.succeeded)} line(s) succeeded, "
            f"{len(result.failed)} line(s) failed"
        )


# State machine


class InvalidTransitionError(StockKernelError):
    """Requested status change is not an allowed edge."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, entity_type: str, entity_id: str, from_state: str, to_state: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.from_state = from_state
        self.to_state = to_state
        super().__init__(
            f"Invalid transition for {entity_type} {entity_id}: {from_state} -> {to_state}"
        )


# Permission


class TenantAccessError(StockKernelError):
    """Row exists but belongs to a different tenant."""

    code: str = "TENANT_ACCESS_DENIED"

    def __init__(self, entity_type: str, entity_id: str, tenant_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.tenant_id = tenant_id
        super().__init__(
            f"{entity_type} {entity_id} is not accessible from tenant {tenant_id}"
        )


# Immutability


class ImmutabilityViolationError(StockKernelError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
