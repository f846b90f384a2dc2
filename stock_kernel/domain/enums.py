"""
Enumerations shared by models, services and selectors.

All enums are ``str`` subclasses and are stored as their string value
(String columns) for portability and readability.
"""

from enum import Enum


class MovementType(str, Enum):
    """Kind of stock movement recorded in the ledger."""

    ADJUSTMENT = "adjustment"
    JOB_USAGE = "job_usage"
    PURCHASE = "purchase"
    RETURN = "return"
    TRANSFER = "transfer"
    DAMAGE = "damage"
    COUNT = "count"


class PurchaseOrderStatus(str, Enum):
    """Purchase order lifecycle status."""

    DRAFT = "draft"
    ORDERED = "ordered"
    PARTIALLY_RECEIVED = "partially_received"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class SerialStatus(str, Enum):
    """Lifecycle status of one serialized unit."""

    IN_STOCK = "in_stock"
    RESERVED = "reserved"
    SOLD = "sold"
    USED_IN_JOB = "used_in_job"
    RETURNED = "returned"
    DAMAGED = "damaged"


class DeductionPolicy(str, Enum):
    """How job deduction handles requests larger than on-hand stock."""

    FLOOR = "floor"
    REJECT = "reject"


class LineOutcome(str, Enum):
    """Per-line result of a batch operation."""

    SUCCEEDED = "succeeded"
    SKIPPED = "skipped"
    FAILED = "failed"
