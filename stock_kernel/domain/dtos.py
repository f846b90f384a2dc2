"""
Data Transfer Objects for the stock kernel.

Responsibility:
    Frozen dataclasses returned by services and selectors, and the input
    value objects accepted by batch operations.  Callers never receive ORM
    instances, so nothing outside the kernel can write Part.quantity.

Architecture position:
    Kernel > Domain -- pure data, no I/O.  Imported by models (to_dto),
    services and selectors.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from stock_kernel.domain.enums import (
    LineOutcome,
    MovementType,
    PurchaseOrderStatus,
    SerialStatus,
)


# =============================================================================
# Entity DTOs
# =============================================================================


@dataclass(frozen=True)
class PartInfo:
    """Immutable view of a stocked part."""

    id: UUID
    tenant_id: UUID
    name: str
    part_number: str | None
    quantity: int
    min_quantity: int
    unit_cost: Decimal | None = None
    retail_price: Decimal | None = None
    category: str | None = None
    manufacturer: str | None = None
    location: str | None = None
    is_serialized: bool = False
    compatible_firearms: tuple[str, ...] = ()
    movement_seq: int = 0

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_quantity


@dataclass(frozen=True)
class StockMovementInfo:
    """Immutable view of one ledger movement."""

    id: UUID
    part_id: UUID
    sequence: int
    movement_type: MovementType
    quantity_change: int
    quantity_before: int
    quantity_after: int
    actor_id: UUID
    created_at: datetime
    job_id: UUID | None = None
    purchase_order_id: UUID | None = None
    job_part_id: UUID | None = None
    po_item_id: UUID | None = None
    reason: str | None = None
    notes: str | None = None


@dataclass(frozen=True)
class JobPartInfo:
    """Immutable view of a part allocated to a job."""

    id: UUID
    job_id: UUID
    part_id: UUID
    quantity: int
    unit_price: Decimal | None
    total_price: Decimal | None
    is_deducted: bool
    deducted_at: datetime | None = None
    quantity_deducted: int | None = None
    notes: str | None = None


@dataclass(frozen=True)
class POItemInfo:
    """Immutable view of one purchase order line."""

    id: UUID
    purchase_order_id: UUID
    part_id: UUID | None
    part_name: str | None
    part_number: str | None
    quantity_ordered: int
    quantity_received: int
    unit_cost: Decimal | None = None
    total_cost: Decimal | None = None
    received_date: datetime | None = None

    @property
    def is_closed(self) -> bool:
        return self.quantity_received >= self.quantity_ordered

    @property
    def quantity_outstanding(self) -> int:
        return max(0, self.quantity_ordered - self.quantity_received)


@dataclass(frozen=True)
class PurchaseOrderInfo:
    """Immutable view of a purchase order and its lines."""

    id: UUID
    po_number: str
    status: PurchaseOrderStatus
    supplier: str | None
    subtotal: Decimal
    tax: Decimal
    shipping: Decimal
    total: Decimal
    created_at: datetime
    supplier_contact: str | None = None
    supplier_email: str | None = None
    order_date: date | None = None
    expected_date: date | None = None
    received_date: datetime | None = None
    notes: str | None = None
    items: tuple[POItemInfo, ...] = ()

    @property
    def is_fully_received(self) -> bool:
        return bool(self.items) and all(item.is_closed for item in self.items)


@dataclass(frozen=True)
class SerializedItemInfo:
    """Immutable view of one serialized unit."""

    id: UUID
    part_id: UUID
    serial_number: str
    status: SerialStatus
    created_at: datetime
    job_id: UUID | None = None
    customer_id: UUID | None = None
    acquisition_date: date | None = None
    acquisition_source: str | None = None
    notes: str | None = None


# =============================================================================
# Command inputs
# =============================================================================


@dataclass(frozen=True)
class NewPOItem:
    """One line of a purchase order being created."""

    quantity_ordered: int
    part_id: UUID | None = None
    part_name: str | None = None
    part_number: str | None = None
    unit_cost: Decimal | None = None


@dataclass(frozen=True)
class ReceiptLine:
    """Quantity physically received against one PO item."""

    po_item_id: UUID
    quantity_received: int


# =============================================================================
# Results
# =============================================================================


@dataclass(frozen=True)
class LineFailure:
    """Why one batch line did not commit."""

    line_id: UUID
    code: str
    message: str


@dataclass(frozen=True)
class LineResult:
    """Outcome of one batch line."""

    line_id: UUID
    outcome: LineOutcome
    movement: StockMovementInfo | None = None
    failure: LineFailure | None = None


@dataclass(frozen=True)
class BatchResult:
    """
    Aggregate result of ``deduct_for_job`` / ``receive``.

    Guarantees:
        Every input line appears exactly once, as succeeded, skipped or
        failed.  Failures are never dropped.
    """

    operation: str
    reference_id: UUID
    lines: tuple[LineResult, ...] = field(default_factory=tuple)

    @property
    def succeeded(self) -> tuple[UUID, ...]:
        return tuple(r.line_id for r in self.lines if r.outcome == LineOutcome.SUCCEEDED)

    @property
    def skipped(self) -> tuple[UUID, ...]:
        return tuple(r.line_id for r in self.lines if r.outcome == LineOutcome.SKIPPED)

    @property
    def failed(self) -> tuple[LineFailure, ...]:
        return tuple(r.failure for r in self.lines if r.failure is not None)

    @property
    def movements(self) -> tuple[StockMovementInfo, ...]:
        return tuple(r.movement for r in self.lines if r.movement is not None)

    @property
    def has_failures(self) -> bool:
        return any(r.outcome == LineOutcome.FAILED for r in self.lines)

    def raise_for_failures(self) -> None:
        """Raise PartialFailureError if any line failed."""
        if self.has_failures:
            from stock_kernel.exceptions import PartialFailureError

            raise PartialFailureError(self)


@dataclass(frozen=True)
class RecomputeResult:
    """Outcome of replaying a part's ledger."""

    part_id: UUID
    previous_quantity: int
    recomputed_quantity: int
    movement_count: int

    @property
    def drift(self) -> int:
        return self.previous_quantity - self.recomputed_quantity

    @property
    def corrected(self) -> bool:
        return self.drift != 0


@dataclass(frozen=True)
class DriftEntry:
    """A part whose stored quantity disagrees with its ledger."""

    part_id: UUID
    name: str
    stored_quantity: int
    ledger_quantity: int

    @property
    def drift(self) -> int:
        return self.stored_quantity - self.ledger_quantity


@dataclass(frozen=True)
class SerialCountSummary:
    """Serialized-unit counts for a part next to its aggregate quantity."""

    part_id: UUID
    aggregate_quantity: int
    counts: dict[SerialStatus, int]

    @property
    def on_hand_units(self) -> int:
        return sum(
            self.counts.get(status, 0)
            for status in (SerialStatus.IN_STOCK, SerialStatus.RESERVED, SerialStatus.RETURNED)
        )

    @property
    def difference(self) -> int:
        return self.aggregate_quantity - self.on_hand_units
