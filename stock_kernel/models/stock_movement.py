"""
Module: stock_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: UPDATE and DELETE are rejected by db/immutability.py.
    - (part_id, sequence) is unique; sequence is the per-part creation order
      used when replaying the ledger.
    - quantity_after = quantity_before + quantity_change, and
      quantity_change is never zero (check constraints).

Failure modes:
    - IntegrityError on duplicate (part_id, sequence): a concurrent append
      won the race for this sequence number.
    - ImmutabilityViolationError on any UPDATE or DELETE.

Audit relevance:
    The movement log is the source of truth for on-hand quantity.
    Part.quantity is a cache of its running sum.
"""

from __future__ import annotations

from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from stock_kernel.domain.dtos import StockMovementInfo


class StockMovement(TenantScopedBase):
    """One immutable, signed quantity change for a part."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("part_id", "sequence", name="uq_stock_movements_part_sequence"),
        CheckConstraint("quantity_change <> 0", name="ck_stock_movements_nonzero"),
        CheckConstraint(
            "quantity_after = quantity_before + quantity_change",
            name="ck_stock_movements_arithmetic",
        ),
        Index("idx_stock_movements_tenant_created", "tenant_id", "created_at"),
        Index("idx_stock_movements_job", "job_id"),
        Index("idx_stock_movements_purchase_order", "purchase_order_id"),
    )

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_parts.id"),
        nullable=False,
    )

    sequence: Mapped[int] = mapped_column(nullable=False)

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    quantity_change: Mapped[int] = mapped_column(nullable=False)
    quantity_before: Mapped[int] = mapped_column(nullable=False)
    quantity_after: Mapped[int] = mapped_column(nullable=False)

    # Source references.  Jobs live outside the kernel, so job_id is not a FK.
    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    purchase_order_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_orders.id"), nullable=True,
    )
    job_part_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("job_parts.id"), nullable=True,
    )
    po_item_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("purchase_order_items.id"), nullable=True,
    )

    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return (
            f"<StockMovement part={self.part_id} #{self.sequence} "
            f"{self.movement_type} {self.quantity_change:+d}>"
        )

    def to_dto(self) -> StockMovementInfo:
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import StockMovementInfo
        from stock_kernel.domain.enums import MovementType

        return StockMovementInfo(
            id=self.id,
            part_id=self.part_id,
            sequence=self.sequence,
            movement_type=MovementType(self.movement_type),
            quantity_change=self.quantity_change,
            quantity_before=self.quantity_before,
            quantity_after=self.quantity_after,
            actor_id=self.created_by_id,
            created_at=self.created_at,
            job_id=self.job_id,
            purchase_order_id=self.purchase_order_id,
            job_part_id=self.job_part_id,
            po_item_id=self.po_item_id,
            reason=self.reason,
            notes=self.notes,
        )
