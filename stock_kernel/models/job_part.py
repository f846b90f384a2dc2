"""
Module: stock_kernel.models.job_part
Responsibility: ORM persistence for parts allocated to (and consumed by) a
    repair job.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - quantity > 0.
    - Lifecycle allocated -> deducted is one-way.  Once is_deducted is true
      the row is frozen (db/immutability.py).
    - The allocated -> deducted flip happens through a compare-and-swap
      UPDATE on is_deducted = false, so a line is deducted at most once.

Failure modes:
    - ImmutabilityViolationError on any change to a deducted row.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import Boolean, CheckConstraint, ForeignKey, Index, Text
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from stock_kernel.domain.dtos import JobPartInfo


class JobPart(TenantScopedBase):
    """
    Soft allocation of a quantity of one part to one job.

    Allocation never touches Part.quantity; only deduction does.
    """

    __tablename__ = "job_parts"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_job_parts_quantity_positive"),
        Index("idx_job_parts_job_pending", "tenant_id", "job_id", "is_deducted"),
        Index("idx_job_parts_part", "part_id"),
    )

    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_parts.id"),
        nullable=False,
    )

    # Allocation order within the job
    line_number: Mapped[int] = mapped_column(nullable=False, default=1)

    quantity: Mapped[int] = mapped_column(nullable=False)

    unit_price: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    is_deducted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False, active_history=True)
    deducted_at: Mapped[datetime | None] = mapped_column(nullable=True)

    # Units actually removed from stock (lower than quantity under floor policy)
    quantity_deducted: Mapped[int | None] = mapped_column(nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        state = "deducted" if self.is_deducted else "allocated"
        return f"<JobPart job={self.job_id} part={self.part_id} x{self.quantity} {state}>"

    def to_dto(self) -> JobPartInfo:
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import JobPartInfo

        return JobPartInfo(
            id=self.id,
            job_id=self.job_id,
            part_id=self.part_id,
            quantity=self.quantity,
            unit_price=self.unit_price,
            total_price=self.total_price,
            is_deducted=self.is_deducted,
            deducted_at=self.deducted_at,
            quantity_deducted=self.quantity_deducted,
            notes=self.notes,
        )
