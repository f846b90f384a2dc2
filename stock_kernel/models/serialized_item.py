"""
Module: stock_kernel.models.serialized_item
Responsibility: ORM persistence for individually serial-numbered units.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - serial_number is unique within a part.
    - status follows SERIALIZED_ITEM_WORKFLOW (enforced by
      SerializedUnitTracker; the check constraint only limits the values).

Failure modes:
    - IntegrityError on duplicate (part_id, serial_number).
"""

from __future__ import annotations

from datetime import date
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from stock_kernel.domain.dtos import SerializedItemInfo


class SerializedItem(TenantScopedBase):
    """One physical unit of a part, tracked independently of Part.quantity."""

    __tablename__ = "serialized_items"

    __table_args__ = (
        UniqueConstraint("part_id", "serial_number", name="uq_serialized_items_part_serial"),
        CheckConstraint(
            "status IN ('in_stock', 'reserved', 'sold', 'used_in_job', 'returned', 'damaged')",
            name="ck_serialized_items_valid_status",
        ),
        Index("idx_serialized_items_part_status", "tenant_id", "part_id", "status"),
    )

    part_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("stock_parts.id"),
        nullable=False,
    )

    serial_number: Mapped[str] = mapped_column(String(100), nullable=False)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="in_stock")

    job_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    customer_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    acquisition_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    acquisition_source: Mapped[str | None] = mapped_column(String(255), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<SerializedItem {self.serial_number} part={self.part_id} {self.status}>"

    def to_dto(self) -> SerializedItemInfo:
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import SerializedItemInfo
        from stock_kernel.domain.enums import SerialStatus

        return SerializedItemInfo(
            id=self.id,
            part_id=self.part_id,
            serial_number=self.serial_number,
            status=SerialStatus(self.status),
            created_at=self.created_at,
            job_id=self.job_id,
            customer_id=self.customer_id,
            acquisition_date=self.acquisition_date,
            acquisition_source=self.acquisition_source,
            notes=self.notes,
        )
