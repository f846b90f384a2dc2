"""
Module: stock_kernel.models.part
Responsibility: ORM persistence for stocked parts and their derived on-hand
    quantity.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, or outer layers.

Invariants enforced:
    - quantity equals the sum of the part's StockMovement.quantity_change
      values.  It is written only by StockLedger through a compare-and-swap
      UPDATE; unit-of-work writes are rejected by db/immutability.py.
    - movement_seq counts the movements applied to the part.  It is both the
      next movement sequence number and the optimistic version for the CAS.
    - part_number is unique per tenant when present.

Failure modes:
    - IntegrityError on duplicate (tenant_id, part_number).
    - ImmutabilityViolationError on INSERT with non-zero quantity or on a
      unit-of-work UPDATE of quantity.
"""

from __future__ import annotations

from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, CheckConstraint, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TenantScopedBase

if TYPE_CHECKING:
    from stock_kernel.domain.dtos import PartInfo


class Part(TenantScopedBase):
    """
    A stocked part with its current aggregate quantity.

    Contract:
        Part is inserted with quantity 0.  Opening balances and every later
        change arrive as StockMovement rows appended by StockLedger.

    Non-goals:
        - Serialized units are tracked separately (SerializedItem) and are
          never reconciled against quantity automatically.
    """

    __tablename__ = "stock_parts"

    __table_args__ = (
        UniqueConstraint("tenant_id", "part_number", name="uq_stock_parts_tenant_part_number"),
        CheckConstraint("min_quantity >= 0", name="ck_stock_parts_min_quantity"),
        Index("idx_stock_parts_tenant_name", "tenant_id", "name"),
        Index("idx_stock_parts_low_stock", "tenant_id", "quantity", "min_quantity"),
    )

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    part_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    category: Mapped[str | None] = mapped_column(String(100), nullable=True)

    manufacturer: Mapped[str | None] = mapped_column(String(255), nullable=True)

    # Bin / shelf
    location: Mapped[str | None] = mapped_column(String(100), nullable=True)

    quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    min_quantity: Mapped[int] = mapped_column(nullable=False, default=0)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    retail_price: Mapped[Decimal | None] = mapped_column(nullable=True)

    is_serialized: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # Free-text "make model" strings, e.g. ["Glock 19", "Glock 17"]
    compatible_firearms: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)

    movement_seq: Mapped[int] = mapped_column(nullable=False, default=0)

    @property
    def is_low_stock(self) -> bool:
        return self.quantity <= self.min_quantity

    def __repr__(self) -> str:
        return f"<Part {self.part_number or self.id}: {self.name} qty={self.quantity}>"

    def to_dto(self) -> PartInfo:
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import PartInfo

        return PartInfo(
            id=self.id,
            tenant_id=self.tenant_id,
            name=self.name,
            part_number=self.part_number,
            quantity=self.quantity,
            min_quantity=self.min_quantity,
            unit_cost=self.unit_cost,
            retail_price=self.retail_price,
            category=self.category,
            manufacturer=self.manufacturer,
            location=self.location,
            is_serialized=self.is_serialized,
            compatible_firearms=tuple(self.compatible_firearms or ()),
            movement_seq=self.movement_seq,
        )
