"""
Module: stock_kernel.models.purchase_order
Responsibility: ORM persistence for purchase orders and their line items.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - po_number is unique per tenant.
    - POItem.quantity_ordered > 0.
    - POItem.quantity_received is monotonic: it never decreases
      (db/immutability.py).
    - total = subtotal + tax + shipping (maintained by PurchaseOrderReceiver).

Failure modes:
    - IntegrityError on duplicate (tenant_id, po_number).
    - ImmutabilityViolationError when quantity_received would decrease.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from stock_kernel.db.base import TenantScopedBase, UUIDString

if TYPE_CHECKING:
    from stock_kernel.domain.dtos import POItemInfo, PurchaseOrderInfo


class PurchaseOrder(TenantScopedBase):
    """
    A supplier order whose receipt feeds the stock ledger.

    Contract:
        Status follows PURCHASE_ORDER_WORKFLOW.  Receiving is driven line by
        line; the status is derived from the lines after each receive().
    """

    __tablename__ = "purchase_orders"

    __table_args__ = (
        UniqueConstraint("tenant_id", "po_number", name="uq_purchase_orders_tenant_po_number"),
        CheckConstraint(
            "status IN ('draft', 'ordered', 'partially_received', 'received', 'cancelled')",
            name="ck_purchase_orders_valid_status",
        ),
        Index("idx_purchase_orders_tenant_created", "tenant_id", "created_at"),
    )

    po_number: Mapped[str] = mapped_column(String(50), nullable=False)

    supplier: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_contact: Mapped[str | None] = mapped_column(String(255), nullable=True)
    supplier_email: Mapped[str | None] = mapped_column(String(255), nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="draft")

    order_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expected_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    received_date: Mapped[datetime | None] = mapped_column(nullable=True)

    subtotal: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    tax: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    shipping: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    total: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    items: Mapped[list["POItem"]] = relationship(
        "POItem",
        back_populates="purchase_order",
        order_by="POItem.line_number",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<PurchaseOrder {self.po_number} status={self.status}>"

    def to_dto(self) -> PurchaseOrderInfo:
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import PurchaseOrderInfo
        from stock_kernel.domain.enums import PurchaseOrderStatus

        return PurchaseOrderInfo(
            id=self.id,
            po_number=self.po_number,
            status=PurchaseOrderStatus(self.status),
            supplier=self.supplier,
            subtotal=self.subtotal,
            tax=self.tax,
            shipping=self.shipping,
            total=self.total,
            created_at=self.created_at,
            supplier_contact=self.supplier_contact,
            supplier_email=self.supplier_email,
            order_date=self.order_date,
            expected_date=self.expected_date,
            received_date=self.received_date,
            notes=self.notes,
            items=tuple(item.to_dto() for item in self.items),
        )


class POItem(TenantScopedBase):
    """
    One ordered line.  part_id is optional: free-text lines (shop supplies,
    special orders) are received without touching stock.
    """

    __tablename__ = "purchase_order_items"

    __table_args__ = (
        CheckConstraint("quantity_ordered > 0", name="ck_po_items_quantity_ordered"),
        CheckConstraint("quantity_received >= 0", name="ck_po_items_quantity_received"),
        Index("idx_po_items_purchase_order", "purchase_order_id", "line_number"),
    )

    purchase_order_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("purchase_orders.id"),
        nullable=False,
    )

    line_number: Mapped[int] = mapped_column(nullable=False)

    part_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("stock_parts.id"),
        nullable=True,
    )

    part_name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    part_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    quantity_ordered: Mapped[int] = mapped_column(nullable=False)
    quantity_received: Mapped[int] = mapped_column(nullable=False, default=0, active_history=True)

    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)
    total_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    received_date: Mapped[datetime | None] = mapped_column(nullable=True)

    purchase_order: Mapped[PurchaseOrder] = relationship(
        "PurchaseOrder",
        back_populates="items",
    )

    @property
    def is_closed(self) -> bool:
        return self.quantity_received >= self.quantity_ordered

    def __repr__(self) -> str:
        return (
            f"<POItem {self.line_number} po={self.purchase_order_id} "
            f"{self.quantity_received}/{self.quantity_ordered}>"
        )

    def to_dto(self) -> POItemInfo:
        """Convert ORM model to frozen domain DTO."""
        from stock_kernel.domain.dtos import POItemInfo

        return POItemInfo(
            id=self.id,
            purchase_order_id=self.purchase_order_id,
            part_id=self.part_id,
            part_name=self.part_name,
            part_number=self.part_number,
            quantity_ordered=self.quantity_ordered,
            quantity_received=self.quantity_received,
            unit_cost=self.unit_cost,
            total_cost=self.total_cost,
            received_date=self.received_date,
        )
