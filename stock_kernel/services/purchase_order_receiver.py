"""
PurchaseOrderReceiver -- purchase order lifecycle and receiving.

Responsibility:
    Creates purchase orders, moves them through PURCHASE_ORDER_WORKFLOW and
    receives shipments line by line.  Received quantities for lines linked
    to a part become ``purchase`` movements through StockLedger.

Invariants enforced:
    - POItem.quantity_received only grows (atomic increment UPDATE).
    - Each receipt line runs in its own SAVEPOINT; one failed line never
      rolls back another.
    - PO status after receive(): ``received`` when every line is closed,
      otherwise ``partially_received`` once anything has been received.

Not idempotent:
    Receiving the same lines twice records two receipts.  Callers that
    retry must track what they already submitted.

Failure modes:
    - PurchaseOrderNotFoundError / TenantAccessError for the PO.
    - ReceivingClosedError for a cancelled PO.
    - InvalidTransitionError for a disallowed mark_ordered / cancel.
    - DuplicatePONumberError for an explicit po_number already in use.
    - Line-level errors are returned in the BatchResult.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from typing import Sequence
from uuid import UUID

from sqlalchemy import select, update

from stock_kernel.domain.dtos import (
    BatchResult,
    LineFailure,
    LineResult,
    NewPOItem,
    POItemInfo,
    PurchaseOrderInfo,
    ReceiptLine,
)
from stock_kernel.domain.enums import LineOutcome, MovementType, PurchaseOrderStatus
from stock_kernel.domain.quantities import MAX_QUANTITY, require_money, require_quantity
from stock_kernel.domain.workflows import PURCHASE_ORDER_WORKFLOW, RECEIVABLE_PO_STATUSES
from stock_kernel.exceptions import (
    DuplicatePONumberError,
    InvalidQuantityError,
    InvalidTransitionError,
    PartNotFoundError,
    POItemNotFoundError,
    PurchaseOrderNotFoundError,
    ReceivingClosedError,
    StockKernelError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.part import Part
from stock_kernel.models.purchase_order import POItem, PurchaseOrder
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.purchase_order_receiver")

_BASE36 = "0123456789ABCDEFGHIJKLMNOPQRSTUVWXYZ"


def to_base36(value: int) -> str:
    if value < 0:
        raise ValueError("value must be non-negative")
    if value == 0:
        return "0"
    digits = []
    while value:
        value, rem = divmod(value, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


class PurchaseOrderReceiver(BaseService[PurchaseOrder]):
    """Purchase orders: create, order, cancel, receive."""

    def __init__(
        self,
        session,
        context,
        clock=None,
        config=None,
        auto_commit: bool = False,
        ledger: StockLedger | None = None,
    ):
        super().__init__(session, context, clock, config, auto_commit)
        self.ledger = ledger or StockLedger(session, context, self._clock, self.config)

    def _get_po(self, po_id: UUID, *, for_update: bool = False) -> PurchaseOrder:
        return self._load(
            PurchaseOrder, po_id, PurchaseOrderNotFoundError(str(po_id)), for_update=for_update,
        )

    def _po_number_taken(self, po_number: str) -> bool:
        return self.session.execute(
            select(PurchaseOrder.id).where(
                PurchaseOrder.tenant_id == self.tenant_id,
                PurchaseOrder.po_number == po_number,
            )
        ).first() is not None

    def _generate_po_number(self) -> str:
        """``{prefix}{base36 millisecond timestamp}``, bumped until unused."""
        millis = int(self._clock.now().timestamp() * 1000)
        while True:
            candidate = f"{self.config.po_number_prefix}{to_base36(millis)}"
            if not self._po_number_taken(candidate):
                return candidate
            millis += 1

    # -------------------------------------------------------------------------
    # Lifecycle
    # -------------------------------------------------------------------------

    def create_purchase_order(
        self,
        supplier: str | None = None,
        items: Sequence[NewPOItem] = (),
        *,
        supplier_contact: str | None = None,
        supplier_email: str | None = None,
        order_date: date | None = None,
        expected_date: date | None = None,
        tax: Decimal = Decimal("0"),
        shipping: Decimal = Decimal("0"),
        notes: str | None = None,
        po_number: str | None = None,
    ) -> PurchaseOrderInfo:
        """
        Create a draft purchase order with its lines.

        subtotal is the sum of quantity_ordered * unit_cost over lines with
        a unit cost; total = subtotal + tax + shipping.
        """
        tax = require_money("tax", tax)
        shipping = require_money("shipping", shipping)

        if po_number is not None:
            if self._po_number_taken(po_number):
                raise DuplicatePONumberError(po_number)
        else:
            po_number = self._generate_po_number()

        with self._log_scope():
            stamp = self._stamp()
            po = PurchaseOrder(
                po_number=po_number,
                supplier=supplier,
                supplier_contact=supplier_contact,
                supplier_email=supplier_email,
                status=PURCHASE_ORDER_WORKFLOW.initial_state,
                order_date=order_date,
                expected_date=expected_date,
                tax=tax,
                shipping=shipping,
                notes=notes,
                **stamp,
            )
            self.session.add(po)
            self.session.flush()

            subtotal = Decimal("0")
            for line_number, new_item in enumerate(items, start=1):
                item = self._build_item(po, line_number, new_item, stamp)
                self.session.add(item)
                if item.total_cost is not None:
                    subtotal += item.total_cost

            po.subtotal = require_money("subtotal", subtotal)
            po.total = require_money("total", subtotal + tax + shipping)
            self.session.flush()
            self.session.expire(po, ["items"])

            logger.info(
                "purchase_order_created",
                extra={
                    "purchase_order_id": str(po.id),
                    "po_number": po_number,
                    "item_count": len(items),
                    "total": po.total,
                },
            )
            return po.to_dto()

    def _build_item(self, po: PurchaseOrder, line_number: int, new_item: NewPOItem, stamp: dict) -> POItem:
        qty = require_quantity("quantity_ordered", new_item.quantity_ordered, minimum=1)

        part_name = new_item.part_name
        part_number = new_item.part_number
        if new_item.part_id is not None:
            part = self._load(Part, new_item.part_id, PartNotFoundError(str(new_item.part_id)))
            part_name = part_name or part.name
            part_number = part_number or part.part_number

        unit_cost = total_cost = None
        if new_item.unit_cost is not None:
            unit_cost = require_money("unit_cost", new_item.unit_cost)
            total_cost = require_money("total_cost", unit_cost * qty)
        return POItem(
            purchase_order_id=po.id,
            line_number=line_number,
            part_id=new_item.part_id,
            part_name=part_name,
            part_number=part_number,
            quantity_ordered=qty,
            quantity_received=0,
            unit_cost=unit_cost,
            total_cost=total_cost,
            **stamp,
        )

    def _transition(self, po_id: UUID, to_status: PurchaseOrderStatus) -> PurchaseOrderInfo:
        with self._log_scope(purchase_order_id=po_id):
            po = self._get_po(po_id, for_update=True)
            from_status = po.status
            if not PURCHASE_ORDER_WORKFLOW.is_allowed(from_status, to_status.value):
                raise InvalidTransitionError("PurchaseOrder", str(po_id), from_status, to_status.value)

            po.status = to_status.value
            po.updated_by_id = self.actor_id
            if to_status == PurchaseOrderStatus.ORDERED and po.order_date is None:
                po.order_date = self._clock.today()
            self.session.flush()

            logger.info(
                "purchase_order_status_changed",
                extra={"from_status": from_status, "to_status": to_status.value},
            )
            return po.to_dto()

    def mark_ordered(self, po_id: UUID) -> PurchaseOrderInfo:
        """draft -> ordered."""
        return self._transition(po_id, PurchaseOrderStatus.ORDERED)

    def cancel(self, po_id: UUID) -> PurchaseOrderInfo:
        """draft or ordered -> cancelled."""
        return self._transition(po_id, PurchaseOrderStatus.CANCELLED)

    # -------------------------------------------------------------------------
    # Receiving
    # -------------------------------------------------------------------------

    def receive(self, po_id: UUID, lines: Sequence[ReceiptLine]) -> BatchResult:
        """
        Receive quantities against PO lines.

        Each line is processed independently:
            - not an item of this PO  -> failed (PO_ITEM_NOT_FOUND)
            - quantity 0              -> skipped
            - quantity < 0            -> failed (INVALID_QUANTITY)
            - linked part             -> ``purchase`` movement, then increment
            - free-text line          -> increment only

        Raises:
            PurchaseOrderNotFoundError / TenantAccessError: unknown PO.
            ReceivingClosedError: the PO is cancelled.
        """
        with self._log_scope(purchase_order_id=po_id):
            po = self._get_po(po_id, for_update=True)
            if po.status not in RECEIVABLE_PO_STATUSES:
                logger.warning(
                    "purchase_order_receiving_closed",
                    extra={"status": po.status},
                )
                raise ReceivingClosedError(str(po_id), po.status)

            results = tuple(self._receive_line(po, line) for line in lines)
            self._update_status(po)

            result = BatchResult(operation="receive", reference_id=po_id, lines=results)
            logger.info(
                "purchase_order_receive_completed",
                extra={
                    "po_number": po.po_number,
                    "status": po.status,
                    "succeeded": len(result.succeeded),
                    "skipped": len(result.skipped),
                    "failed": len(result.failed),
                },
            )
            return result

    def _receive_line(self, po: PurchaseOrder, line: ReceiptLine) -> LineResult:
        line_id = line.po_item_id
        savepoint = self.session.begin_nested()
        try:
            item = self.session.execute(
                select(POItem).where(
                    POItem.id == line.po_item_id,
                    POItem.purchase_order_id == po.id,
                    POItem.tenant_id == self.tenant_id,
                )
            ).scalar_one_or_none()
            if item is None:
                raise POItemNotFoundError(str(line.po_item_id), str(po.id))

            qty = require_quantity("quantity_received", line.quantity_received, minimum=0)
            if qty > MAX_QUANTITY - item.quantity_received:
                raise InvalidQuantityError(
                    "quantity_received", qty, f"would take the line past {MAX_QUANTITY}",
                )
            if qty == 0:
                savepoint.rollback()
                logger.info("po_line_skipped", extra={"po_item_id": str(line_id)})
                return LineResult(line_id=line_id, outcome=LineOutcome.SKIPPED)

            movement = None
            if item.part_id is not None:
                movement = self.ledger.append(
                    item.part_id,
                    MovementType.PURCHASE,
                    qty,
                    purchase_order_id=po.id,
                    po_item_id=item.id,
                    reason=f"Received on {po.po_number}",
                )

            now = self._clock.now()
            self.session.execute(
                update(POItem)
                .where(POItem.id == item.id)
                .values(
                    quantity_received=POItem.quantity_received + qty,
                    received_date=now,
                    updated_at=now,
                    updated_by_id=self.actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            savepoint.commit()
        except StockKernelError as exc:
            savepoint.rollback()
            logger.warning(
                "po_line_receive_failed",
                extra={
                    "po_item_id": str(line_id),
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )
            return LineResult(
                line_id=line_id,
                outcome=LineOutcome.FAILED,
                failure=LineFailure(line_id=line_id, code=exc.code, message=str(exc)),
            )
        except Exception:
            savepoint.rollback()
            raise

        self.session.expire(item)
        logger.info(
            "po_line_received",
            extra={
                "po_item_id": str(line_id),
                "part_id": str(item.part_id) if item.part_id else None,
                "quantity_received": qty,
                "movement_id": str(movement.id) if movement else None,
            },
        )
        self._commit_if_auto()
        return LineResult(line_id=line_id, outcome=LineOutcome.SUCCEEDED, movement=movement)

    def _update_status(self, po: PurchaseOrder) -> None:
        """Derive PO status from its lines after a receive."""
        items = list(
            self.session.execute(
                select(POItem.quantity_ordered, POItem.quantity_received)
                .where(POItem.purchase_order_id == po.id)
            )
        )
        any_received = any(received > 0 for _, received in items)
        all_closed = bool(items) and all(received >= ordered for ordered, received in items)

        if all_closed:
            target = PurchaseOrderStatus.RECEIVED.value
        elif any_received:
            target = PurchaseOrderStatus.PARTIALLY_RECEIVED.value
        else:
            target = po.status

        if target != po.status and PURCHASE_ORDER_WORKFLOW.is_allowed(po.status, target):
            from_status = po.status
            po.status = target
            po.updated_by_id = self.actor_id
            logger.info(
                "purchase_order_status_changed",
                extra={"from_status": from_status, "to_status": target},
            )

        if po.status == PurchaseOrderStatus.RECEIVED.value and po.received_date is None:
            po.received_date = self._clock.now()

        self.session.flush()
        self.session.expire(po, ["items"])
        self._commit_if_auto()

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def get_purchase_order(self, po_id: UUID) -> PurchaseOrderInfo:
        po = self._get_po(po_id)
        self.session.expire(po, ["items"])
        return po.to_dto()

    def list_purchase_orders(self, status: PurchaseOrderStatus | str | None = None) -> list[PurchaseOrderInfo]:
        """Newest first."""
        stmt = select(PurchaseOrder).where(PurchaseOrder.tenant_id == self.tenant_id)
        if status is not None:
            stmt = stmt.where(PurchaseOrder.status == PurchaseOrderStatus(status).value)
        stmt = stmt.order_by(PurchaseOrder.created_at.desc(), PurchaseOrder.po_number.desc())
        return [po.to_dto() for po in self.session.execute(stmt).scalars()]

    def list_items(self, po_id: UUID) -> list[POItemInfo]:
        po = self._get_po(po_id)
        stmt = (
            select(POItem)
            .where(POItem.purchase_order_id == po.id)
            .order_by(POItem.line_number)
        )
        return [item.to_dto() for item in self.session.execute(stmt).scalars()]
