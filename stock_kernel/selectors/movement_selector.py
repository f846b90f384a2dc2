"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over the stock movement ledger: history,
    replayed sums and the drift report used for reconciliation.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Ledger sums are computed from StockMovement rows, never from
      Part.quantity.
    - drift_report only reports; repair is StockLedger.recompute_from_ledger.
"""

from uuid import UUID

from sqlalchemy import func, select

from stock_config import get_active_config
from stock_config.schema import LedgerConfig
from stock_kernel.domain.dtos import DriftEntry, StockMovementInfo
from stock_kernel.exceptions import PartNotFoundError, PurchaseOrderNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.part import Part
from stock_kernel.models.purchase_order import PurchaseOrder
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.selectors.base import BaseSelector

logger = get_logger("selectors.movement")


class MovementSelector(BaseSelector[StockMovement]):
    """
    Selector for stock movement queries.

    Contract:
        Read-only.  All results are StockMovementInfo / DriftEntry DTOs.
    """

    def __init__(self, session, context, config: LedgerConfig | None = None):
        super().__init__(session, context)
        self.config = config or get_active_config()

    def history(self, part_id: UUID | None = None, limit: int | None = None) -> list[StockMovementInfo]:
        """
        Movements newest first.

        Args:
            part_id: Restrict to one part; all tenant movements when None.
            limit: Page size, default ``LedgerConfig.movement_history_limit``.
        """
        if limit is None:
            limit = self.config.movement_history_limit

        stmt = select(StockMovement).where(StockMovement.tenant_id == self.tenant_id)
        if part_id is not None:
            self._load(Part, part_id, PartNotFoundError(str(part_id)))
            stmt = stmt.where(StockMovement.part_id == part_id)
        stmt = stmt.order_by(
            StockMovement.created_at.desc(),
            StockMovement.sequence.desc(),
        ).limit(limit)
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def ledger_sum(self, part_id: UUID) -> int:
        """Sum of all quantity changes recorded for the part."""
        self._load(Part, part_id, PartNotFoundError(str(part_id)))
        stmt = select(func.coalesce(func.sum(StockMovement.quantity_change), 0)).where(
            StockMovement.part_id == part_id,
        )
        return int(self.session.execute(stmt).scalar_one())

    def movements_for_job(self, job_id: UUID) -> list[StockMovementInfo]:
        stmt = (
            select(StockMovement)
            .where(StockMovement.tenant_id == self.tenant_id, StockMovement.job_id == job_id)
            .order_by(StockMovement.created_at, StockMovement.part_id, StockMovement.sequence)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def movements_for_purchase_order(self, po_id: UUID) -> list[StockMovementInfo]:
        self._load(PurchaseOrder, po_id, PurchaseOrderNotFoundError(str(po_id)))
        stmt = (
            select(StockMovement)
            .where(
                StockMovement.tenant_id == self.tenant_id,
                StockMovement.purchase_order_id == po_id,
            )
            .order_by(StockMovement.created_at, StockMovement.part_id, StockMovement.sequence)
        )
        return [m.to_dto() for m in self.session.execute(stmt).scalars()]

    def drift_report(self) -> list[DriftEntry]:
        """Parts whose stored quantity differs from the replayed ledger sum."""
        ledger_sum = func.coalesce(func.sum(StockMovement.quantity_change), 0)
        stmt = (
            select(Part.id, Part.name, Part.quantity, ledger_sum)
            .outerjoin(StockMovement, StockMovement.part_id == Part.id)
            .where(Part.tenant_id == self.tenant_id)
            .group_by(Part.id, Part.name, Part.quantity)
            .order_by(Part.name)
        )
        entries = [
            DriftEntry(
                part_id=part_id,
                name=name,
                stored_quantity=quantity,
                ledger_quantity=int(total),
            )
            for part_id, name, quantity, total in self.session.execute(stmt)
            if quantity != int(total)
        ]
        if entries:
            logger.warning(
                "ledger_drift_detected",
                extra={
                    "tenant_id": str(self.tenant_id),
                    "drifted_parts": len(entries),
                },
            )
        return entries
