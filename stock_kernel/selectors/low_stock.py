"""
LowStockMonitor -- parts at or below their minimum quantity.

Derived on every call from Part.quantity; no alert state is stored.
"""

from sqlalchemy import func, select

from stock_kernel.domain.dtos import PartInfo
from stock_kernel.models.part import Part
from stock_kernel.selectors.base import BaseSelector


class LowStockMonitor(BaseSelector[Part]):
    """Read-only low-stock view.  Equality counts as low."""

    def _criteria(self):
        return (
            Part.tenant_id == self.tenant_id,
            Part.quantity <= Part.min_quantity,
        )

    def list(self) -> list[PartInfo]:
        """Parts with ``quantity <= min_quantity``, by name."""
        stmt = select(Part).where(*self._criteria()).order_by(Part.name, Part.part_number)
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    def count(self) -> int:
        stmt = select(func.count(Part.id)).where(*self._criteria())
        return self.session.execute(stmt).scalar_one()
