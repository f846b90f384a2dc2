"""
SerialReconciliationSelector -- serialized units versus aggregate quantity.

Report only.  Serialized-unit counts and Part.quantity are allowed to
diverge; nothing here corrects either side.
"""

from uuid import UUID

from sqlalchemy import func, select

from stock_kernel.domain.dtos import SerialCountSummary
from stock_kernel.domain.enums import SerialStatus
from stock_kernel.exceptions import PartNotFoundError
from stock_kernel.models.part import Part
from stock_kernel.models.serialized_item import SerializedItem
from stock_kernel.selectors.base import BaseSelector


class SerialReconciliationSelector(BaseSelector[SerializedItem]):

    def summary(self, part_id: UUID) -> SerialCountSummary:
        """
        Counts by status for a part.

        ``on_hand_units`` (in_stock + reserved + returned) is compared with
        the part's aggregate quantity in ``difference``.
        """
        part = self._load(Part, part_id, PartNotFoundError(str(part_id)))
        rows = self.session.execute(
            select(SerializedItem.status, func.count(SerializedItem.id))
            .where(
                SerializedItem.tenant_id == self.tenant_id,
                SerializedItem.part_id == part_id,
            )
            .group_by(SerializedItem.status)
        ).all()

        counts = {status: 0 for status in SerialStatus}
        for status, n in rows:
            counts[SerialStatus(status)] = n

        return SerialCountSummary(
            part_id=part.id,
            aggregate_quantity=part.quantity,
            counts=counts,
        )
