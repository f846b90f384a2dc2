"""ORM models for the stock kernel."""

from stock_kernel.models.job_part import JobPart
from stock_kernel.models.part import Part
from stock_kernel.models.purchase_order import POItem, PurchaseOrder
from stock_kernel.models.serialized_item import SerializedItem
from stock_kernel.models.stock_movement import StockMovement

__all__ = [
    "Part",
    "StockMovement",
    "JobPart",
    "PurchaseOrder",
    "POItem",
    "SerializedItem",
]
