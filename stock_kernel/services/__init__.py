"""Services for the stock kernel (write side)."""

from stock_kernel.services.job_reservation import JobReservationManager
from stock_kernel.services.part_catalog import PartCatalog
from stock_kernel.services.purchase_order_receiver import PurchaseOrderReceiver
from stock_kernel.services.serialized_unit_tracker import SerializedUnitTracker
from stock_kernel.services.stock_ledger import StockLedger

__all__ = [
    "JobReservationManager",
    "PartCatalog",
    "PurchaseOrderReceiver",
    "SerializedUnitTracker",
    "StockLedger",
]
