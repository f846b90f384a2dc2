"""Selectors for the stock kernel (read side)."""

from stock_kernel.selectors.low_stock import LowStockMonitor
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.serial_selector import SerialReconciliationSelector

__all__ = [
    "LowStockMonitor",
    "MovementSelector",
    "SerialReconciliationSelector",
]
