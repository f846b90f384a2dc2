"""
Stock Kernel - inventory stock ledger and reservation engine

An append-only part-quantity ledger with:
- Atomic movement append (savepoint + compare-and-swap on quantity)
- Soft job allocation and idempotent job deduction
- Partial purchase-order receiving with per-line failure isolation
- Serialized-unit lifecycle tracking
- Explicit, repeatable ledger reconciliation
"""

__version__ = "0.1.0"
