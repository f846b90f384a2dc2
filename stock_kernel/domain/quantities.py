"""
Input checks for quantities and money amounts.

Quantity columns are BIGINT and money columns NUMERIC(38, 9) (see
``stock_kernel.db.base``).  Values outside those ranges are rejected here as
InvalidQuantityError instead of surfacing as driver errors mid-batch.
"""

from decimal import Decimal, InvalidOperation

from stock_kernel.exceptions import InvalidQuantityError

MAX_QUANTITY = 2**63 - 1

# NUMERIC(38, 9) leaves 29 integer digits
MAX_MONEY = Decimal(10) ** 29


def require_quantity(field: str, value, *, minimum: int | None = None) -> int:
    """
    Return ``value`` if it is a plain int within the column range.

    ``minimum`` optionally sets a lower bound (0 for non-negative, 1 for
    positive).
    """
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidQuantityError(field, value, "must be an integer")
    if minimum is not None and value < minimum:
        reason = "cannot be negative" if minimum == 0 else f"must be at least {minimum}"
        raise InvalidQuantityError(field, value, reason)
    if abs(value) > MAX_QUANTITY:
        raise InvalidQuantityError(field, value, f"exceeds {MAX_QUANTITY}")
    return value


def require_money(field: str, value) -> Decimal:
    """Coerce to Decimal; reject non-numeric, non-finite, negative and oversized amounts."""
    try:
        amount = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise InvalidQuantityError(field, value, "must be a number") from None
    if not amount.is_finite():
        raise InvalidQuantityError(field, value, "must be finite")
    if amount < 0:
        raise InvalidQuantityError(field, amount, "cannot be negative")
    if amount >= MAX_MONEY:
        raise InvalidQuantityError(field, amount, f"must be below {MAX_MONEY}")
    return amount
