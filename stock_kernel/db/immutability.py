"""
ORM-Level Immutability Enforcement.

===============================================================================
WHAT IS PROTECTED
===============================================================================

SQLAlchemy fires mapper events before UPDATE/DELETE/INSERT statements built
by the unit of work reach the database.  The listeners below check the
ledger's write rules and raise ImmutabilityViolationError, aborting the
flush:

Entity          | Rule
----------------|----------------------------------------------------------
StockMovement   | ALWAYS immutable: no UPDATE, no DELETE
Part            | quantity / movement_seq never written by the unit of work;
                | INSERT only with quantity 0
JobPart         | frozen once deducted (terminal state of JOB_PART_WORKFLOW)
POItem          | quantity_received never decreases

The ledger itself writes Part.quantity, JobPart.is_deducted and
POItem.quantity_received with explicit UPDATE statements (compare-and-swap
or atomic increment).  Those bypass mapper events, so the rules above only
constrain ad-hoc ORM edits.

===============================================================================
USAGE
===============================================================================

    from stock_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()  # once at startup

Tests that must write forbidden rows may call
unregister_immutability_listeners() and re-register afterwards.
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from stock_kernel.exceptions import ImmutabilityViolationError
from stock_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

# Part columns owned by StockLedger
PART_LEDGER_COLUMNS = frozenset({"quantity", "movement_seq"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str) -> ImmutabilityViolationError:
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            "reason": reason,
        },
    )
    return ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


# =============================================================================
# StockMovement
# =============================================================================


def _check_stock_movement_update(mapper, connection, target):
    """Movements are append-only."""
    raise _blocked(
        "StockMovement", target.id, "UPDATE",
        "Stock movements are immutable and cannot be modified",
    )


def _check_stock_movement_delete(mapper, connection, target):
    raise _blocked(
        "StockMovement", target.id, "DELETE",
        "Stock movements cannot be deleted",
    )


# =============================================================================
# Part quantity ownership
# =============================================================================


def _check_part_insert(mapper, connection, target):
    """A part starts at zero; opening balances are adjustment movements."""
    if target.quantity not in (None, 0):
        raise _blocked(
            "Part", target.id, "INSERT",
            f"Parts must be created with quantity 0, got {target.quantity}",
        )
    if target.movement_seq not in (None, 0):
        raise _blocked(
            "Part", target.id, "INSERT",
            "Parts must be created with movement_seq 0",
        )


def _check_part_update(mapper, connection, target):
    """Only StockLedger may change quantity, and never through the unit of work."""
    for column in sorted(PART_LEDGER_COLUMNS):
        if get_history(target, column).has_changes():
            raise _blocked(
                "Part", target.id, "UPDATE",
                f"Part.{column} is owned by the stock ledger; append a movement instead",
            )


# =============================================================================
# JobPart
# =============================================================================


def _was_deducted(target) -> bool:
    history = get_history(target, "is_deducted")
    if history.deleted:
        return bool(history.deleted[0])
    if history.added:
        return False
    return bool(target.is_deducted)


def _check_job_part_update(mapper, connection, target):
    """A deducted allocation is frozen."""
    if not _was_deducted(target):
        return

    changed = [
        attr.key for attr in inspect(target).attrs
        if attr.key not in ("updated_at", "updated_by_id") and attr.history.has_changes()
    ]
    if changed:
        raise _blocked(
            "JobPart", target.id, "UPDATE",
            f"Deducted job part cannot be modified (fields: {', '.join(sorted(changed))})",
        )


def _check_job_part_delete(mapper, connection, target):
    if _was_deducted(target):
        raise _blocked(
            "JobPart", target.id, "DELETE",
            "Deducted job part cannot be deleted",
        )


# =============================================================================
# POItem
# =============================================================================


def _check_po_item_update(mapper, connection, target):
    """quantity_received is monotonic."""
    history = get_history(target, "quantity_received")
    if not (history.deleted and history.added):
        return
    old_value, new_value = history.deleted[0], history.added[0]
    if old_value is not None and new_value is not None and new_value < old_value:
        raise _blocked(
            "POItem", target.id, "UPDATE",
            f"quantity_received cannot decrease ({old_value} -> {new_value})",
        )


# =============================================================================
# Registration
# =============================================================================


def _listeners():
    from stock_kernel.models.job_part import JobPart
    from stock_kernel.models.part import Part
    from stock_kernel.models.purchase_order import POItem
    from stock_kernel.models.stock_movement import StockMovement

    return (
        (StockMovement, "before_update", _check_stock_movement_update),
        (StockMovement, "before_delete", _check_stock_movement_delete),
        (Part, "before_insert", _check_part_insert),
        (Part, "before_update", _check_part_update),
        (JobPart, "before_update", _check_job_part_update),
        (JobPart, "before_delete", _check_job_part_delete),
        (POItem, "before_update", _check_po_item_update),
    )


def register_immutability_listeners():
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)

    logger.info("immutability_listeners_registered")


def _safe_remove_listener(target, event_name, listener_fn):
    """Remove an event listener, ignoring it if not registered."""
    if event.contains(target, event_name, listener_fn):
        event.remove(target, event_name, listener_fn)


def unregister_immutability_listeners():
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests that need to write forbidden rows.
    """
    for target, event_name, listener_fn in _listeners():
        _safe_remove_listener(target, event_name, listener_fn)

    logger.info("immutability_listeners_unregistered")
