"""
Stock Workflows.

State machines for serialized units, purchase orders and job-part
allocations.  Services consult these definitions; they never hard-code
allowed edges.
"""

from dataclasses import dataclass

from stock_kernel.domain.enums import PurchaseOrderStatus, SerialStatus
from stock_kernel.logging_config import get_logger

logger = get_logger("domain.workflows")


@dataclass(frozen=True)
class Transition:
    """A valid state transition."""
    from_state: str
    to_state: str
    action: str
    moves_stock: bool = False


@dataclass(frozen=True)
class Workflow:
    """A state machine definition."""
    name: str
    description: str
    initial_state: str
    states: tuple[str, ...]
    transitions: tuple[Transition, ...]

    def targets_from(self, state: str) -> frozenset[str]:
        """States reachable from ``state`` in one step."""
        return frozenset(
            t.to_state for t in self.transitions if t.from_state == state
        )

    def is_allowed(self, from_state: str, to_state: str) -> bool:
        return to_state in self.targets_from(from_state)

    def is_terminal(self, state: str) -> bool:
        return not self.targets_from(state)


# -----------------------------------------------------------------------------
# Serialized Unit Workflow
# -----------------------------------------------------------------------------

_S = SerialStatus

SERIALIZED_ITEM_WORKFLOW = Workflow(
    name="serialized_item",
    description="Lifecycle of one individually serial-numbered unit",
    initial_state=_S.IN_STOCK.value,
    states=tuple(s.value for s in SerialStatus),
    transitions=(
        Transition(_S.IN_STOCK.value, _S.RESERVED.value, action="reserve"),
        Transition(_S.IN_STOCK.value, _S.SOLD.value, action="sell"),
        Transition(_S.IN_STOCK.value, _S.USED_IN_JOB.value, action="use_in_job"),
        Transition(_S.IN_STOCK.value, _S.DAMAGED.value, action="mark_damaged"),
        Transition(_S.RESERVED.value, _S.SOLD.value, action="sell"),
        Transition(_S.RESERVED.value, _S.USED_IN_JOB.value, action="use_in_job"),
        Transition(_S.RESERVED.value, _S.IN_STOCK.value, action="release"),
        Transition(_S.RESERVED.value, _S.DAMAGED.value, action="mark_damaged"),
        Transition(_S.USED_IN_JOB.value, _S.RETURNED.value, action="return"),
        Transition(_S.USED_IN_JOB.value, _S.SOLD.value, action="sell"),
        Transition(_S.SOLD.value, _S.RETURNED.value, action="return"),
        Transition(_S.RETURNED.value, _S.IN_STOCK.value, action="restock"),
        Transition(_S.RETURNED.value, _S.DAMAGED.value, action="mark_damaged"),
        # damaged is terminal
    ),
)

logger.debug(
    "serialized_item_workflow_registered",
    extra={
        "workflow_name": SERIALIZED_ITEM_WORKFLOW.name,
        "state_count": len(SERIALIZED_ITEM_WORKFLOW.states),
        "transition_count": len(SERIALIZED_ITEM_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

_P = PurchaseOrderStatus

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Purchase order lifecycle driven by receiving",
    initial_state=_P.DRAFT.value,
    states=tuple(s.value for s in PurchaseOrderStatus),
    transitions=(
        Transition(_P.DRAFT.value, _P.ORDERED.value, action="mark_ordered"),
        Transition(_P.DRAFT.value, _P.CANCELLED.value, action="cancel"),
        Transition(_P.ORDERED.value, _P.CANCELLED.value, action="cancel"),
        Transition(_P.DRAFT.value, _P.PARTIALLY_RECEIVED.value, action="receive", moves_stock=True),
        Transition(_P.DRAFT.value, _P.RECEIVED.value, action="receive", moves_stock=True),
        Transition(_P.ORDERED.value, _P.PARTIALLY_RECEIVED.value, action="receive", moves_stock=True),
        Transition(_P.ORDERED.value, _P.RECEIVED.value, action="receive", moves_stock=True),
        Transition(_P.PARTIALLY_RECEIVED.value, _P.RECEIVED.value, action="receive", moves_stock=True),
    ),
)

# Statuses in which receive() is accepted.  A received PO still accepts
# over-receipt; only cancellation closes receiving.
RECEIVABLE_PO_STATUSES: frozenset[str] = frozenset({
    _P.DRAFT.value,
    _P.ORDERED.value,
    _P.PARTIALLY_RECEIVED.value,
    _P.RECEIVED.value,
})

logger.debug(
    "purchase_order_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
    },
)


# -----------------------------------------------------------------------------
# Job Part Workflow
# -----------------------------------------------------------------------------

JOB_PART_WORKFLOW = Workflow(
    name="job_part",
    description="Soft allocation of a part to a job, then one-time deduction",
    initial_state="allocated",
    states=("allocated", "deducted"),
    transitions=(
        Transition("allocated", "deducted", action="deduct", moves_stock=True),
    ),
)
