"""
Stock Ledger Configuration Schema.

Defines the structure and defaults for ledger behavior.  Actual values are
loaded from YAML at runtime through ``stock_config.get_active_config()``.
"""

from dataclasses import dataclass, field, fields
from typing import Self

from stock_kernel.logging_config import get_logger

logger = get_logger("config.schema")


VALID_DEDUCTION_POLICIES = {"floor", "reject"}
VALID_MOVEMENT_TYPES = {
    "adjustment", "job_usage", "purchase", "return", "transfer", "damage", "count",
}


@dataclass(frozen=True)
class LedgerConfig:
    """
    Configuration schema for the stock ledger.

    Override at instantiation:

        config = LedgerConfig(
            deduction_policy="reject",
            negative_stock_movement_types=frozenset({"count"}),
        )
    """

    # Over-consumption in deduct_for_job: clamp at zero, or fail the line
    deduction_policy: str = "floor"

    # Movement types allowed to drive stock below zero
    negative_stock_movement_types: frozenset[str] = field(default_factory=frozenset)

    # CAS re-read attempts before ConcurrencyConflictError
    max_conflict_retries: int = 3

    movement_history_limit: int = 100

    po_number_prefix: str = "PO-"

    def __post_init__(self):
        if self.deduction_policy not in VALID_DEDUCTION_POLICIES:
            raise ValueError(
                f"deduction_policy must be one of {sorted(VALID_DEDUCTION_POLICIES)}, "
                f"got '{self.deduction_policy}'"
            )

        # Accept any iterable from YAML / callers
        types = frozenset(str(t) for t in self.negative_stock_movement_types)
        unknown = types - VALID_MOVEMENT_TYPES
        if unknown:
            raise ValueError(
                f"negative_stock_movement_types contains unknown movement types: {sorted(unknown)}"
            )
        object.__setattr__(self, "negative_stock_movement_types", types)

        if self.max_conflict_retries < 0:
            raise ValueError("max_conflict_retries cannot be negative")
        if self.movement_history_limit <= 0:
            raise ValueError("movement_history_limit must be positive")
        if not self.po_number_prefix or len(self.po_number_prefix) > 20:
            raise ValueError("po_number_prefix must be 1-20 characters")

        logger.info(
            "ledger_config_initialized",
            extra={
                "deduction_policy": self.deduction_policy,
                "negative_stock_movement_types": self.negative_stock_movement_types,
                "max_conflict_retries": self.max_conflict_retries,
                "movement_history_limit": self.movement_history_limit,
                "po_number_prefix": self.po_number_prefix,
            },
        )

    def allows_negative(self, movement_type: str) -> bool:
        return str(movement_type) in self.negative_stock_movement_types

    @classmethod
    def with_defaults(cls) -> Self:
        """Create config with the default ledger behavior."""
        logger.info("ledger_config_created_with_defaults")
        return cls()

    @classmethod
    def from_dict(cls, data: dict) -> Self:
        """Create config from a dictionary (e.g. parsed YAML)."""
        logger.info(
            "ledger_config_loading_from_dict",
            extra={"keys": sorted(data.keys())},
        )
        known = {f.name for f in fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"Unknown ledger config keys: {sorted(unknown)}")

        values = dict(data)
        if "negative_stock_movement_types" in values:
            values["negative_stock_movement_types"] = frozenset(
                values["negative_stock_movement_types"] or ()
            )
        return cls(**values)
