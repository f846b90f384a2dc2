"""
Tests for StockLedger.

Covers:
- Append arithmetic and movement fields
- Zero / non-integer / negative-stock rejections
- Configurable negative-stock movement types
- expected_quantity_before conflicts
- recompute_from_ledger drift repair
- record_count
"""

from uuid import uuid4

import pytest
from sqlalchemy import select, update

from stock_config.schema import LedgerConfig
from stock_kernel.domain.enums import MovementType
from stock_kernel.domain.quantities import MAX_QUANTITY
from stock_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidMovementTypeError,
    InvalidQuantityError,
    NegativeStockError,
    PartNotFoundError,
    TenantAccessError,
)
from stock_kernel.models.part import Part
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.services.stock_ledger import StockLedger


class TestAppend:
    """Tests for StockLedger.append()."""

    def test_positive_append_updates_quantity(self, stock_ledger, part_catalog, make_part):
        part = make_part(quantity=10)

        movement = stock_ledger.append(part.id, MovementType.PURCHASE, 5)

        assert movement.quantity_before == 10
        assert movement.quantity_after == 15
        assert movement.quantity_change == 5
        assert movement.movement_type == MovementType.PURCHASE
        assert part_catalog.get_quantity(part.id) == 15

    def test_negative_append_updates_quantity(self, stock_ledger, part_catalog, make_part):
        part = make_part(quantity=10)

        movement = stock_ledger.append(part.id, MovementType.DAMAGE, -4, reason="Dropped")

        assert movement.quantity_after == 6
        assert movement.reason == "Dropped"
        assert part_catalog.get_quantity(part.id) == 6

    def test_string_movement_type_accepted(self, stock_ledger, make_part):
        part = make_part(quantity=1)

        movement = stock_ledger.append(part.id, "return", 2)

        assert movement.movement_type == MovementType.RETURN

    def test_sequences_increase_per_part(self, stock_ledger, make_part):
        part = make_part()

        first = stock_ledger.append(part.id, MovementType.ADJUSTMENT, 3)
        second = stock_ledger.append(part.id, MovementType.ADJUSTMENT, -1)

        assert (first.sequence, second.sequence) == (1, 2)
        assert second.quantity_before == first.quantity_after

    def test_actor_and_references_recorded(self, stock_ledger, make_part, test_actor_id):
        part = make_part(quantity=5)
        job_id = uuid4()

        movement = stock_ledger.append(
            part.id, MovementType.JOB_USAGE, -2, job_id=job_id, notes="bench 3",
        )

        assert movement.actor_id == test_actor_id
        assert movement.job_id == job_id
        assert movement.notes == "bench 3"

    def test_zero_change_rejected(self, stock_ledger, make_part):
        part = make_part(quantity=5)

        with pytest.raises(InvalidQuantityError):
            stock_ledger.append(part.id, MovementType.ADJUSTMENT, 0)

    def test_non_integer_change_rejected(self, stock_ledger, make_part):
        part = make_part(quantity=5)

        with pytest.raises(InvalidQuantityError):
            stock_ledger.append(part.id, MovementType.ADJUSTMENT, 1.5)

    def test_change_outside_column_range_rejected(self, stock_ledger, make_part):
        part = make_part(quantity=5)

        with pytest.raises(InvalidQuantityError):
            stock_ledger.append(part.id, MovementType.ADJUSTMENT, 2**63)

    def test_quantity_past_column_range_rejected(self, session, stock_ledger, part_catalog, make_part):
        part = make_part(quantity=MAX_QUANTITY - 1)

        with pytest.raises(InvalidQuantityError):
            stock_ledger.append(part.id, MovementType.PURCHASE, 2)

        assert part_catalog.get_quantity(part.id) == MAX_QUANTITY - 1
        movements = session.execute(
            select(StockMovement).where(StockMovement.part_id == part.id)
        ).scalars().all()
        assert len(movements) == 1

    def test_unknown_movement_type_rejected(self, stock_ledger, make_part):
        part = make_part(quantity=5)

        with pytest.raises(InvalidMovementTypeError):
            stock_ledger.append(part.id, "theft", -1)

    def test_negative_stock_rejected_without_movement(self, session, stock_ledger, part_catalog, make_part):
        part = make_part(quantity=3)

        with pytest.raises(NegativeStockError) as exc_info:
            stock_ledger.append(part.id, MovementType.JOB_USAGE, -5)

        assert exc_info.value.quantity_after == -2
        assert part_catalog.get_quantity(part.id) == 3
        count = session.execute(
            select(StockMovement).where(StockMovement.part_id == part.id)
        ).scalars().all()
        assert len(count) == 1  # opening balance only

    def test_configured_type_may_go_negative(self, session, ledger_context, deterministic_clock, part_catalog, make_part):
        config = LedgerConfig(negative_stock_movement_types=frozenset({"adjustment"}))
        ledger = StockLedger(session, ledger_context, deterministic_clock, config)
        part = make_part(quantity=1)

        movement = ledger.append(part.id, MovementType.ADJUSTMENT, -3)

        assert movement.quantity_after == -2
        assert part_catalog.get_quantity(part.id) == -2

    def test_unknown_part_raises(self, stock_ledger):
        with pytest.raises(PartNotFoundError):
            stock_ledger.append(uuid4(), MovementType.ADJUSTMENT, 1)

    def test_foreign_tenant_part_raises(self, session, other_context, deterministic_clock, ledger_config, make_part):
        part = make_part(quantity=1)
        foreign = StockLedger(session, other_context, deterministic_clock, ledger_config)

        with pytest.raises(TenantAccessError):
            foreign.append(part.id, MovementType.ADJUSTMENT, 1)

    def test_expected_quantity_mismatch_raises(self, stock_ledger, part_catalog, make_part):
        part = make_part(quantity=10)

        with pytest.raises(ConcurrencyConflictError) as exc_info:
            stock_ledger.append(part.id, MovementType.ADJUSTMENT, 1, expected_quantity_before=9)

        assert exc_info.value.actual_quantity == 10
        assert part_catalog.get_quantity(part.id) == 10

    def test_expected_quantity_match_appends(self, stock_ledger, make_part):
        part = make_part(quantity=10)

        movement = stock_ledger.append(part.id, MovementType.ADJUSTMENT, 1, expected_quantity_before=10)

        assert movement.quantity_after == 11

    def test_append_is_logged(self, stock_ledger, make_part, captured_logs):
        part = make_part(quantity=2)

        stock_ledger.append(part.id, MovementType.PURCHASE, 1)

        records = [r for r in captured_logs() if r["message"] == "stock_movement_appended"]
        assert records
        assert records[-1]["quantity_after"] == 3
        assert records[-1]["tenant_id"] == str(stock_ledger.tenant_id)


class TestRecomputeFromLedger:
    """Tests for ledger replay."""

    def _force_quantity(self, session, part_id, quantity):
        """Simulate drift with a raw UPDATE (bypasses ORM listeners)."""
        session.execute(
            update(Part).where(Part.id == part_id).values(quantity=quantity)
            .execution_options(synchronize_session=False)
        )
        session.expire_all()

    def test_no_drift_is_noop(self, stock_ledger, make_part):
        part = make_part(quantity=7)
        stock_ledger.append(part.id, MovementType.JOB_USAGE, -2)

        result = stock_ledger.recompute_from_ledger(part.id)

        assert result.previous_quantity == 5
        assert result.recomputed_quantity == 5
        assert result.movement_count == 2
        assert not result.corrected

    def test_drift_is_corrected(self, session, stock_ledger, part_catalog, make_part, captured_logs):
        part = make_part(quantity=7)
        self._force_quantity(session, part.id, 100)

        result = stock_ledger.recompute_from_ledger(part.id)

        assert result.drift == 93
        assert part_catalog.get_quantity(part.id) == 7
        assert any(r["message"] == "ledger_drift_corrected" for r in captured_logs())

    def test_recompute_is_idempotent(self, session, stock_ledger, make_part):
        part = make_part(quantity=4)
        self._force_quantity(session, part.id, -1)

        first = stock_ledger.recompute_from_ledger(part.id)
        second = stock_ledger.recompute_from_ledger(part.id)

        assert first.corrected
        assert not second.corrected
        assert second.recomputed_quantity == 4

    def test_part_without_movements_recomputes_to_zero(self, stock_ledger, make_part):
        part = make_part(quantity=0)

        result = stock_ledger.recompute_from_ledger(part.id)

        assert result.movement_count == 0
        assert result.recomputed_quantity == 0

    def test_append_after_recompute_continues_sequence(self, session, stock_ledger, make_part):
        part = make_part(quantity=4)
        self._force_quantity(session, part.id, 9)
        stock_ledger.recompute_from_ledger(part.id)

        movement = stock_ledger.append(part.id, MovementType.ADJUSTMENT, 1)

        assert movement.sequence == 2
        assert movement.quantity_before == 4


class TestRecordCount:
    """Tests for physical counts."""

    def test_count_difference_appended(self, stock_ledger, part_catalog, make_part):
        part = make_part(quantity=10)

        movement = stock_ledger.record_count(part.id, 8)

        assert movement.movement_type == MovementType.COUNT
        assert movement.quantity_change == -2
        assert movement.reason == "Physical count"
        assert part_catalog.get_quantity(part.id) == 8

    def test_matching_count_returns_none(self, stock_ledger, make_part):
        part = make_part(quantity=10)

        assert stock_ledger.record_count(part.id, 10) is None

    def test_negative_count_rejected(self, stock_ledger, make_part):
        part = make_part(quantity=10)

        with pytest.raises(InvalidQuantityError):
            stock_ledger.record_count(part.id, -1)
