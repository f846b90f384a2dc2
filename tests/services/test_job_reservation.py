"""
Tests for JobReservationManager.

Covers:
- Allocation never touches stock
- Deduction under the floor and reject policies
- Idempotent re-deduction and partial-failure retry
- Per-line failure isolation and BatchResult reporting
"""

from decimal import Decimal
from uuid import uuid4

import pytest
from sqlalchemy import select

from stock_kernel.domain.enums import MovementType
from stock_kernel.domain.quantities import MAX_QUANTITY
from stock_kernel.exceptions import (
    InvalidQuantityError,
    JobPartNotFoundError,
    PartialFailureError,
    PartNotFoundError,
)
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.services.job_reservation import JobReservationManager


@pytest.fixture
def reject_manager(session, ledger_context, deterministic_clock, reject_config):
    return JobReservationManager(session, ledger_context, deterministic_clock, reject_config)


class TestAllocate:
    """Tests for JobReservationManager.allocate()."""

    def test_allocation_does_not_move_stock(self, job_manager, part_catalog, make_part):
        part = make_part(quantity=10)
        job_id = uuid4()

        job_part = job_manager.allocate(job_id, part.id, 3)

        assert job_part.is_deducted is False
        assert job_part.quantity == 3
        assert job_part.quantity_deducted is None
        assert part_catalog.get_quantity(part.id) == 10

    def test_over_allocation_is_accepted(self, job_manager, make_part):
        part = make_part(quantity=1)

        job_part = job_manager.allocate(uuid4(), part.id, 50)

        assert job_part.quantity == 50

    def test_total_price_computed(self, job_manager, make_part):
        part = make_part(quantity=5)

        job_part = job_manager.allocate(uuid4(), part.id, 3, unit_price=Decimal("4.50"))

        assert job_part.total_price == Decimal("13.50")

    @pytest.mark.parametrize("quantity", [0, -1])
    def test_non_positive_quantity_rejected(self, job_manager, make_part, quantity):
        part = make_part(quantity=5)

        with pytest.raises(InvalidQuantityError):
            job_manager.allocate(uuid4(), part.id, quantity)

    def test_negative_unit_price_rejected(self, job_manager, make_part):
        part = make_part(quantity=5)

        with pytest.raises(InvalidQuantityError):
            job_manager.allocate(uuid4(), part.id, 1, unit_price=Decimal("-0.01"))

    @pytest.mark.parametrize("unit_price", [Decimal("NaN"), Decimal("Infinity"), "free"])
    def test_unusable_unit_price_rejected(self, job_manager, make_part, unit_price):
        part = make_part(quantity=5)

        with pytest.raises(InvalidQuantityError):
            job_manager.allocate(uuid4(), part.id, 1, unit_price=unit_price)

    def test_oversized_quantity_rejected(self, job_manager, make_part):
        part = make_part(quantity=5)

        with pytest.raises(InvalidQuantityError):
            job_manager.allocate(uuid4(), part.id, MAX_QUANTITY + 1)

    def test_unknown_part_rejected(self, job_manager):
        with pytest.raises(PartNotFoundError):
            job_manager.allocate(uuid4(), uuid4(), 1)

    def test_list_job_parts_in_allocation_order(self, job_manager, make_part):
        job_id = uuid4()
        first = job_manager.allocate(job_id, make_part(quantity=1).id, 1)
        second = job_manager.allocate(job_id, make_part(quantity=1).id, 2)

        assert [jp.id for jp in job_manager.list_job_parts(job_id)] == [first.id, second.id]

    def test_get_unknown_job_part(self, job_manager):
        with pytest.raises(JobPartNotFoundError):
            job_manager.get_job_part(uuid4())


class TestDeductFloorPolicy:
    """Tests for deduct_for_job() with the default floor policy."""

    def test_deduct_removes_stock(self, job_manager, part_catalog, make_part):
        part = make_part(quantity=10)
        job_id = uuid4()
        job_part = job_manager.allocate(job_id, part.id, 3)

        result = job_manager.deduct_for_job(job_id)

        assert result.succeeded == (job_part.id,)
        assert result.failed == ()
        assert part_catalog.get_quantity(part.id) == 7
        movement = result.movements[0]
        assert movement.movement_type == MovementType.JOB_USAGE
        assert movement.quantity_change == -3
        assert movement.job_id == job_id
        assert movement.job_part_id == job_part.id

        stored = job_manager.get_job_part(job_part.id)
        assert stored.is_deducted is True
        assert stored.quantity_deducted == 3
        assert stored.deducted_at is not None

    def test_second_deduct_is_noop(self, session, job_manager, part_catalog, make_part):
        part = make_part(quantity=10)
        job_id = uuid4()
        job_manager.allocate(job_id, part.id, 3)
        job_manager.deduct_for_job(job_id)

        again = job_manager.deduct_for_job(job_id)

        assert again.lines == ()
        assert part_catalog.get_quantity(part.id) == 7
        movements = session.execute(
            select(StockMovement).where(StockMovement.job_id == job_id)
        ).scalars().all()
        assert len(movements) == 1

    def test_over_consumption_floors_at_zero(self, job_manager, part_catalog, make_part):
        part = make_part(quantity=3)
        job_id = uuid4()
        job_part = job_manager.allocate(job_id, part.id, 5)

        result = job_manager.deduct_for_job(job_id)

        assert result.movements[0].quantity_change == -3
        assert part_catalog.get_quantity(part.id) == 0
        assert job_manager.get_job_part(job_part.id).quantity_deducted == 3

    def test_empty_stock_marks_deducted_without_movement(self, job_manager, part_catalog, make_part):
        part = make_part(quantity=0)
        job_id = uuid4()
        job_part = job_manager.allocate(job_id, part.id, 2)

        result = job_manager.deduct_for_job(job_id)

        assert result.succeeded == (job_part.id,)
        assert result.movements == ()
        stored = job_manager.get_job_part(job_part.id)
        assert stored.is_deducted is True
        assert stored.quantity_deducted == 0
        assert part_catalog.get_quantity(part.id) == 0

    def test_unknown_job_returns_empty_result(self, job_manager):
        result = job_manager.deduct_for_job(uuid4())

        assert result.lines == ()
        result.raise_for_failures()

    def test_same_part_on_two_lines(self, job_manager, part_catalog, make_part):
        part = make_part(quantity=5)
        job_id = uuid4()
        job_manager.allocate(job_id, part.id, 2)
        job_manager.allocate(job_id, part.id, 2)

        result = job_manager.deduct_for_job(job_id)

        assert len(result.succeeded) == 2
        assert [m.quantity_after for m in result.movements] == [3, 1]
        assert part_catalog.get_quantity(part.id) == 1

    def test_other_jobs_untouched(self, job_manager, part_catalog, make_part):
        part = make_part(quantity=10)
        job_a, job_b = uuid4(), uuid4()
        job_manager.allocate(job_a, part.id, 2)
        other = job_manager.allocate(job_b, part.id, 4)

        job_manager.deduct_for_job(job_a)

        assert part_catalog.get_quantity(part.id) == 8
        assert job_manager.get_job_part(other.id).is_deducted is False


class TestDeductRejectPolicy:
    """Tests for deduct_for_job() with the reject policy."""

    def test_over_consumption_fails_line(self, reject_manager, part_catalog, make_part):
        part = make_part(quantity=3)
        job_id = uuid4()
        job_part = reject_manager.allocate(job_id, part.id, 5)

        result = reject_manager.deduct_for_job(job_id)

        assert result.succeeded == ()
        assert [f.line_id for f in result.failed] == [job_part.id]
        assert result.failed[0].code == "NEGATIVE_STOCK"
        assert part_catalog.get_quantity(part.id) == 3
        assert reject_manager.get_job_part(job_part.id).is_deducted is False

    def test_failure_does_not_roll_back_other_lines(self, reject_manager, part_catalog, make_part):
        plenty = make_part(quantity=10)
        scarce = make_part(quantity=1)
        job_id = uuid4()
        good = reject_manager.allocate(job_id, plenty.id, 4)
        bad = reject_manager.allocate(job_id, scarce.id, 2)

        result = reject_manager.deduct_for_job(job_id)

        assert result.succeeded == (good.id,)
        assert [f.line_id for f in result.failed] == [bad.id]
        assert part_catalog.get_quantity(plenty.id) == 6
        assert part_catalog.get_quantity(scarce.id) == 1

        with pytest.raises(PartialFailureError) as exc_info:
            result.raise_for_failures()
        assert exc_info.value.failed_line_ids == [str(bad.id)]

    def test_retry_after_restock_only_processes_remaining(
        self, reject_manager, stock_ledger, part_catalog, make_part,
    ):
        plenty = make_part(quantity=10)
        scarce = make_part(quantity=1)
        job_id = uuid4()
        reject_manager.allocate(job_id, plenty.id, 4)
        bad = reject_manager.allocate(job_id, scarce.id, 2)
        reject_manager.deduct_for_job(job_id)

        stock_ledger.append(scarce.id, MovementType.PURCHASE, 5)
        retry = reject_manager.deduct_for_job(job_id)

        assert retry.succeeded == (bad.id,)
        assert part_catalog.get_quantity(plenty.id) == 6
        assert part_catalog.get_quantity(scarce.id) == 4

    def test_failure_logged_with_code(self, reject_manager, make_part, captured_logs):
        part = make_part(quantity=0)
        job_id = uuid4()
        reject_manager.allocate(job_id, part.id, 1)

        reject_manager.deduct_for_job(job_id)

        failures = [r for r in captured_logs() if r["message"] == "job_deduction_line_failed"]
        assert failures
        assert failures[0]["error_code"] == "NEGATIVE_STOCK"
        assert failures[0]["level"] == "WARNING"


class TestAutoCommit:
    """Tests for per-line commits."""

    def test_auto_commit_commits_each_line(self, session, ledger_context, deterministic_clock, ledger_config, make_part):
        manager = JobReservationManager(
            session, ledger_context, deterministic_clock, ledger_config, auto_commit=True,
        )
        part = make_part(quantity=5)
        job_id = uuid4()
        manager.allocate(job_id, part.id, 2)

        result = manager.deduct_for_job(job_id)

        assert len(result.succeeded) == 1
        assert manager.get_job_part(result.succeeded[0]).is_deducted is True
        assert not session.in_nested_transaction()
