"""
JobReservationManager -- allocation of parts to jobs and one-time deduction.

Responsibility:
    ``allocate`` records a soft allocation (JobPart) without touching stock.
    ``deduct_for_job`` converts every pending allocation of a job into a
    ``job_usage`` movement through StockLedger.

Invariants enforced:
    - Allocation never reads or writes Part.quantity.
    - Each JobPart is deducted at most once: the allocated -> deducted flip
      is a compare-and-swap on ``is_deducted = false``.
    - Each line runs in its own SAVEPOINT.  A failed line leaves no movement
      and stays pending; earlier lines are kept.  Retrying is always safe.

Failure modes:
    - allocate: PartNotFoundError, TenantAccessError, InvalidQuantityError.
    - deduct_for_job never raises for a line failure; failures are returned
      in the BatchResult (see ``BatchResult.raise_for_failures``).
"""

from __future__ import annotations

from decimal import Decimal
from uuid import UUID

from sqlalchemy import func, select, update

from stock_kernel.domain.dtos import (
    BatchResult,
    JobPartInfo,
    LineFailure,
    LineResult,
    StockMovementInfo,
)
from stock_kernel.domain.enums import DeductionPolicy, LineOutcome, MovementType
from stock_kernel.domain.quantities import require_money, require_quantity
from stock_kernel.exceptions import (
    JobPartNotFoundError,
    PartNotFoundError,
    StockKernelError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.job_part import JobPart
from stock_kernel.models.part import Part
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.job_reservation")

DEDUCTION_REASON = "Used in job"


class JobReservationManager(BaseService[JobPart]):
    """
    Soft allocation plus idempotent hard deduction.

    With ``auto_commit=True`` each successfully deducted line is committed
    on its own, so a crash mid-batch keeps the finished lines.
    """

    def __init__(
        self,
        session,
        context,
        clock=None,
        config=None,
        auto_commit: bool = False,
        ledger: StockLedger | None = None,
    ):
        super().__init__(session, context, clock, config, auto_commit)
        self.ledger = ledger or StockLedger(session, context, self._clock, self.config)

    # -------------------------------------------------------------------------
    # Allocation
    # -------------------------------------------------------------------------

    def allocate(
        self,
        job_id: UUID,
        part_id: UUID,
        quantity: int,
        unit_price: Decimal | None = None,
        notes: str | None = None,
    ) -> JobPartInfo:
        """
        Allocate ``quantity`` of a part to a job.

        Over-allocation beyond on-hand stock is accepted here; it is only
        resolved at deduction time.
        """
        require_quantity("quantity", quantity, minimum=1)
        total_price = None
        if unit_price is not None:
            unit_price = require_money("unit_price", unit_price)
            total_price = require_money("total_price", unit_price * quantity)

        with self._log_scope(job_id=job_id):
            # Existence and tenant check only; quantity is not read
            self._load(Part, part_id, PartNotFoundError(str(part_id)))

            line_count = self.session.execute(
                select(func.count(JobPart.id)).where(
                    JobPart.tenant_id == self.tenant_id,
                    JobPart.job_id == job_id,
                )
            ).scalar_one()

            job_part = JobPart(
                job_id=job_id,
                part_id=part_id,
                line_number=line_count + 1,
                quantity=quantity,
                unit_price=unit_price,
                total_price=total_price,
                is_deducted=False,
                notes=notes,
                **self._stamp(),
            )
            self.session.add(job_part)
            self.session.flush()

            logger.info(
                "job_part_allocated",
                extra={
                    "job_part_id": str(job_part.id),
                    "part_id": str(part_id),
                    "quantity": quantity,
                },
            )
            return job_part.to_dto()

    # -------------------------------------------------------------------------
    # Deduction
    # -------------------------------------------------------------------------

    def deduct_for_job(self, job_id: UUID) -> BatchResult:
        """
        Deduct every pending allocation of ``job_id`` from stock.

        Lines already deducted are not selected, so calling this twice has
        the same effect as calling it once.  An unknown job simply has no
        pending lines.
        """
        with self._log_scope(job_id=job_id):
            pending_ids = list(
                self.session.execute(
                    select(JobPart.id)
                    .where(
                        JobPart.tenant_id == self.tenant_id,
                        JobPart.job_id == job_id,
                        JobPart.is_deducted.is_(False),
                    )
                    .order_by(JobPart.line_number, JobPart.created_at)
                ).scalars()
            )

            logger.info(
                "job_deduction_started",
                extra={
                    "pending_lines": len(pending_ids),
                    "deduction_policy": self.config.deduction_policy,
                },
            )

            lines = tuple(self._deduct_line(job_id, job_part_id) for job_part_id in pending_ids)
            result = BatchResult(operation="deduct_for_job", reference_id=job_id, lines=lines)

            logger.info(
                "job_deduction_completed",
                extra={
                    "succeeded": len(result.succeeded),
                    "skipped": len(result.skipped),
                    "failed": len(result.failed),
                },
            )
            return result

    def _deduct_line(self, job_id: UUID, job_part_id: UUID) -> LineResult:
        savepoint = self.session.begin_nested()
        try:
            job_part = self._load(
                JobPart, job_part_id, JobPartNotFoundError(str(job_part_id)), for_update=True,
            )
            if job_part.is_deducted:
                savepoint.rollback()
                return self._skipped(job_part_id)

            movement, applied = self._apply_deduction(job_id, job_part)

            now = self._clock.now()
            flipped = self.session.execute(
                update(JobPart)
                .where(JobPart.id == job_part_id, JobPart.is_deducted.is_(False))
                .values(
                    is_deducted=True,
                    deducted_at=now,
                    quantity_deducted=applied,
                    updated_at=now,
                    updated_by_id=self.actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if flipped.rowcount != 1:
                savepoint.rollback()
                return self._skipped(job_part_id)
            savepoint.commit()
        except StockKernelError as exc:
            savepoint.rollback()
            logger.warning(
                "job_deduction_line_failed",
                extra={
                    "job_part_id": str(job_part_id),
                    "error_code": exc.code,
                    "error": str(exc),
                },
            )
            return LineResult(
                line_id=job_part_id,
                outcome=LineOutcome.FAILED,
                failure=LineFailure(line_id=job_part_id, code=exc.code, message=str(exc)),
            )
        except Exception:
            savepoint.rollback()
            raise

        self.session.expire(job_part)
        logger.info(
            "job_deduction_line_succeeded",
            extra={
                "job_part_id": str(job_part_id),
                "part_id": str(job_part.part_id),
                "quantity_requested": job_part.quantity,
                "quantity_deducted": applied,
                "movement_id": str(movement.id) if movement else None,
            },
        )
        self._commit_if_auto()
        return LineResult(line_id=job_part_id, outcome=LineOutcome.SUCCEEDED, movement=movement)

    def _apply_deduction(self, job_id: UUID, job_part: JobPart) -> tuple[StockMovementInfo | None, int]:
        """
        Append the job_usage movement for one line.

        Returns the movement (None when nothing was removed) and the number
        of units actually removed from stock.
        """
        requested = job_part.quantity

        if self.config.deduction_policy == DeductionPolicy.REJECT.value:
            movement = self.ledger.append(
                job_part.part_id,
                MovementType.JOB_USAGE,
                -requested,
                job_id=job_id,
                job_part_id=job_part.id,
                reason=DEDUCTION_REASON,
            )
            return movement, requested

        # Floor: take what is on hand, never below zero
        part = self._load(
            Part, job_part.part_id, PartNotFoundError(str(job_part.part_id)), for_update=True,
        )
        on_hand = part.quantity
        applied = min(requested, max(on_hand, 0))
        if applied == 0:
            logger.info(
                "job_deduction_floored_to_zero",
                extra={
                    "job_part_id": str(job_part.id),
                    "part_id": str(job_part.part_id),
                    "quantity_requested": requested,
                    "quantity_on_hand": on_hand,
                },
            )
            return None, 0

        if applied < requested:
            logger.warning(
                "job_deduction_floored",
                extra={
                    "job_part_id": str(job_part.id),
                    "part_id": str(job_part.part_id),
                    "quantity_requested": requested,
                    "quantity_deducted": applied,
                },
            )

        movement = self.ledger.append(
            job_part.part_id,
            MovementType.JOB_USAGE,
            -applied,
            job_id=job_id,
            job_part_id=job_part.id,
            reason=DEDUCTION_REASON,
            expected_quantity_before=on_hand,
        )
        return movement, applied

    def _skipped(self, job_part_id: UUID) -> LineResult:
        logger.info(
            "job_deduction_line_already_deducted",
            extra={"job_part_id": str(job_part_id)},
        )
        return LineResult(line_id=job_part_id, outcome=LineOutcome.SKIPPED)

    # -------------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------------

    def list_job_parts(self, job_id: UUID) -> list[JobPartInfo]:
        stmt = (
            select(JobPart)
            .where(JobPart.tenant_id == self.tenant_id, JobPart.job_id == job_id)
            .order_by(JobPart.line_number, JobPart.created_at)
        )
        return [jp.to_dto() for jp in self.session.execute(stmt).scalars()]

    def get_job_part(self, job_part_id: UUID) -> JobPartInfo:
        return self._load(JobPart, job_part_id, JobPartNotFoundError(str(job_part_id))).to_dto()
