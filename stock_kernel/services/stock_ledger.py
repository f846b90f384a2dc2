"""
StockLedger -- append-only movement log for part quantities.

Responsibility:
    The ONLY writer of ``Part.quantity``.  Every change is a StockMovement
    row appended together with the matching quantity update, so the stored
    quantity always equals the replayed ledger sum.

Architecture position:
    Kernel > Services.  Called by PartCatalog, JobReservationManager and
    PurchaseOrderReceiver.

Invariants enforced:
    - Atomic append: the movement INSERT and the Part UPDATE run inside one
      SAVEPOINT.  Either both persist or neither does.  A sequence collision
      with a concurrent append is treated like a CAS miss.
    - Compare-and-swap: the Part UPDATE matches only when ``quantity`` and
      ``movement_seq`` still hold the values read for the append.  A miss
      rolls back the savepoint, re-reads and retries.
    - Movement arithmetic: quantity_after = quantity_before + quantity_change,
      quantity_change != 0.
    - No negative stock unless the movement type is configured to allow it.

Failure modes:
    - PartNotFoundError / TenantAccessError for an unknown or foreign part.
    - InvalidQuantityError for a zero or non-integer change.
    - InvalidMovementTypeError for an unknown movement type.
    - NegativeStockError when the append would drive stock below zero.
    - ConcurrencyConflictError when ``expected_quantity_before`` does not
      match, or the CAS keeps missing after ``max_conflict_retries`` re-reads.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from stock_kernel.domain.dtos import RecomputeResult, StockMovementInfo
from stock_kernel.domain.enums import MovementType
from stock_kernel.domain.quantities import MAX_QUANTITY, require_quantity
from stock_kernel.exceptions import (
    ConcurrencyConflictError,
    InvalidMovementTypeError,
    InvalidQuantityError,
    NegativeStockError,
    PartNotFoundError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.part import Part
from stock_kernel.models.stock_movement import StockMovement
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_ledger")


def coerce_movement_type(movement_type: MovementType | str) -> MovementType:
    """Accept a MovementType or its string value."""
    if isinstance(movement_type, MovementType):
        return movement_type
    try:
        return MovementType(movement_type)
    except ValueError:
        raise InvalidMovementTypeError(str(movement_type)) from None


class StockLedger(BaseService[StockMovement]):
    """
    Append-only stock movement ledger.

    Contract:
        ``append`` returns only after the movement and the quantity update
        are both flushed inside the caller's transaction.
    """

    def append(
        self,
        part_id: UUID,
        movement_type: MovementType | str,
        quantity_change: int,
        *,
        job_id: UUID | None = None,
        purchase_order_id: UUID | None = None,
        job_part_id: UUID | None = None,
        po_item_id: UUID | None = None,
        reason: str | None = None,
        notes: str | None = None,
        expected_quantity_before: int | None = None,
    ) -> StockMovementInfo:
        """
        Record one movement and apply it to the part's quantity.

        Args:
            part_id: Part in the caller's tenant.
            movement_type: Kind of movement.
            quantity_change: Signed, non-zero delta.
            expected_quantity_before: When given, the append fails with
                ConcurrencyConflictError unless the current quantity equals it.

        Returns:
            The appended movement.
        """
        movement_type = coerce_movement_type(movement_type)
        require_quantity("quantity_change", quantity_change)
        if quantity_change == 0:
            raise InvalidQuantityError("quantity_change", quantity_change, "must be non-zero")

        with self._log_scope(job_id=job_id, purchase_order_id=purchase_order_id):
            attempts = 0
            while True:
                attempts += 1
                part = self._load(Part, part_id, PartNotFoundError(str(part_id)), for_update=True)
                quantity_before = part.quantity
                seq = part.movement_seq

                if expected_quantity_before is not None and quantity_before != expected_quantity_before:
                    logger.warning(
                        "stock_movement_expectation_failed",
                        extra={
                            "part_id": str(part_id),
                            "expected_quantity": expected_quantity_before,
                            "actual_quantity": quantity_before,
                        },
                    )
                    raise ConcurrencyConflictError(
                        str(part_id), expected_quantity_before, quantity_before, attempts,
                    )

                quantity_after = quantity_before + quantity_change
                if abs(quantity_after) > MAX_QUANTITY:
                    raise InvalidQuantityError(
                        "quantity_change", quantity_change, f"would take quantity past {MAX_QUANTITY}",
                    )
                if quantity_after < 0 and not self.config.allows_negative(movement_type.value):
                    logger.warning(
                        "negative_stock_rejected",
                        extra={
                            "part_id": str(part_id),
                            "movement_type": movement_type.value,
                            "quantity_before": quantity_before,
                            "quantity_change": quantity_change,
                        },
                    )
                    raise NegativeStockError(
                        str(part_id), movement_type.value, quantity_before, quantity_change,
                    )

                movement = self._try_append(
                    part,
                    seq,
                    quantity_before,
                    quantity_after,
                    movement_type=movement_type.value,
                    quantity_change=quantity_change,
                    job_id=job_id,
                    purchase_order_id=purchase_order_id,
                    job_part_id=job_part_id,
                    po_item_id=po_item_id,
                    reason=reason,
                    notes=notes,
                )
                if movement is not None:
                    logger.info(
                        "stock_movement_appended",
                        extra={
                            "part_id": str(part_id),
                            "movement_id": str(movement.id),
                            "sequence": movement.sequence,
                            "movement_type": movement_type.value,
                            "quantity_change": quantity_change,
                            "quantity_before": quantity_before,
                            "quantity_after": quantity_after,
                            "attempts": attempts,
                        },
                    )
                    return movement.to_dto()

                logger.warning(
                    "stock_movement_conflict",
                    extra={
                        "part_id": str(part_id),
                        "expected_quantity": quantity_before,
                        "expected_seq": seq,
                        "attempt": attempts,
                    },
                )
                if attempts > self.config.max_conflict_retries:
                    raise ConcurrencyConflictError(
                        str(part_id), quantity_before, self._read_quantity(part_id), attempts,
                    )

    def _try_append(
        self,
        part: Part,
        seq: int,
        quantity_before: int,
        quantity_after: int,
        **movement_fields,
    ) -> StockMovement | None:
        """
        Insert the movement and CAS the part inside one savepoint.

        Returns None (savepoint rolled back) when the CAS matched no row.
        """
        stamp = self._stamp()
        savepoint = self.session.begin_nested()
        try:
            movement = StockMovement(
                part_id=part.id,
                sequence=seq + 1,
                quantity_before=quantity_before,
                quantity_after=quantity_after,
                **movement_fields,
                **stamp,
            )
            self.session.add(movement)
            self.session.flush()

            result = self.session.execute(
                update(Part)
                .where(
                    Part.id == part.id,
                    Part.quantity == quantity_before,
                    Part.movement_seq == seq,
                )
                .values(
                    quantity=quantity_after,
                    movement_seq=seq + 1,
                    updated_at=stamp["updated_at"],
                    updated_by_id=self.actor_id,
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                savepoint.rollback()
                self.session.expire(part)
                return None
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            self.session.expire(part)
            # Another writer already took sequence seq + 1
            if self._read_seq(part.id) != seq:
                return None
            raise
        except Exception:
            savepoint.rollback()
            raise

        self.session.expire(part)
        return movement

    def _read_quantity(self, part_id: UUID) -> int | None:
        return self.session.execute(
            select(Part.quantity).where(Part.id == part_id)
        ).scalar_one_or_none()

    def _read_seq(self, part_id: UUID) -> int | None:
        return self.session.execute(
            select(Part.movement_seq).where(Part.id == part_id)
        ).scalar_one_or_none()

    def recompute_from_ledger(self, part_id: UUID) -> RecomputeResult:
        """
        Replay the part's movements and overwrite its quantity with the sum.

        Administrative and idempotent.  Drift is logged, never silently
        absorbed.
        """
        with self._log_scope():
            part = self._load(Part, part_id, PartNotFoundError(str(part_id)), for_update=True)
            previous = part.quantity

            changes = self.session.execute(
                select(StockMovement.quantity_change, StockMovement.sequence)
                .where(StockMovement.part_id == part.id)
                .order_by(StockMovement.sequence)
            ).all()

            running = 0
            last_seq = 0
            for change, sequence in changes:
                running += change
                last_seq = sequence

            result = RecomputeResult(
                part_id=part.id,
                previous_quantity=previous,
                recomputed_quantity=running,
                movement_count=len(changes),
            )

            if result.corrected or part.movement_seq < last_seq:
                self.session.execute(
                    update(Part)
                    .where(Part.id == part.id)
                    .values(
                        quantity=running,
                        movement_seq=max(part.movement_seq, last_seq),
                        updated_at=self._clock.now(),
                        updated_by_id=self.actor_id,
                    )
                    .execution_options(synchronize_session=False)
                )
                self.session.expire(part)

            if result.corrected:
                logger.warning(
                    "ledger_drift_corrected",
                    extra={
                        "part_id": str(part_id),
                        "previous_quantity": previous,
                        "recomputed_quantity": running,
                        "drift": result.drift,
                        "movement_count": result.movement_count,
                    },
                )
            else:
                logger.info(
                    "ledger_recompute_no_drift",
                    extra={
                        "part_id": str(part_id),
                        "quantity": running,
                        "movement_count": result.movement_count,
                    },
                )
            self.session.flush()
            return result

    def record_count(
        self,
        part_id: UUID,
        counted_quantity: int,
        reason: str | None = None,
    ) -> StockMovementInfo | None:
        """
        Record a physical count.

        Appends a ``count`` movement for the difference between the counted
        and stored quantity; returns None when they already agree.
        """
        require_quantity("counted_quantity", counted_quantity, minimum=0)

        part = self._load(Part, part_id, PartNotFoundError(str(part_id)))
        current = part.quantity
        difference = counted_quantity - current
        if difference == 0:
            logger.info(
                "physical_count_matched",
                extra={"part_id": str(part_id), "quantity": current},
            )
            return None

        return self.append(
            part_id,
            MovementType.COUNT,
            difference,
            reason=reason or "Physical count",
            expected_quantity_before=current,
        )
