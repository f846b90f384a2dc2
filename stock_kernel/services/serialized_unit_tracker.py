"""
Service layer for serialized units.

Each unit follows SERIALIZED_ITEM_WORKFLOW independently of the part's
aggregate quantity.  The two are compared only on request
(SerialReconciliationSelector), never reconciled automatically.
"""

from __future__ import annotations

from datetime import date
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import SerializedItemInfo
from stock_kernel.domain.enums import SerialStatus
from stock_kernel.domain.workflows import SERIALIZED_ITEM_WORKFLOW
from stock_kernel.exceptions import (
    DuplicateSerialNumberError,
    InvalidTransitionError,
    PartNotFoundError,
    SerializedItemNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.part import Part
from stock_kernel.models.serialized_item import SerializedItem
from stock_kernel.services.base import BaseService

logger = get_logger("services.serialized_unit_tracker")


class SerializedUnitTracker(BaseService[SerializedItem]):
    """Create serialized units and move them through their lifecycle."""

    def _get(self, item_id: UUID, *, for_update: bool = False) -> SerializedItem:
        return self._load(
            SerializedItem, item_id, SerializedItemNotFoundError(str(item_id)), for_update=for_update,
        )

    def create(
        self,
        part_id: UUID,
        serial_number: str,
        *,
        acquisition_date: date | None = None,
        acquisition_source: str | None = None,
        notes: str | None = None,
    ) -> SerializedItemInfo:
        """
        Register a unit in ``in_stock``.

        Raises:
            ValidationError: blank serial number.
            DuplicateSerialNumberError: serial already registered for the part.
        """
        serial_number = (serial_number or "").strip()
        if not serial_number:
            raise ValidationError("Serial number is required")

        self._load(Part, part_id, PartNotFoundError(str(part_id)))

        existing = self.session.execute(
            select(SerializedItem.id).where(
                SerializedItem.part_id == part_id,
                SerializedItem.serial_number == serial_number,
            )
        ).first()
        if existing is not None:
            raise DuplicateSerialNumberError(str(part_id), serial_number)

        with self._log_scope():
            item = SerializedItem(
                part_id=part_id,
                serial_number=serial_number,
                status=SERIALIZED_ITEM_WORKFLOW.initial_state,
                acquisition_date=acquisition_date,
                acquisition_source=acquisition_source,
                notes=notes,
                **self._stamp(),
            )
            self.session.add(item)
            self.session.flush()

            logger.info(
                "serialized_item_created",
                extra={
                    "serialized_item_id": str(item.id),
                    "part_id": str(part_id),
                    "serial_number": serial_number,
                },
            )
            return item.to_dto()

    def transition(
        self,
        item_id: UUID,
        new_status: SerialStatus | str,
        *,
        job_id: UUID | None = None,
        customer_id: UUID | None = None,
        notes: str | None = None,
    ) -> SerializedItemInfo:
        """
        Move a unit to ``new_status``.

        ``used_in_job`` records ``job_id``; ``sold`` records ``customer_id``.

        Raises:
            InvalidTransitionError: the edge is not in the workflow (this
                includes same-state moves and anything out of ``damaged``).
        """
        item = self._get(item_id, for_update=True)
        from_status = item.status
        try:
            to_status = SerialStatus(new_status).value
        except ValueError:
            raise InvalidTransitionError(
                "SerializedItem", str(item_id), from_status, str(new_status),
            ) from None

        with self._log_scope(job_id=job_id):
            if not SERIALIZED_ITEM_WORKFLOW.is_allowed(from_status, to_status):
                logger.warning(
                    "serialized_item_transition_rejected",
                    extra={
                        "serialized_item_id": str(item_id),
                        "from_status": from_status,
                        "to_status": to_status,
                    },
                )
                raise InvalidTransitionError("SerializedItem", str(item_id), from_status, to_status)

            item.status = to_status
            if to_status == SerialStatus.USED_IN_JOB.value and job_id is not None:
                item.job_id = job_id
            if to_status == SerialStatus.SOLD.value and customer_id is not None:
                item.customer_id = customer_id
            if notes is not None:
                item.notes = notes
            item.updated_by_id = self.actor_id
            self.session.flush()

            logger.info(
                "serialized_item_transitioned",
                extra={
                    "serialized_item_id": str(item_id),
                    "from_status": from_status,
                    "to_status": to_status,
                },
            )
            return item.to_dto()

    def get(self, item_id: UUID) -> SerializedItemInfo:
        return self._get(item_id).to_dto()

    def list_items(
        self,
        part_id: UUID | None = None,
        status: SerialStatus | str | None = None,
    ) -> list[SerializedItemInfo]:
        """Newest first, optionally filtered by part and status."""
        stmt = select(SerializedItem).where(SerializedItem.tenant_id == self.tenant_id)
        if part_id is not None:
            stmt = stmt.where(SerializedItem.part_id == part_id)
        if status is not None:
            stmt = stmt.where(SerializedItem.status == SerialStatus(status).value)
        stmt = stmt.order_by(SerializedItem.created_at.desc(), SerializedItem.serial_number)
        return [item.to_dto() for item in self.session.execute(stmt).scalars()]
