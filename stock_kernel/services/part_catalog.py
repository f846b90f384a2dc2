"""
Service layer for Part master data.

Returns PartInfo DTOs instead of ORM entities.  Quantity is read here but
only ever changed through StockLedger.
"""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import PartInfo, RecomputeResult
from stock_kernel.domain.enums import MovementType
from stock_kernel.domain.quantities import require_money, require_quantity
from stock_kernel.exceptions import (
    DuplicatePartNumberError,
    PartNotFoundError,
    ValidationError,
)
from stock_kernel.logging_config import get_logger
from stock_kernel.models.part import Part
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_ledger import StockLedger

logger = get_logger("services.part_catalog")

# Fields update_part() may change
EDITABLE_FIELDS = frozenset({
    "name",
    "part_number",
    "category",
    "manufacturer",
    "location",
    "min_quantity",
    "unit_cost",
    "retail_price",
    "is_serialized",
    "compatible_firearms",
})

OPENING_BALANCE_REASON = "Opening balance"


def _check_money(field: str, value: Decimal | None) -> Decimal | None:
    return None if value is None else require_money(field, value)


def _check_min_quantity(value) -> int:
    return require_quantity("min_quantity", value, minimum=0)


class PartCatalog(BaseService[Part]):
    """
    Part master data and authoritative on-hand quantity.

    Shares the caller's session, context, clock and config with its
    StockLedger.
    """

    def __init__(self, session, context, clock=None, config=None, ledger: StockLedger | None = None):
        super().__init__(session, context, clock, config)
        self.ledger = ledger or StockLedger(session, context, self._clock, self.config)

    def _get(self, part_id: UUID) -> Part:
        return self._load(Part, part_id, PartNotFoundError(str(part_id)))

    def _ensure_part_number_free(self, part_number: str | None, exclude_id: UUID | None = None) -> None:
        if part_number is None:
            return
        stmt = select(Part.id).where(
            Part.tenant_id == self.tenant_id,
            Part.part_number == part_number,
        )
        if exclude_id is not None:
            stmt = stmt.where(Part.id != exclude_id)
        if self.session.execute(stmt).first() is not None:
            raise DuplicatePartNumberError(part_number)

    # -------------------------------------------------------------------------
    # Quantity
    # -------------------------------------------------------------------------

    def get_quantity(self, part_id: UUID) -> int:
        """Current on-hand quantity."""
        return self._get(part_id).quantity

    def recompute_from_ledger(self, part_id: UUID) -> RecomputeResult:
        """Rebuild quantity from the movement log (see StockLedger)."""
        return self.ledger.recompute_from_ledger(part_id)

    # -------------------------------------------------------------------------
    # Master data
    # -------------------------------------------------------------------------

    def create_part(
        self,
        name: str,
        *,
        part_number: str | None = None,
        min_quantity: int = 0,
        initial_quantity: int = 0,
        unit_cost: Decimal | None = None,
        retail_price: Decimal | None = None,
        category: str | None = None,
        manufacturer: str | None = None,
        location: str | None = None,
        is_serialized: bool = False,
        compatible_firearms: Iterable[str] = (),
    ) -> PartInfo:
        """
        Create a part at quantity 0.

        A positive ``initial_quantity`` is recorded as an ``adjustment``
        movement, so the opening balance is part of the ledger.

        Raises:
            ValidationError: blank name.
            InvalidQuantityError: negative quantities or prices.
            DuplicatePartNumberError: part_number already used in the tenant.
        """
        if not name or not name.strip():
            raise ValidationError("Part name is required")
        _check_min_quantity(min_quantity)
        require_quantity("initial_quantity", initial_quantity, minimum=0)
        self._ensure_part_number_free(part_number)

        with self._log_scope():
            part = Part(
                name=name.strip(),
                part_number=part_number,
                category=category,
                manufacturer=manufacturer,
                location=location,
                quantity=0,
                min_quantity=min_quantity,
                unit_cost=_check_money("unit_cost", unit_cost),
                retail_price=_check_money("retail_price", retail_price),
                is_serialized=is_serialized,
                compatible_firearms=[str(f) for f in compatible_firearms],
                movement_seq=0,
                **self._stamp(),
            )
            self.session.add(part)
            self.session.flush()

            logger.info(
                "part_created",
                extra={
                    "part_id": str(part.id),
                    "part_number": part_number,
                    "initial_quantity": initial_quantity,
                },
            )

            if initial_quantity > 0:
                self.ledger.append(
                    part.id,
                    MovementType.ADJUSTMENT,
                    initial_quantity,
                    reason=OPENING_BALANCE_REASON,
                )

            return self._get(part.id).to_dto()

    def update_part(self, part_id: UUID, **fields) -> PartInfo:
        """
        Edit master data.

        Raises:
            ValidationError: ``quantity`` or ``movement_seq`` given (use the
                ledger), or an unknown field.
        """
        if "quantity" in fields or "movement_seq" in fields:
            raise ValidationError(
                "Part quantity cannot be edited directly; record a stock movement instead"
            )
        unknown = set(fields) - EDITABLE_FIELDS
        if unknown:
            raise ValidationError(f"Unknown part fields: {sorted(unknown)}")

        part = self._get(part_id)

        if "name" in fields:
            if not fields["name"] or not str(fields["name"]).strip():
                raise ValidationError("Part name is required")
            fields["name"] = str(fields["name"]).strip()
        if "min_quantity" in fields:
            _check_min_quantity(fields["min_quantity"])
        for money in ("unit_cost", "retail_price"):
            if money in fields:
                fields[money] = _check_money(money, fields[money])
        if "compatible_firearms" in fields:
            fields["compatible_firearms"] = [str(f) for f in fields["compatible_firearms"] or ()]
        if fields.get("part_number") is not None:
            self._ensure_part_number_free(fields["part_number"], exclude_id=part.id)

        with self._log_scope():
            for key, value in fields.items():
                setattr(part, key, value)
            part.updated_by_id = self.actor_id
            self.session.flush()

            logger.info(
                "part_updated",
                extra={"part_id": str(part_id), "fields": sorted(fields)},
            )
            return part.to_dto()

    def get_part(self, part_id: UUID) -> PartInfo:
        return self._get(part_id).to_dto()

    def list_parts(self) -> list[PartInfo]:
        """All parts of the tenant, by name."""
        stmt = (
            select(Part)
            .where(Part.tenant_id == self.tenant_id)
            .order_by(Part.name, Part.part_number)
        )
        return [p.to_dto() for p in self.session.execute(stmt).scalars()]

    def find_by_part_number(self, part_number: str) -> PartInfo | None:
        stmt = select(Part).where(
            Part.tenant_id == self.tenant_id,
            Part.part_number == part_number,
        )
        part = self.session.execute(stmt).scalar_one_or_none()
        return part.to_dto() if part else None

    def parts_for_firearm(self, make: str | None = None, model: str | None = None) -> list[PartInfo]:
        """
        Parts whose compatible_firearms mention ``"make model"``.

        Matching is a case-insensitive substring test against each entry.
        Returns an empty list when neither make nor model is given.
        """
        term = " ".join(s.strip() for s in (make, model) if s and s.strip()).lower()
        if not term:
            return []

        return [
            part for part in self.list_parts()
            if any(term in entry.lower() for entry in part.compatible_firearms)
        ]
