"""
Tests for PartCatalog.

Covers:
- Part creation and opening-balance movements
- Master-data updates (quantity is never editable)
- Lookups, listing and firearm compatibility search
- Tenant isolation
"""

from decimal import Decimal
from uuid import uuid4

import pytest

from stock_kernel.domain.enums import MovementType
from stock_kernel.exceptions import (
    DuplicatePartNumberError,
    InvalidQuantityError,
    PartNotFoundError,
    TenantAccessError,
    ValidationError,
)
from stock_kernel.services.part_catalog import PartCatalog


class TestCreatePart:
    """Tests for PartCatalog.create_part()."""

    def test_create_without_stock(self, part_catalog, movement_selector):
        part = part_catalog.create_part("Recoil Spring", part_number="RS-17")

        assert part.quantity == 0
        assert part.movement_seq == 0
        assert part.part_number == "RS-17"
        assert movement_selector.history(part.id) == []

    def test_opening_balance_recorded_as_adjustment(self, part_catalog, movement_selector):
        part = part_catalog.create_part("Extractor", initial_quantity=12)

        history = movement_selector.history(part.id)
        assert part.quantity == 12
        assert len(history) == 1
        assert history[0].movement_type == MovementType.ADJUSTMENT
        assert history[0].quantity_before == 0
        assert history[0].quantity_after == 12
        assert history[0].reason == "Opening balance"

    def test_all_fields_stored(self, part_catalog):
        part = part_catalog.create_part(
            "Trigger Bar",
            part_number="TB-1",
            min_quantity=2,
            unit_cost=Decimal("12.50"),
            retail_price=Decimal("24.99"),
            category="Triggers",
            manufacturer="Glock",
            location="Bin A3",
            is_serialized=False,
            compatible_firearms=["Glock 19", "Glock 17"],
        )

        assert part.unit_cost == Decimal("12.50")
        assert part.retail_price == Decimal("24.99")
        assert part.category == "Triggers"
        assert part.location == "Bin A3"
        assert part.compatible_firearms == ("Glock 19", "Glock 17")

    def test_blank_name_rejected(self, part_catalog):
        with pytest.raises(ValidationError):
            part_catalog.create_part("   ")

    def test_negative_initial_quantity_rejected(self, part_catalog):
        with pytest.raises(InvalidQuantityError):
            part_catalog.create_part("Pin", initial_quantity=-1)

    def test_negative_min_quantity_rejected(self, part_catalog):
        with pytest.raises(InvalidQuantityError):
            part_catalog.create_part("Pin", min_quantity=-1)

    def test_negative_price_rejected(self, part_catalog):
        with pytest.raises(InvalidQuantityError):
            part_catalog.create_part("Pin", unit_cost=Decimal("-1"))

    @pytest.mark.parametrize("price", [Decimal("NaN"), Decimal("-Infinity"), "n/a", Decimal("1e40")])
    def test_unusable_price_rejected(self, part_catalog, price):
        with pytest.raises(InvalidQuantityError):
            part_catalog.create_part("Pin", retail_price=price)

    def test_duplicate_part_number_rejected(self, part_catalog):
        part_catalog.create_part("Pin", part_number="PIN-1")

        with pytest.raises(DuplicatePartNumberError):
            part_catalog.create_part("Other Pin", part_number="PIN-1")

    def test_same_part_number_allowed_in_other_tenant(
        self, session, part_catalog, other_context, deterministic_clock, ledger_config,
    ):
        part_catalog.create_part("Pin", part_number="PIN-1")
        other = PartCatalog(session, other_context, deterministic_clock, ledger_config)

        part = other.create_part("Pin", part_number="PIN-1")

        assert part.tenant_id == other_context.tenant_id


class TestUpdatePart:
    """Tests for PartCatalog.update_part()."""

    def test_update_master_data(self, part_catalog, make_part):
        part = make_part(quantity=3)

        updated = part_catalog.update_part(part.id, location="Shelf 9", min_quantity=4)

        assert updated.location == "Shelf 9"
        assert updated.min_quantity == 4
        assert updated.quantity == 3

    def test_quantity_rejected(self, part_catalog, make_part):
        part = make_part(quantity=3)

        with pytest.raises(ValidationError):
            part_catalog.update_part(part.id, quantity=50)

        assert part_catalog.get_quantity(part.id) == 3

    def test_unknown_field_rejected(self, part_catalog, make_part):
        part = make_part()

        with pytest.raises(ValidationError):
            part_catalog.update_part(part.id, colour="black")

    def test_part_number_collision_rejected(self, part_catalog, make_part):
        make_part(part_number="A-1")
        part = make_part(part_number="B-1")

        with pytest.raises(DuplicatePartNumberError):
            part_catalog.update_part(part.id, part_number="A-1")

    def test_update_after_movements_keeps_quantity(self, part_catalog, stock_ledger, make_part):
        part = make_part(quantity=3)
        stock_ledger.append(part.id, MovementType.PURCHASE, 4)

        updated = part_catalog.update_part(part.id, name="Renamed")

        assert updated.name == "Renamed"
        assert updated.quantity == 7


class TestLookups:
    """Tests for reads."""

    def test_get_unknown_part(self, part_catalog):
        with pytest.raises(PartNotFoundError):
            part_catalog.get_part(uuid4())

    def test_get_foreign_part(self, session, other_context, deterministic_clock, ledger_config, make_part):
        part = make_part()
        other = PartCatalog(session, other_context, deterministic_clock, ledger_config)

        with pytest.raises(TenantAccessError):
            other.get_quantity(part.id)

    def test_list_parts_ordered_by_name(self, part_catalog):
        part_catalog.create_part("Zeta")
        part_catalog.create_part("Alpha")

        names = [p.name for p in part_catalog.list_parts()]

        assert names == sorted(names)

    def test_list_parts_is_tenant_scoped(self, session, part_catalog, other_context, deterministic_clock, ledger_config):
        part_catalog.create_part("Mine")
        other = PartCatalog(session, other_context, deterministic_clock, ledger_config)
        other.create_part("Theirs")

        assert [p.name for p in part_catalog.list_parts()] == ["Mine"]

    def test_find_by_part_number(self, part_catalog, make_part):
        part = make_part(part_number="FIND-ME")

        assert part_catalog.find_by_part_number("FIND-ME").id == part.id
        assert part_catalog.find_by_part_number("MISSING") is None


class TestPartsForFirearm:
    """Tests for compatibility search."""

    def test_matches_make_and_model(self, part_catalog):
        part_catalog.create_part("G19 Barrel", compatible_firearms=["Glock 19"])
        part_catalog.create_part("1911 Spring", compatible_firearms=["Colt 1911"])

        results = part_catalog.parts_for_firearm("glock", "19")

        assert [p.name for p in results] == ["G19 Barrel"]

    def test_make_only(self, part_catalog):
        part_catalog.create_part("G19 Barrel", compatible_firearms=["Glock 19"])
        part_catalog.create_part("G17 Barrel", compatible_firearms=["Glock 17"])

        assert len(part_catalog.parts_for_firearm(make="Glock")) == 2

    def test_no_terms_returns_empty(self, part_catalog):
        part_catalog.create_part("G19 Barrel", compatible_firearms=["Glock 19"])

        assert part_catalog.parts_for_firearm() == []
        assert part_catalog.parts_for_firearm(" ", None) == []
