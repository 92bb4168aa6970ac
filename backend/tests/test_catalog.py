"""
Catalog and partner tests.

Covers item code rules, barcodes, the category tree and the delete guards
that keep history consistent.
"""

import pytest

from smerp.errors import ConflictError, NotFoundError, ValidationError
from smerp.models import Barcode, Inventory
from smerp.services import catalog_service, inventory_service, partner_service, transaction_service


# =============================================================================
# ITEMS
# =============================================================================


class TestItems:

    def test_code_stored_upper_case_with_empty_stock(self, db_session, item):
        assert item.code == "W-100"
        inv = db_session.query(Inventory).filter_by(item_id=item.id).one()
        assert inv.quantity == 0

    def test_duplicate_code_ignores_case(self, db_session, item):
        with pytest.raises(ConflictError):
            catalog_service.create_item({"code": "W-100", "name": "Another widget"})
        with pytest.raises(ConflictError):
            catalog_service.create_item({"code": "w-100", "name": "Another widget"})

    @pytest.mark.parametrize("payload", [
        {"name": "No code"},
        {"code": "X-1"},
        {"code": "X-1", "name": "Bad price", "unit_price_cents": -5},
        {"code": "X-1", "name": "Bad level", "min_stock_level": -1},
        {"code": "X-1", "name": "Unknown", "colour": "blue"},
    ])
    def test_invalid_items(self, db_session, payload):
        with pytest.raises(ValidationError):
            catalog_service.create_item(payload)

    def test_code_locked_after_transactions(self, db_session, supplier, item):
        catalog_service.update_item(item.id, {"code": "w-101"})
        assert catalog_service.get_item(item.id).code == "W-101"

        transaction_service.create_transaction("purchase", supplier.id, [{"item_id": item.id, "quantity": 1}])

        with pytest.raises(ConflictError):
            catalog_service.update_item(item.id, {"code": "W-102"})
        catalog_service.update_item(item.id, {"name": "Widget Mk II"})
        assert catalog_service.get_item(item.id).name == "Widget Mk II"

    def test_delete_unused_item(self, db_session, item):
        catalog_service.add_barcode(item.id, "8801234567890")
        item_id = item.id

        catalog_service.delete_item(item_id)

        with pytest.raises(NotFoundError):
            catalog_service.get_item(item_id)
        assert db_session.query(Inventory).filter_by(item_id=item_id).count() == 0
        assert db_session.query(Barcode).count() == 0

    def test_delete_refused_with_history(self, db_session, item):
        inventory_service.adjust_inventory(item.id, 5, "adjustment")
        with pytest.raises(ConflictError):
            catalog_service.delete_item(item.id)

    def test_delete_refused_with_transactions(self, db_session, supplier, item):
        transaction_service.create_transaction("purchase", supplier.id, [{"item_id": item.id, "quantity": 1}])
        with pytest.raises(ConflictError):
            catalog_service.delete_item(item.id)

    def test_search(self, db_session, item, other_item):
        assert [i.code for i in catalog_service.list_items(q="gad")] == ["G-200"]
        assert [i.code for i in catalog_service.list_items()] == ["G-200", "W-100"]


# =============================================================================
# BARCODES
# =============================================================================


class TestBarcodes:

    def test_normalized_and_looked_up(self, db_session, item):
        row = catalog_service.add_barcode(item.id, " 880 1234 abc ")
        assert row.barcode == "8801234ABC"

        found = catalog_service.lookup_barcode("8801234abc")
        assert found.item_id == item.id

    def test_unique_across_items(self, db_session, item, other_item):
        catalog_service.add_barcode(item.id, "111")
        with pytest.raises(ConflictError) as exc_info:
            catalog_service.add_barcode(other_item.id, "111")
        assert exc_info.value.details["item_id"] == item.id

    def test_inactive_barcode_still_reserved(self, db_session, item, other_item):
        row = catalog_service.add_barcode(item.id, "222")
        row.is_active = False
        db_session.commit()

        with pytest.raises(NotFoundError):
            catalog_service.lookup_barcode("222")
        with pytest.raises(ConflictError):
            catalog_service.add_barcode(other_item.id, "222")

    @pytest.mark.parametrize("value", [None, "", "   "])
    def test_blank_barcode(self, db_session, item, value):
        with pytest.raises(ValidationError):
            catalog_service.add_barcode(item.id, value)

    def test_unknown_item(self, db_session):
        with pytest.raises(NotFoundError):
            catalog_service.add_barcode(9999, "333")


# =============================================================================
# CATEGORIES
# =============================================================================


class TestCategories:

    def test_levels_follow_parents(self, db_session):
        major = catalog_service.create_category("Hardware")
        middle = catalog_service.create_category("Fasteners", major.id)
        minor = catalog_service.create_category("Screws", middle.id)

        assert (major.level, middle.level, minor.level) == (1, 2, 3)
        with pytest.raises(ValidationError):
            catalog_service.create_category("Wood screws", minor.id)

    def test_move_under_descendant_refused(self, db_session):
        major = catalog_service.create_category("Hardware")
        middle = catalog_service.create_category("Fasteners", major.id)

        with pytest.raises(ValidationError):
            catalog_service.update_category(major.id, {"parent_id": middle.id})
        with pytest.raises(ValidationError):
            catalog_service.update_category(major.id, {"parent_id": major.id})

    def test_move_relevels_subtree(self, db_session):
        tools = catalog_service.create_category("Tools")
        hardware = catalog_service.create_category("Hardware")
        fasteners = catalog_service.create_category("Fasteners", hardware.id)

        catalog_service.update_category(hardware.id, {"parent_id": tools.id})

        assert (hardware.level, fasteners.level) == (2, 3)

    def test_move_too_deep_refused(self, db_session):
        tools = catalog_service.create_category("Tools")
        power = catalog_service.create_category("Power", tools.id)
        hardware = catalog_service.create_category("Hardware")
        catalog_service.create_category("Fasteners", hardware.id)

        with pytest.raises(ValidationError):
            catalog_service.update_category(hardware.id, {"parent_id": power.id})

    def test_delete_guards(self, db_session):
        major = catalog_service.create_category("Hardware")
        middle = catalog_service.create_category("Fasteners", major.id)
        catalog_service.create_item({"code": "S-1", "name": "Screw", "category_id": middle.id})

        with pytest.raises(ConflictError):
            catalog_service.delete_category(major.id)
        with pytest.raises(ConflictError):
            catalog_service.delete_category(middle.id)


# =============================================================================
# PARTNERS
# =============================================================================


class TestPartners:

    def test_duplicate_business_number(self, db_session, customer):
        with pytest.raises(ConflictError):
            partner_service.create_partner({
                "name": "Copycat", "type": "supplier", "business_number": "123-45-67890",
            })

    def test_invalid_type(self, db_session):
        with pytest.raises(ValidationError):
            partner_service.create_partner({"name": "Mystery", "type": "friend"})

    def test_both_listed_under_each_type(self, db_session, customer, supplier):
        both = partner_service.create_partner({"name": "Two Way Trading", "type": "both"})

        customers = {p.id for p in partner_service.list_partners(type="customer")}
        suppliers = {p.id for p in partner_service.list_partners(type="supplier")}
        assert customers == {customer.id, both.id}
        assert suppliers == {supplier.id, both.id}

    def test_delete_guarded_by_transactions(self, db_session, supplier, item):
        transaction_service.create_transaction("purchase", supplier.id, [{"item_id": item.id, "quantity": 1}])
        with pytest.raises(ConflictError):
            partner_service.delete_partner(supplier.id)

        partner_service.update_partner(supplier.id, {"is_active": False})
        assert partner_service.get_partner(supplier.id).is_active is False

    def test_delete_unused(self, db_session, customer):
        partner_id = customer.id
        partner_service.delete_partner(partner_id)
        with pytest.raises(NotFoundError):
            partner_service.get_partner(partner_id)
