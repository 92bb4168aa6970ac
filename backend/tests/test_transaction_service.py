"""
Transaction processor tests.

Verifies:
- Purchases and sales post to the inventory ledger with the right sign
- Totals include per-line tax; lines always sum to total - tax
- Validation is all-or-nothing (nothing written on failure)
- Stock policy: rejection by default, warning when negative stock is allowed
- Cancel reverses postings exactly; updates post only the difference
- A posting failure mid-batch is compensated and leaves the transaction canceled
"""

from datetime import date

import pytest

from smerp.errors import (
    ConflictError,
    InsufficientStockError,
    InvalidTransitionError,
    InventoryNotFound,
    NegativeStockWarning,
    PostingError,
    ValidationError,
)
from smerp.models import InventoryHistory, Notification, Partner, TaxInvoice, Transaction
from smerp.services import inventory_service, payment_service, tax_invoice_service, transaction_service
from smerp.services.transaction_service import compute_line_tax


def _purchase(supplier, item_id, quantity, **kwargs):
    return transaction_service.create_transaction(
        "purchase", supplier.id, [{"item_id": item_id, "quantity": quantity}], **kwargs
    )


def _sale(customer, item_id, quantity, **kwargs):
    return transaction_service.create_transaction(
        "sale", customer.id, [{"item_id": item_id, "quantity": quantity}], **kwargs
    )


def _changes(db_session, item_id):
    rows = (
        db_session.query(InventoryHistory)
        .filter_by(item_id=item_id)
        .order_by(InventoryHistory.id.asc())
        .all()
    )
    return [(r.transaction_type, r.change) for r in rows]


def _fail_second_adjustment(monkeypatch):
    """Make the second ledger posting fail as if its item had vanished."""
    real_adjust = transaction_service.adjust_inventory
    calls = []

    def flaky_adjust(item_id, delta, transaction_type, *args, **kwargs):
        calls.append((item_id, delta, transaction_type))
        if len(calls) == 2:
            raise InventoryNotFound("Item vanished", {"item_id": item_id})
        return real_adjust(item_id, delta, transaction_type, *args, **kwargs)

    monkeypatch.setattr(transaction_service, "adjust_inventory", flaky_adjust)
    return calls


# =============================================================================
# POSTING
# =============================================================================


class TestPosting:

    def test_purchase_then_sale(self, db_session, supplier, customer, item):
        purchase = _purchase(supplier, item.id, 10)
        sale = _sale(customer, item.id, 4)

        assert purchase.status == "completed"
        assert sale.status == "completed"
        assert inventory_service.get_quantity(item.id) == 6
        assert _changes(db_session, item.id) == [("purchase", 10), ("sale", -4)]

    def test_history_references_transaction(self, db_session, supplier, item):
        tx = _purchase(supplier, item.id, 2)
        row = db_session.query(InventoryHistory).filter_by(item_id=item.id).one()
        assert row.transaction_id == tx.id

    def test_totals_include_tax(self, db_session, customer, item, other_item, supplier):
        _purchase(supplier, item.id, 10)
        _purchase(supplier, other_item.id, 10)

        tx = transaction_service.create_transaction("sale", customer.id, [
            {"item_id": item.id, "quantity": 3},
            {"item_id": other_item.id, "quantity": 1, "unit_price_cents": 999},
        ])

        # 3 x 1500 = 4500 (+450 tax), 1 x 999 = 999 (+100 tax, rounded half-up)
        assert [line.amount_cents for line in tx.items] == [4500, 999]
        assert tx.tax_amount_cents == 550
        assert tx.total_amount_cents == 6049
        assert sum(line.amount_cents for line in tx.items) == tx.total_amount_cents - tx.tax_amount_cents

    def test_default_prices_by_type(self, db_session, supplier, customer, item):
        purchase = _purchase(supplier, item.id, 1)
        sale = _sale(customer, item.id, 1)

        assert purchase.items[0].unit_price_cents == item.cost_price_cents
        assert sale.items[0].unit_price_cents == item.unit_price_cents

    def test_generated_codes_count_per_day(self, db_session, supplier, item):
        first = _purchase(supplier, item.id, 1, date="2024-05-01")
        second = _purchase(supplier, item.id, 1, date="2024-05-01")
        next_day = _purchase(supplier, item.id, 1, date="2024-05-02")

        assert (first.code, second.code, next_day.code) == (
            "P-240501-0001",
            "P-240501-0002",
            "P-240502-0001",
        )
        assert first.date == date(2024, 5, 1)

    def test_duplicate_code_conflicts(self, db_session, supplier, item):
        _purchase(supplier, item.id, 1, code="MANUAL-1")
        with pytest.raises(ConflictError):
            _purchase(supplier, item.id, 1, code="MANUAL-1")

    @pytest.mark.parametrize("amount,expected", [(0, 0), (4, 0), (5, 1), (15, 2), (4500, 450)])
    def test_compute_line_tax_rounds_half_up(self, amount, expected):
        assert compute_line_tax(amount, 1000) == expected


# =============================================================================
# VALIDATION
# =============================================================================


class TestValidation:

    def test_insufficient_stock_rejected(self, db_session, customer, item):
        with pytest.raises(InsufficientStockError) as exc_info:
            _sale(customer, item.id, 5)

        assert exc_info.value.details == {
            "items": [{"item_id": item.id, "requested_quantity": 5, "on_hand": 0}]
        }
        assert db_session.query(Transaction).count() == 0
        assert _changes(db_session, item.id) == []

    def test_stock_checked_across_repeated_lines(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 5)
        with pytest.raises(InsufficientStockError):
            transaction_service.create_transaction("sale", customer.id, [
                {"item_id": item.id, "quantity": 3},
                {"item_id": item.id, "quantity": 3},
            ])
        assert inventory_service.get_quantity(item.id) == 5

    def test_negative_stock_allowed_warns(self, app, db_session, customer, item):
        app.config["ALLOW_NEGATIVE_STOCK"] = True

        with pytest.warns(NegativeStockWarning):
            tx = _sale(customer, item.id, 2)

        assert tx.status == "completed"
        assert inventory_service.get_quantity(item.id) == -2

    def test_bad_line_writes_nothing(self, db_session, supplier, item):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction("purchase", supplier.id, [
                {"item_id": item.id, "quantity": 5},
                {"item_id": 9999, "quantity": 1},
            ])

        assert db_session.query(Transaction).count() == 0
        assert inventory_service.get_quantity(item.id) == 0

    @pytest.mark.parametrize("overrides", [
        {"item_id": None},
        {"item_id": "x"},
        {"quantity": 0},
        {"quantity": -2},
        {"quantity": "1.5"},
        {"unit_price_cents": -1},
    ])
    def test_invalid_lines(self, db_session, supplier, item, overrides):
        line = {"item_id": item.id, "quantity": 1, **overrides}
        with pytest.raises(ValidationError):
            transaction_service.create_transaction("purchase", supplier.id, [line])

    def test_requires_lines(self, db_session, supplier):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction("purchase", supplier.id, [])

    def test_unknown_type(self, db_session, supplier, item):
        with pytest.raises(ValidationError):
            transaction_service.create_transaction("refund", supplier.id, [{"item_id": item.id, "quantity": 1}])

    def test_inactive_partner_refused(self, db_session, item):
        partner = Partner(name="Gone Ltd", type="supplier", is_active=False)
        db_session.add(partner)
        db_session.commit()

        with pytest.raises(ValidationError):
            _purchase(partner, item.id, 1)

    def test_inactive_item_refused(self, db_session, supplier, item):
        item.is_active = False
        db_session.commit()

        with pytest.raises(ValidationError):
            _purchase(supplier, item.id, 1)


# =============================================================================
# CANCEL / UPDATE / DELETE
# =============================================================================


class TestCancel:

    def test_cancel_reverses_sale(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 10)
        sale = _sale(customer, item.id, 4)

        canceled = transaction_service.cancel_transaction(sale.id, reason="returned")

        assert canceled.status == "canceled"
        assert canceled.cancel_reason == "returned"
        assert inventory_service.get_quantity(item.id) == 10
        assert _changes(db_session, item.id)[-1] == ("sale_cancel", 4)
        assert inventory_service.verify_ledger() == []

    def test_cancel_twice_refused(self, db_session, supplier, item):
        tx = _purchase(supplier, item.id, 3)
        transaction_service.cancel_transaction(tx.id)

        with pytest.raises(InvalidTransitionError):
            transaction_service.cancel_transaction(tx.id)
        assert inventory_service.get_quantity(item.id) == 0

    def test_cancel_purchase_of_sold_stock_refused(self, db_session, supplier, customer, item):
        purchase = _purchase(supplier, item.id, 10)
        _sale(customer, item.id, 8)

        with pytest.raises(InsufficientStockError):
            transaction_service.cancel_transaction(purchase.id)

        assert transaction_service.get_transaction(purchase.id).status == "completed"
        assert inventory_service.get_quantity(item.id) == 2

    def test_cancel_after_update_reverses_net(self, db_session, supplier, item):
        tx = _purchase(supplier, item.id, 5)
        transaction_service.update_transaction(tx.id, lines=[{"item_id": item.id, "quantity": 8}])

        transaction_service.cancel_transaction(tx.id)

        assert inventory_service.get_quantity(item.id) == 0
        assert _changes(db_session, item.id) == [
            ("purchase", 5),
            ("purchase_update", 3),
            ("purchase_cancel", -8),
        ]


class TestUpdate:

    def test_update_posts_difference_only(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 10)
        sale = _sale(customer, item.id, 4)

        updated = transaction_service.update_transaction(
            sale.id, lines=[{"item_id": item.id, "quantity": 6}], notes="two more"
        )

        assert inventory_service.get_quantity(item.id) == 4
        assert _changes(db_session, item.id)[-1] == ("sale_update", -2)
        assert updated.total_amount_cents == 9900
        assert updated.notes == "two more"

    def test_replacing_item_moves_stock(self, db_session, supplier, item, other_item):
        tx = _purchase(supplier, item.id, 4)

        transaction_service.update_transaction(tx.id, lines=[{"item_id": other_item.id, "quantity": 4}])

        assert inventory_service.get_quantity(item.id) == 0
        assert inventory_service.get_quantity(other_item.id) == 4

    def test_update_without_lines_leaves_stock(self, db_session, supplier, item):
        tx = _purchase(supplier, item.id, 4)
        transaction_service.update_transaction(tx.id, date="2024-06-01")

        assert transaction_service.get_transaction(tx.id).date == date(2024, 6, 1)
        assert len(_changes(db_session, item.id)) == 1

    def test_update_canceled_refused(self, db_session, supplier, item):
        tx = _purchase(supplier, item.id, 4)
        transaction_service.cancel_transaction(tx.id)

        with pytest.raises(ConflictError):
            transaction_service.update_transaction(tx.id, notes="too late")

    def test_line_edit_reissues_tax_invoice(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 10)
        sale = _sale(customer, item.id, 2)
        invoice = tax_invoice_service.issue_tax_invoice(sale.id, "2024-05-02")
        assert invoice.total_amount_cents == 3300

        transaction_service.update_transaction(sale.id, lines=[{"item_id": item.id, "quantity": 4}])

        assert tax_invoice_service.get_tax_invoice(invoice.id).status == "canceled"
        issued = db_session.query(TaxInvoice).filter_by(transaction_id=sale.id, status="issued").one()
        assert issued.id != invoice.id
        assert (issued.net_amount_cents, issued.tax_amount_cents, issued.total_amount_cents) == (6000, 600, 6600)
        assert issued.date == date(2024, 5, 2)

    def test_edit_without_amount_change_keeps_tax_invoice(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 10)
        sale = _sale(customer, item.id, 2)
        invoice = tax_invoice_service.issue_tax_invoice(sale.id)

        transaction_service.update_transaction(sale.id, lines=[{"item_id": item.id, "quantity": 2}], notes="checked")

        assert tax_invoice_service.get_tax_invoice(invoice.id).status == "issued"
        assert db_session.query(TaxInvoice).filter_by(transaction_id=sale.id).count() == 1

    def test_partner_change_refused_while_paid(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 10)
        sale = _sale(customer, item.id, 2)
        payment = payment_service.create_payment({
            "partner_id": customer.id,
            "transaction_id": sale.id,
            "amount_cents": 100,
            "method": "cash",
        })
        other_customer = Partner(name="Beta Stores", type="customer")
        db_session.add(other_customer)
        db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            transaction_service.update_transaction(sale.id, partner_id=other_customer.id)
        assert exc_info.value.details["payments"] == 1

        assert transaction_service.get_transaction(sale.id).partner_id == customer.id
        updated = payment_service.update_payment(payment.id, {"description": "note"})
        assert updated.description == "note"

    def test_partner_change_refused_with_issued_invoice(self, db_session, supplier, item):
        tx = _purchase(supplier, item.id, 2)
        tax_invoice_service.issue_tax_invoice(tx.id)
        other_supplier = Partner(name="Gear Supply", type="supplier")
        db_session.add(other_supplier)
        db_session.commit()

        with pytest.raises(ConflictError) as exc_info:
            transaction_service.update_transaction(tx.id, partner_id=other_supplier.id)
        assert exc_info.value.details["tax_invoices"] == 1

    def test_partner_change_without_documents(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 10)
        sale = _sale(customer, item.id, 2)
        other_customer = Partner(name="Beta Stores", type="customer")
        db_session.add(other_customer)
        db_session.commit()

        transaction_service.update_transaction(sale.id, partner_id=other_customer.id)

        payment = payment_service.create_payment({
            "partner_id": other_customer.id,
            "transaction_id": sale.id,
            "amount_cents": 100,
            "method": "cash",
        })
        assert payment.partner_id == other_customer.id
        assert transaction_service.get_transaction(sale.id).status == "partial"


class TestDelete:

    def test_delete_reverses_and_keeps_history(self, db_session, supplier, item):
        tx = _purchase(supplier, item.id, 5)
        tx_id = tx.id

        transaction_service.delete_transaction(tx_id)

        assert db_session.get(Transaction, tx_id) is None
        assert inventory_service.get_quantity(item.id) == 0
        assert _changes(db_session, item.id) == [("purchase", 5), ("purchase_cancel", -5)]


class TestListing:

    def test_filters_and_count(self, db_session, supplier, customer, item):
        _purchase(supplier, item.id, 5)
        _purchase(supplier, item.id, 5)
        _sale(customer, item.id, 1)

        rows, total = transaction_service.list_transactions(type="purchase", limit=1)
        assert total == 2
        assert len(rows) == 1

        rows, total = transaction_service.list_transactions(partner_id=customer.id)
        assert total == 1
        assert rows[0].type == "sale"

    def test_bad_status_filter(self, db_session):
        with pytest.raises(ValidationError):
            transaction_service.list_transactions(status="lost")


# =============================================================================
# COMPENSATION
# =============================================================================


class TestPostingFailure:

    def test_failure_mid_batch_is_compensated(self, db_session, monkeypatch, supplier, item, other_item):
        _fail_second_adjustment(monkeypatch)

        with pytest.raises(PostingError) as exc_info:
            transaction_service.create_transaction("purchase", supplier.id, [
                {"item_id": item.id, "quantity": 3},
                {"item_id": other_item.id, "quantity": 2},
            ])

        tx = db_session.get(Transaction, exc_info.value.details["transaction_id"])
        assert tx.status == "canceled"
        assert tx.cancel_reason == "Item vanished"
        assert exc_info.value.details["cause"]["error"] == "Item vanished"

        assert inventory_service.get_quantity(item.id) == 0
        assert inventory_service.get_quantity(other_item.id) == 0
        assert _changes(db_session, item.id) == [("purchase", 3), ("purchase_cancel", -3)]
        assert inventory_service.verify_ledger() == []

    def test_reversed_sale_withdraws_its_stock_alert(self, db_session, monkeypatch, supplier, customer, item, other_item):
        _purchase(supplier, other_item.id, 5)
        _purchase(supplier, item.id, 5)
        _fail_second_adjustment(monkeypatch)

        # First line takes other_item to 2 (min 3) before the second line fails
        with pytest.raises(PostingError):
            transaction_service.create_transaction("sale", customer.id, [
                {"item_id": other_item.id, "quantity": 3},
                {"item_id": item.id, "quantity": 1},
            ])

        assert inventory_service.get_quantity(other_item.id) == 5
        assert db_session.query(Notification).filter_by(type="stock_low").count() == 0

    def test_earlier_stock_alert_survives_failure(self, db_session, monkeypatch, supplier, customer, item, other_item):
        _purchase(supplier, other_item.id, 2)
        _purchase(supplier, item.id, 5)
        existing = db_session.query(Notification).filter_by(type="stock_low").one()
        _fail_second_adjustment(monkeypatch)

        with pytest.raises(PostingError):
            transaction_service.create_transaction("sale", customer.id, [
                {"item_id": other_item.id, "quantity": 1},
                {"item_id": item.id, "quantity": 1},
            ])

        alerts = db_session.query(Notification).filter_by(type="stock_low").all()
        assert [n.id for n in alerts] == [existing.id]
        assert alerts[0].is_read is False
