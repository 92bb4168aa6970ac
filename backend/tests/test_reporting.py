"""
Reporting tests.

Dashboard figures compare a period with the same period a month earlier;
monthly totals read revenue and expense from confirmed vouchers.
"""

import pytest

from smerp.errors import ValidationError
from smerp.services import payment_service, reporting_service, transaction_service
from smerp.services.transaction_state import fire
from smerp.time_utils import today


def _tx(tx_type, partner, item, quantity, on, **kwargs):
    return transaction_service.create_transaction(
        tx_type, partner.id, [{"item_id": item.id, "quantity": quantity}], on, **kwargs
    )


def _pay(partner, tx, amount_cents):
    return payment_service.create_payment({
        "partner_id": partner.id,
        "transaction_id": tx.id,
        "amount_cents": amount_cents,
        "method": "cash",
    })


class TestDashboardSummary:

    @pytest.fixture
    def activity(self, db_session, supplier, customer, item):
        """
        April: purchase 20 x 900 (19800, left unpaid), sale 2 x 1500 (3300, 300 paid).
        May: sale 3 x 1500 (4950, 1000 paid), sale 1 x 1500 canceled.
        """
        purchase = _tx("purchase", supplier, item, 20, "2024-04-10")
        fire(purchase, "mark_unpaid")
        db_session.commit()

        april_sale = _tx("sale", customer, item, 2, "2024-04-15")
        _pay(customer, april_sale, 300)

        may_sale = _tx("sale", customer, item, 3, "2024-05-05")
        _pay(customer, may_sale, 1000)

        canceled = _tx("sale", customer, item, 1, "2024-05-06")
        transaction_service.cancel_transaction(canceled.id)

    def test_current_against_previous_month(self, db_session, activity):
        report = reporting_service.dashboard_summary(start="2024-05-01", end="2024-05-31")

        assert report["period"] == {"start": "2024-05-01", "end": "2024-05-31"}
        assert report["previous_period"] == {"start": "2024-04-01", "end": "2024-04-30"}

        assert report["sales"] == {"current": 4950, "previous": 3300, "change_pct": 50.0, "is_increase": True}
        assert report["purchases"] == {"current": 0, "previous": 19800, "change_pct": -100.0, "is_increase": False}
        assert report["receivables"]["current"] == 3950
        assert report["receivables"]["previous"] == 3000
        assert report["payables"] == {"current": 0, "previous": 19800, "change_pct": -100.0, "is_increase": False}

    def test_empty_previous_period_has_no_change(self, db_session, activity):
        report = reporting_service.dashboard_summary(start="2024-04-01", end="2024-04-30")

        assert report["sales"]["current"] == 3300
        assert report["sales"]["previous"] == 0
        assert report["sales"]["change_pct"] is None

    def test_defaults_to_current_month(self, db_session):
        report = reporting_service.dashboard_summary()

        assert report["period"]["end"] == today().isoformat()
        assert report["period"]["start"] == today().replace(day=1).isoformat()
        assert report["sales"]["current"] == 0

    def test_inverted_range_refused(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.dashboard_summary(start="2024-05-31", end="2024-05-01")


class TestMonthlyTotals:

    def test_revenue_and_expense_from_confirmed_vouchers(self, db_session, posting_accounts, supplier, customer, item):
        _tx("purchase", supplier, item, 20, "2024-04-10", post_voucher=True)
        _tx("sale", customer, item, 3, "2024-05-05", post_voucher=True)
        canceled = _tx("sale", customer, item, 1, "2024-05-06", post_voucher=True)
        transaction_service.cancel_transaction(canceled.id)

        report = reporting_service.monthly_totals(start="2024-03-01", end="2024-05-31")

        assert report["rows"] == [
            {"month": "2024-03", "revenue_cents": 0, "expense_cents": 0, "profit_cents": 0},
            {"month": "2024-04", "revenue_cents": 0, "expense_cents": 18000, "profit_cents": -18000},
            {"month": "2024-05", "revenue_cents": 4500, "expense_cents": 0, "profit_cents": 4500},
        ]

    def test_range_required(self, db_session):
        with pytest.raises(ValidationError):
            reporting_service.monthly_totals(start=None, end="2024-05-31")
