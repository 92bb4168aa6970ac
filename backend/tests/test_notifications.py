"""
Notification tests: scan idempotency, re-arming after read, unpaid aging,
per-user type settings.
"""

from datetime import timedelta

import pytest

from smerp.errors import NotFoundError, ValidationError
from smerp.models import Notification
from smerp.services import notification_service, transaction_service
from smerp.services.transaction_state import fire
from smerp.time_utils import today


def _unpaid_sale(db_session, supplier, customer, item, days_old):
    transaction_service.create_transaction("purchase", supplier.id, [{"item_id": item.id, "quantity": 5}])
    tx = transaction_service.create_transaction(
        "sale",
        customer.id,
        [{"item_id": item.id, "quantity": 1}],
        date=today() - timedelta(days=days_old),
    )
    fire(tx, "mark_unpaid")
    db_session.commit()
    return tx


class TestScan:

    def test_stock_low_only_for_configured_items(self, db_session, item, other_item):
        created = notification_service.scan_notifications()

        assert [(n.type, n.target_id) for n in created] == [("stock_low", other_item.id)]

    def test_scan_is_idempotent(self, db_session, other_item):
        assert len(notification_service.scan_notifications()) == 1
        assert notification_service.scan_notifications() == []
        assert db_session.query(Notification).count() == 1

    def test_read_rearms_alert(self, db_session, admin_user, other_item):
        first = notification_service.scan_notifications()[0]
        notification_service.mark_read(first.id, admin_user.id)

        again = notification_service.scan_notifications()
        assert len(again) == 1
        assert again[0].id != first.id

    def test_inactive_item_ignored(self, db_session, other_item):
        other_item.is_active = False
        db_session.commit()
        assert notification_service.scan_notifications() == []

    def test_old_unpaid_sale_alerts(self, db_session, supplier, customer, item):
        tx = _unpaid_sale(db_session, supplier, customer, item, days_old=45)

        created = notification_service.scan_notifications()

        assert [(n.type, n.target_type, n.target_id) for n in created] == [("unpaid", "transaction", tx.id)]
        assert "45 days" in created[0].message

    def test_recent_unpaid_sale_does_not_alert(self, db_session, supplier, customer, item):
        _unpaid_sale(db_session, supplier, customer, item, days_old=3)
        assert notification_service.scan_notifications() == []


class TestReading:

    def test_settings_filter_listing(self, db_session, admin_user, other_item):
        notification_service.scan_notifications()
        assert len(notification_service.list_notifications(admin_user.id)) == 1

        notification_service.set_notification_setting(admin_user.id, "stock_low", False)

        assert notification_service.list_notifications(admin_user.id) == []
        settings = notification_service.get_notification_settings(admin_user.id)
        assert settings == {"stock_low": False, "unpaid": True, "system": True}

    def test_unread_only(self, db_session, admin_user, other_item):
        notification = notification_service.scan_notifications()[0]
        notification_service.mark_read(notification.id, admin_user.id)

        assert notification_service.list_notifications(admin_user.id, unread_only=True) == []
        assert len(notification_service.list_notifications(admin_user.id)) == 1

    def test_other_users_notifications_hidden(self, db_session, admin_user, staff_user):
        private = Notification(user_id=staff_user.id, type="system", title="Hello", message="For staff")
        db_session.add(private)
        db_session.commit()

        assert notification_service.list_notifications(admin_user.id) == []
        with pytest.raises(NotFoundError):
            notification_service.mark_read(private.id, admin_user.id)

        assert notification_service.mark_read(private.id, staff_user.id).is_read is True

    def test_unknown_type_setting(self, db_session, admin_user):
        with pytest.raises(ValidationError):
            notification_service.set_notification_setting(admin_user.id, "weather", True)
