# Overview: Emits and serves low-stock and unpaid-balance notifications.

from __future__ import annotations

from datetime import datetime, timedelta

from flask import current_app
from sqlalchemy import or_

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Inventory, Item, Notification, Transaction, UserNotificationSetting
from ..models.notifications import NOTIFICATION_TYPES
from smerp.time_utils import utcnow

"""
Notification rules

- stock_low: active item with min_stock_level > 0 whose quantity is at or
  below that level. Items without a configured level never alert.
- unpaid: transaction in status 'unpaid' whose business date is older than
  UNPAID_SETTLEMENT_DAYS.
- Idempotent: a new notification is only created when no unread one exists
  for the same (type, target_type, target_id). Reading it re-arms the alert.
- Emission never touches inventory or transactions; it only inserts rows.
"""


def _find_unread(ntype: str, target_type: str, target_id: int) -> Notification | None:
    return (
        db.session.query(Notification)
        .filter_by(type=ntype, target_type=target_type, target_id=target_id, is_read=False)
        .first()
    )


def _emit(
    ntype: str,
    target_type: str,
    target_id: int,
    title: str,
    message: str,
    *,
    user_id: int | None = None,
) -> Notification | None:
    if _find_unread(ntype, target_type, target_id):
        return None
    notification = Notification(
        user_id=user_id,
        type=ntype,
        target_type=target_type,
        target_id=target_id,
        title=title,
        message=message,
        is_read=False,
    )
    db.session.add(notification)
    return notification


def emit_stock_low(item: Item, quantity: int) -> Notification | None:
    """
    Single-item path used by the inventory ledger after a posting.

    Added to the caller's session; committed with the posting.
    """
    if not item.is_active or item.min_stock_level <= 0 or quantity > item.min_stock_level:
        return None
    return _emit(
        "stock_low",
        "item",
        item.id,
        f"Low stock: {item.name}",
        f"{item.name} ({item.code}) has {quantity} left, minimum is {item.min_stock_level}.",
    )


def _unread_stock_low_query(item_ids):
    return db.session.query(Notification).filter(
        Notification.type == "stock_low",
        Notification.target_type == "item",
        Notification.target_id.in_(list(item_ids)),
        Notification.is_read.is_(False),
    )


def unread_stock_low_ids(item_ids) -> set[int]:
    return {n.id for n in _unread_stock_low_query(item_ids).all()}


def discard_stock_low_since(item_ids, known_ids: set[int]) -> int:
    """
    Delete unread stock_low alerts for item_ids that are not in known_ids.

    Used when postings are reversed in the same unit of work. No commit.
    """
    discarded = 0
    for notification in _unread_stock_low_query(item_ids).all():
        if notification.id not in known_ids:
            db.session.delete(notification)
            discarded += 1
    return discarded


def _emit_unpaid(tx: Transaction, today) -> Notification | None:
    days = (today - tx.date).days
    return _emit(
        "unpaid",
        "transaction",
        tx.id,
        f"Unpaid: {tx.code}",
        f"{tx.code} has been unpaid for {days} days (total {tx.total_amount_cents} cents).",
    )


def scan_notifications(now: datetime | None = None) -> list[Notification]:
    """
    Scan stock levels and unpaid transactions, creating missing notifications.

    Returns the notifications created by this scan (empty when nothing new).
    """
    now = now or utcnow()
    today = now.date()
    created: list[Notification] = []

    low_rows = (
        db.session.query(Item, Inventory.quantity)
        .join(Inventory, Inventory.item_id == Item.id)
        .filter(
            Item.is_active.is_(True),
            Item.min_stock_level > 0,
            Inventory.quantity <= Item.min_stock_level,
        )
        .order_by(Item.id.asc())
        .all()
    )
    for item, quantity in low_rows:
        notification = emit_stock_low(item, quantity)
        if notification is not None:
            created.append(notification)

    settlement_days = current_app.config.get("UNPAID_SETTLEMENT_DAYS", 30)
    cutoff = today - timedelta(days=settlement_days)
    unpaid = (
        db.session.query(Transaction)
        .filter(Transaction.status == "unpaid", Transaction.date < cutoff)
        .order_by(Transaction.id.asc())
        .all()
    )
    for tx in unpaid:
        notification = _emit_unpaid(tx, today)
        if notification is not None:
            created.append(notification)

    db.session.commit()
    if created:
        current_app.logger.info("Notification scan created %d notification(s)", len(created))
    return created


def get_notification_settings(user_id: int) -> dict[str, bool]:
    """Every notification type with its enabled flag (enabled unless disabled)."""
    settings = {ntype: True for ntype in NOTIFICATION_TYPES}
    rows = db.session.query(UserNotificationSetting).filter_by(user_id=user_id).all()
    for row in rows:
        settings[row.type] = row.enabled
    return settings


def set_notification_setting(user_id: int, ntype: str, enabled: bool) -> UserNotificationSetting:
    if ntype not in NOTIFICATION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(NOTIFICATION_TYPES)}")
    if not isinstance(enabled, bool):
        raise ValidationError("enabled must be a boolean")

    row = db.session.query(UserNotificationSetting).filter_by(user_id=user_id, type=ntype).first()
    if row is None:
        row = UserNotificationSetting(user_id=user_id, type=ntype)
        db.session.add(row)
    row.enabled = enabled
    db.session.commit()
    return row


def _visible_to(user_id: int):
    return or_(Notification.user_id.is_(None), Notification.user_id == user_id)


def list_notifications(user_id: int, unread_only: bool = False, limit: int = 100) -> list[Notification]:
    settings = get_notification_settings(user_id)
    enabled_types = [ntype for ntype, enabled in settings.items() if enabled]
    if not enabled_types:
        return []

    query = db.session.query(Notification).filter(
        _visible_to(user_id),
        Notification.type.in_(enabled_types),
    )
    if unread_only:
        query = query.filter(Notification.is_read.is_(False))
    limit = max(1, min(limit, 500))
    return query.order_by(Notification.id.desc()).limit(limit).all()


def mark_read(notification_id: int, user_id: int) -> Notification:
    notification = (
        db.session.query(Notification)
        .filter(Notification.id == notification_id, _visible_to(user_id))
        .first()
    )
    if notification is None:
        raise NotFoundError("Notification not found")
    if not notification.is_read:
        notification.is_read = True
        notification.read_at = utcnow()
        db.session.commit()
    return notification
