from __future__ import annotations

from ..extensions import db
from smerp.time_utils import to_utc_z


NOTIFICATION_TYPES = ("stock_low", "unpaid", "system")


class Notification(db.Model):
    """
    User-facing signal. user_id NULL means broadcast to every user.

    At most one unread notification exists per (type, target_type, target_id);
    notification_service checks before inserting.
    """
    __tablename__ = "notifications"
    __table_args__ = (
        db.Index("ix_notifications_target", "type", "target_type", "target_id"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True, index=True)
    type = db.Column(db.String(16), nullable=False)
    target_type = db.Column(db.String(32), nullable=True)
    target_id = db.Column(db.Integer, nullable=True)
    title = db.Column(db.String(255), nullable=False)
    message = db.Column(db.Text, nullable=False)
    is_read = db.Column(db.Boolean, nullable=False, default=False)
    read_at = db.Column(db.DateTime(timezone=True), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "user_id": self.user_id,
            "type": self.type,
            "target_type": self.target_type,
            "target_id": self.target_id,
            "title": self.title,
            "message": self.message,
            "is_read": self.is_read,
            "read_at": to_utc_z(self.read_at) if self.read_at else None,
            "created_at": to_utc_z(self.created_at),
        }


class UserNotificationSetting(db.Model):
    __tablename__ = "user_notification_settings"
    __table_args__ = (
        db.UniqueConstraint("user_id", "type", name="uq_user_notification_settings_user_type"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=False, index=True)
    type = db.Column(db.String(16), nullable=False)
    enabled = db.Column(db.Boolean, nullable=False, default=True)

    def to_dict(self) -> dict:
        return {
            "user_id": self.user_id,
            "type": self.type,
            "enabled": self.enabled,
        }
