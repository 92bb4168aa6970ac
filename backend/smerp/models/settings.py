from __future__ import annotations

from ..extensions import db
from smerp.time_utils import to_utc_z, to_iso_date


class Setting(db.Model):
    """Key-value settings; value is a JSON document stored as text."""
    __tablename__ = "settings"

    key = db.Column(db.String(64), primary_key=True)
    value = db.Column(db.Text, nullable=False)
    updated_at = db.Column(
        db.DateTime(timezone=True),
        nullable=False,
        server_default=db.func.now(),
        onupdate=db.func.now(),
    )
    updated_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)


class ScheduledTask(db.Model):
    """Simple to-do entry with an optional due date."""
    __tablename__ = "scheduled_tasks"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    description = db.Column(db.Text, nullable=False)
    due_date = db.Column(db.Date, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "description": self.description,
            "due_date": to_iso_date(self.due_date),
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
