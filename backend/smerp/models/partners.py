from __future__ import annotations

from ..extensions import db
from smerp.time_utils import to_utc_z


PARTNER_TYPES = ("customer", "supplier", "both")


class Partner(db.Model):
    """
    Customer or supplier.

    Partners referenced by transactions are never hard-deleted; they are
    deactivated instead (is_active=False) and then refused by new postings.
    """
    __tablename__ = "partners"
    __table_args__ = (
        db.Index("ix_partners_type_active", "type", "is_active"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    business_number = db.Column(db.String(32), nullable=True)
    type = db.Column(db.String(16), nullable=False)

    contact_name = db.Column(db.String(128), nullable=True)
    phone = db.Column(db.String(64), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    address = db.Column(db.String(255), nullable=True)

    is_active = db.Column(db.Boolean, nullable=False, default=True)
    credit_limit_cents = db.Column(db.Integer, nullable=False, default=0)
    notes = db.Column(db.Text, nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    def __repr__(self) -> str:
        return f"<Partner id={self.id} name={self.name!r} type={self.type}>"

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "name": self.name,
            "business_number": self.business_number,
            "type": self.type,
            "contact_name": self.contact_name,
            "phone": self.phone,
            "email": self.email,
            "address": self.address,
            "is_active": self.is_active,
            "credit_limit_cents": self.credit_limit_cents,
            "notes": self.notes,
            "created_at": to_utc_z(self.created_at),
            "created_by": self.created_by,
        }
