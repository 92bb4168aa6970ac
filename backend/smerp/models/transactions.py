from __future__ import annotations

from ..extensions import db
from smerp.time_utils import to_utc_z, to_iso_date


TRANSACTION_TYPES = ("purchase", "sale")
TRANSACTION_STATUSES = ("pending", "completed", "canceled", "partial", "unpaid")


class Transaction(db.Model):
    """
    Sale or purchase document.

    STATUS LIFECYCLE (services/transaction_state.py):
    - pending: lines persisted, inventory not fully posted yet
    - completed: posted (and settled, once payments exist)
    - partial / unpaid: driven by payment reconciliation
    - canceled: inventory effect reversed

    INVARIANT: for posted transactions
    sum(items.amount_cents) == total_amount_cents - tax_amount_cents.
    """
    __tablename__ = "transactions"
    __table_args__ = (
        db.Index("ix_transactions_type_status", "type", "status"),
        db.Index("ix_transactions_partner_date", "partner_id", "date"),
        {"sqlite_autoincrement": True},
    )

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    type = db.Column(db.String(16), nullable=False)
    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="pending")

    total_amount_cents = db.Column(db.Integer, nullable=False, default=0)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    notes = db.Column(db.Text, nullable=True)
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)

    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    completed_at = db.Column(db.DateTime(timezone=True), nullable=True)
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)
    cancel_reason = db.Column(db.String(255), nullable=True)

    version_id = db.Column(db.Integer, nullable=False, default=1)

    partner = db.relationship("Partner", backref=db.backref("transactions", lazy=True))
    items = db.relationship(
        "TransactionItem",
        backref="transaction",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="TransactionItem.id",
    )
    __mapper_args__ = {"version_id_col": version_id}

    @property
    def net_amount_cents(self) -> int:
        return self.total_amount_cents - self.tax_amount_cents

    def __repr__(self) -> str:
        return f"<Transaction id={self.id} code={self.code!r} type={self.type} status={self.status}>"

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "type": self.type,
            "partner_id": self.partner_id,
            "partner_name": self.partner.name if self.partner else None,
            "date": to_iso_date(self.date),
            "status": self.status,
            "total_amount_cents": self.total_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "notes": self.notes,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "completed_at": to_utc_z(self.completed_at) if self.completed_at else None,
            "canceled_at": to_utc_z(self.canceled_at) if self.canceled_at else None,
            "cancel_reason": self.cancel_reason,
            "version_id": self.version_id,
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.items]
        return data


class TransactionItem(db.Model):
    """Line of a transaction. amount_cents = quantity * unit_price_cents."""
    __tablename__ = "transaction_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id"), nullable=False, index=True)
    item_id = db.Column(db.Integer, db.ForeignKey("items.id"), nullable=False, index=True)

    quantity = db.Column(db.Integer, nullable=False)
    unit_price_cents = db.Column(db.Integer, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    tax_amount_cents = db.Column(db.Integer, nullable=False, default=0)

    item = db.relationship("Item")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "transaction_id": self.transaction_id,
            "item_id": self.item_id,
            "item_code": self.item.code if self.item else None,
            "item_name": self.item.name if self.item else None,
            "quantity": self.quantity,
            "unit_price_cents": self.unit_price_cents,
            "amount_cents": self.amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
        }
