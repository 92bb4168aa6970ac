from __future__ import annotations

from ..extensions import db
from smerp.time_utils import to_utc_z, to_iso_date


ACCOUNT_TYPES = ("asset", "liability", "equity", "revenue", "expense")
VOUCHER_TYPES = ("income", "expense", "transfer")
VOUCHER_STATUSES = ("draft", "confirmed", "canceled")
PAYMENT_METHODS = ("cash", "bank", "card")
PAYMENT_STATUSES = ("planned", "completed")
TAX_INVOICE_TYPES = ("issue", "receive")


class Account(db.Model):
    __tablename__ = "accounts"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(16), nullable=False, unique=True)
    name = db.Column(db.String(128), nullable=False)
    type = db.Column(db.String(16), nullable=False)
    is_active = db.Column(db.Boolean, nullable=False, default=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "name": self.name,
            "type": self.type,
            "is_active": self.is_active,
            "created_at": to_utc_z(self.created_at),
        }


class Voucher(db.Model):
    """
    Accounting voucher.

    INVARIANT: sum of debit items == sum of credit items == amount_cents.
    Item amounts are signed: positive = debit, negative = credit.

    STATUS: draft -> confirmed | canceled, confirmed -> canceled.
    """
    __tablename__ = "vouchers"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    date = db.Column(db.Date, nullable=False)
    type = db.Column(db.String(16), nullable=False)

    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=True, index=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True, index=True)

    amount_cents = db.Column(db.Integer, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="draft")
    description = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    items = db.relationship(
        "VoucherItem",
        backref="voucher",
        lazy=True,
        cascade="all, delete-orphan",
        order_by="VoucherItem.id",
    )

    def to_dict(self, include_items: bool = False) -> dict:
        data = {
            "id": self.id,
            "code": self.code,
            "date": to_iso_date(self.date),
            "type": self.type,
            "partner_id": self.partner_id,
            "transaction_id": self.transaction_id,
            "amount_cents": self.amount_cents,
            "status": self.status,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }
        if include_items:
            data["items"] = [line.to_dict() for line in self.items]
        return data


class VoucherItem(db.Model):
    __tablename__ = "voucher_items"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id"), nullable=False, index=True)
    account_id = db.Column(db.Integer, db.ForeignKey("accounts.id"), nullable=False, index=True)
    amount_cents = db.Column(db.Integer, nullable=False)
    description = db.Column(db.String(255), nullable=True)

    account = db.relationship("Account")

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "voucher_id": self.voucher_id,
            "account_id": self.account_id,
            "account_code": self.account.code if self.account else None,
            "amount_cents": self.amount_cents,
            "side": "debit" if self.amount_cents > 0 else "credit",
            "description": self.description,
        }


class Payment(db.Model):
    """
    Money received from or paid to a partner.

    Only completed payments count toward a transaction's settlement.
    """
    __tablename__ = "payments"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    reference = db.Column(db.String(64), nullable=True)

    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True, index=True)
    voucher_id = db.Column(db.Integer, db.ForeignKey("vouchers.id"), nullable=True, index=True)
    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=False, index=True)

    date = db.Column(db.Date, nullable=False)
    amount_cents = db.Column(db.Integer, nullable=False)
    method = db.Column(db.String(16), nullable=False)
    status = db.Column(db.String(16), nullable=False, default="completed")
    description = db.Column(db.Text, nullable=True)

    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "reference": self.reference,
            "transaction_id": self.transaction_id,
            "voucher_id": self.voucher_id,
            "partner_id": self.partner_id,
            "date": to_iso_date(self.date),
            "amount_cents": self.amount_cents,
            "method": self.method,
            "status": self.status,
            "description": self.description,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
        }


class TaxInvoice(db.Model):
    __tablename__ = "tax_invoices"
    __table_args__ = {"sqlite_autoincrement": True}

    id = db.Column(db.Integer, primary_key=True)
    code = db.Column(db.String(32), nullable=False, unique=True)
    transaction_id = db.Column(db.Integer, db.ForeignKey("transactions.id", ondelete="SET NULL"), nullable=True, index=True)
    partner_id = db.Column(db.Integer, db.ForeignKey("partners.id"), nullable=False, index=True)
    date = db.Column(db.Date, nullable=False)
    type = db.Column(db.String(16), nullable=False)

    net_amount_cents = db.Column(db.Integer, nullable=False)
    tax_amount_cents = db.Column(db.Integer, nullable=False)
    total_amount_cents = db.Column(db.Integer, nullable=False)

    status = db.Column(db.String(16), nullable=False, default="issued")
    created_by = db.Column(db.Integer, db.ForeignKey("users.id"), nullable=True)
    created_at = db.Column(db.DateTime(timezone=True), nullable=False, server_default=db.func.now())
    canceled_at = db.Column(db.DateTime(timezone=True), nullable=True)

    def to_dict(self) -> dict:
        return {
            "id": self.id,
            "code": self.code,
            "transaction_id": self.transaction_id,
            "partner_id": self.partner_id,
            "date": to_iso_date(self.date),
            "type": self.type,
            "net_amount_cents": self.net_amount_cents,
            "tax_amount_cents": self.tax_amount_cents,
            "total_amount_cents": self.total_amount_cents,
            "status": self.status,
            "created_by": self.created_by,
            "created_at": to_utc_z(self.created_at),
            "canceled_at": to_utc_z(self.canceled_at) if self.canceled_at else None,
        }
