# Overview: Service-layer operations for payment; encapsulates business logic and database work.

"""
Payment Service

Payments record money received from customers or paid to suppliers. They
may point at a transaction and/or a voucher.

DESIGN PRINCIPLES:
- Payments are separate from transactions (many-to-one relationship)
- Split and partial payments are allowed
- Only completed payments count toward settlement; planned ones are
  reminders of money still expected
- Transaction payment status (completed/partial/unpaid) is derived here by
  reconcile_status, always through the transaction state machine
"""

from sqlalchemy import func

from ..extensions import db
from ..errors import NotFoundError, ValidationError
from ..models import Partner, Payment, Transaction, Voucher
from ..models.accounting import PAYMENT_METHODS, PAYMENT_STATUSES
from ..validation import coerce_date, coerce_int
from smerp.time_utils import today
from .activity_service import record_activity
from .document_service import next_payment_code
from .transaction_state import fire


# status a transaction should hold -> trigger that gets it there
_SETTLEMENT_TRIGGERS = {
    "completed": "settle",
    "partial": "mark_partial",
    "unpaid": "mark_unpaid",
}

_WRITABLE = {
    "code", "reference", "transaction_id", "voucher_id", "partner_id",
    "date", "amount_cents", "method", "status", "description",
}


# =============================================================================
# RECONCILIATION
# =============================================================================

def paid_amount_cents(transaction_id: int) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Payment.amount_cents), 0))
        .filter(Payment.transaction_id == transaction_id, Payment.status == "completed")
        .scalar()
    )
    return int(total or 0)


def reconcile_status(tx: Transaction) -> str:
    """
    Align tx.status with its completed payments (no commit).

    paid >= total -> completed, 0 < paid < total -> partial, paid == 0 -> unpaid.
    Pending and canceled transactions are left alone.
    """
    if tx.status in ("pending", "canceled"):
        return tx.status

    db.session.flush()
    paid = paid_amount_cents(tx.id)
    if paid >= tx.total_amount_cents:
        desired = "completed"
    elif paid > 0:
        desired = "partial"
    else:
        desired = "unpaid"

    if desired != tx.status:
        fire(tx, _SETTLEMENT_TRIGGERS[desired])
    return tx.status


def reconcile_transaction_status(transaction_id: int) -> Transaction:
    tx = db.session.get(Transaction, transaction_id)
    if tx is None:
        raise NotFoundError("Transaction not found")
    reconcile_status(tx)
    db.session.commit()
    return tx


# =============================================================================
# PAYMENTS
# =============================================================================

def _check_references(payment: Payment) -> None:
    """Partner, transaction and voucher must exist and agree with each other."""
    partner = db.session.get(Partner, payment.partner_id) if payment.partner_id is not None else None
    if partner is None:
        raise ValidationError("Partner not found", {"partner_id": payment.partner_id})

    if payment.transaction_id is not None:
        tx = db.session.get(Transaction, payment.transaction_id)
        if tx is None:
            raise ValidationError("Transaction not found", {"transaction_id": payment.transaction_id})
        if tx.partner_id != partner.id:
            raise ValidationError("Transaction belongs to a different partner")
        if tx.status == "canceled":
            raise ValidationError("Cannot pay a canceled transaction")

    if payment.voucher_id is not None:
        voucher = db.session.get(Voucher, payment.voucher_id)
        if voucher is None:
            raise ValidationError("Voucher not found", {"voucher_id": payment.voucher_id})
        if voucher.partner_id is not None and voucher.partner_id != partner.id:
            raise ValidationError("Voucher belongs to a different partner")


def _apply_fields(payment: Payment, data: dict) -> None:
    unknown = set(data) - _WRITABLE
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    for key in ("partner_id", "transaction_id", "voucher_id"):
        if key in data:
            value = data[key]
            setattr(payment, key, coerce_int(value, key) if value is not None else None)

    if "amount_cents" in data:
        amount = coerce_int(data["amount_cents"], "amount_cents")
        if amount <= 0:
            raise ValidationError("amount_cents must be > 0")
        payment.amount_cents = amount

    if "method" in data:
        if data["method"] not in PAYMENT_METHODS:
            raise ValidationError(f"method must be one of: {', '.join(PAYMENT_METHODS)}")
        payment.method = data["method"]

    if "status" in data:
        if data["status"] not in PAYMENT_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(PAYMENT_STATUSES)}")
        payment.status = data["status"]

    if "date" in data:
        parsed = coerce_date(data["date"], "date")
        if parsed is None:
            raise ValidationError("date cannot be null")
        payment.date = parsed

    for key in ("reference", "description"):
        if key in data:
            setattr(payment, key, data[key])


def _reconcile_ids(*transaction_ids) -> None:
    for transaction_id in {tid for tid in transaction_ids if tid is not None}:
        tx = db.session.get(Transaction, transaction_id)
        if tx is not None:
            reconcile_status(tx)


def create_payment(data: dict, *, actor_id: int | None = None, commit: bool = True) -> Payment:
    """
    Record a payment and reconcile the linked transaction.

    Required: partner_id, amount_cents, method. Defaults: status completed,
    date today, code PM-YYMMDD-NNNN.
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")
    missing = [key for key in ("partner_id", "amount_cents", "method") if data.get(key) is None]
    if missing:
        raise ValidationError(f"Missing required fields: {', '.join(missing)}")

    payment = Payment(status="completed", created_by=actor_id)
    _apply_fields(payment, {k: v for k, v in data.items() if k != "code"})
    if payment.date is None:
        payment.date = today()
    _check_references(payment)

    code = str(data.get("code") or "").strip()
    payment.code = code or next_payment_code(payment.date)

    db.session.add(payment)
    db.session.flush()
    _reconcile_ids(payment.transaction_id)
    record_activity(actor_id, "create", f"payment:{payment.id}", f"Recorded payment {payment.code}")

    if commit:
        db.session.commit()
    return payment


def get_payment(payment_id: int) -> Payment:
    payment = db.session.get(Payment, payment_id)
    if payment is None:
        raise NotFoundError("Payment not found")
    return payment


def list_payments(
    *,
    partner_id: int | None = None,
    transaction_id: int | None = None,
    status: str | None = None,
) -> list[Payment]:
    query = db.session.query(Payment)
    if partner_id is not None:
        query = query.filter(Payment.partner_id == partner_id)
    if transaction_id is not None:
        query = query.filter(Payment.transaction_id == transaction_id)
    if status is not None:
        query = query.filter(Payment.status == status)
    return query.order_by(Payment.date.desc(), Payment.id.desc()).all()


def update_payment(payment_id: int, data: dict, *, actor_id: int | None = None) -> Payment:
    payment = get_payment(payment_id)
    previous_tx = payment.transaction_id

    _apply_fields(payment, data)
    _check_references(payment)
    db.session.flush()
    _reconcile_ids(previous_tx, payment.transaction_id)

    record_activity(actor_id, "update", f"payment:{payment.id}", f"Updated payment {payment.code}")
    db.session.commit()
    return payment


def set_payment_status(payment_id: int, status: str, *, actor_id: int | None = None) -> Payment:
    return update_payment(payment_id, {"status": status}, actor_id=actor_id)


def delete_payment(payment_id: int, *, actor_id: int | None = None) -> None:
    payment = get_payment(payment_id)
    transaction_id = payment.transaction_id

    record_activity(actor_id, "delete", f"payment:{payment.id}", f"Deleted payment {payment.code}")
    db.session.delete(payment)
    db.session.flush()
    _reconcile_ids(transaction_id)
    db.session.commit()
