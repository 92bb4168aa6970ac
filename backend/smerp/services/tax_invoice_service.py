# Overview: Issues and cancels tax invoices derived from posted transactions.

from __future__ import annotations

from ..extensions import db
from ..errors import ConflictError, NotFoundError, ValidationError
from ..models import TaxInvoice, Transaction
from ..validation import coerce_date
from smerp.time_utils import utcnow
from .activity_service import record_activity
from .document_service import next_tax_invoice_code


_EDITABLE = {"date"}


def _build_invoice(tx: Transaction, invoice_date, actor_id: int | None) -> TaxInvoice:
    invoice = TaxInvoice(
        code=next_tax_invoice_code(invoice_date),
        transaction_id=tx.id,
        partner_id=tx.partner_id,
        date=invoice_date,
        type="issue" if tx.type == "sale" else "receive",
        net_amount_cents=tx.net_amount_cents,
        tax_amount_cents=tx.tax_amount_cents,
        total_amount_cents=tx.total_amount_cents,
        status="issued",
        created_by=actor_id,
    )
    db.session.add(invoice)
    db.session.flush()
    return invoice


def issue_tax_invoice(transaction_id: int, date=None, *, actor_id: int | None = None) -> TaxInvoice:
    """
    Issue the tax invoice for a transaction.

    Sales produce 'issue' invoices, purchases 'receive' invoices. Amounts are
    copied from the transaction. One issued invoice per transaction.
    """
    tx = db.session.get(Transaction, transaction_id)
    if tx is None:
        raise NotFoundError("Transaction not found")
    if tx.status in ("pending", "canceled"):
        raise ValidationError(f"Cannot invoice a {tx.status} transaction")

    existing = (
        db.session.query(TaxInvoice.id)
        .filter_by(transaction_id=tx.id, status="issued")
        .first()
    )
    if existing:
        raise ConflictError("Transaction already has an issued tax invoice", {"tax_invoice_id": existing.id})

    invoice = _build_invoice(tx, coerce_date(date, "date") or tx.date, actor_id)
    record_activity(actor_id, "create", f"tax_invoice:{invoice.id}", f"Issued {invoice.code} for {tx.code}")
    db.session.commit()
    return invoice


def mark_canceled(invoice: TaxInvoice) -> None:
    invoice.status = "canceled"
    invoice.canceled_at = utcnow()


def reissue_for_transaction(tx: Transaction, *, actor_id: int | None = None) -> list[TaxInvoice]:
    """
    Replace issued invoices whose amounts or partner no longer match tx.

    The old invoice is canceled and a new one issued on the same date.
    Joins the caller's unit of work (no commit).
    """
    reissued = []
    for invoice in db.session.query(TaxInvoice).filter_by(transaction_id=tx.id, status="issued").all():
        if (
            invoice.partner_id == tx.partner_id
            and invoice.net_amount_cents == tx.net_amount_cents
            and invoice.tax_amount_cents == tx.tax_amount_cents
            and invoice.total_amount_cents == tx.total_amount_cents
        ):
            continue
        mark_canceled(invoice)
        replacement = _build_invoice(tx, invoice.date, actor_id)
        record_activity(
            actor_id,
            "update",
            f"tax_invoice:{replacement.id}",
            f"Reissued {invoice.code} as {replacement.code} for {tx.code}",
        )
        reissued.append(replacement)
    return reissued


def cancel_tax_invoice(invoice_id: int, *, actor_id: int | None = None) -> TaxInvoice:
    invoice = get_tax_invoice(invoice_id)
    if invoice.status == "canceled":
        raise ConflictError("Tax invoice already canceled")
    mark_canceled(invoice)
    record_activity(actor_id, "cancel", f"tax_invoice:{invoice.id}", f"Canceled {invoice.code}")
    db.session.commit()
    return invoice


def update_tax_invoice(invoice_id: int, data: dict, *, actor_id: int | None = None) -> TaxInvoice:
    """
    Edit an issued invoice. Only the invoice date is editable; amounts and
    partner always come from the transaction.
    """
    invoice = get_tax_invoice(invoice_id)
    unknown = set(data) - _EDITABLE
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")
    if invoice.status == "canceled":
        raise ConflictError("Cannot edit a canceled tax invoice")

    if "date" in data:
        new_date = coerce_date(data["date"], "date")
        if new_date is None:
            raise ValidationError("date is required")
        invoice.date = new_date

    record_activity(actor_id, "update", f"tax_invoice:{invoice.id}", f"Updated {invoice.code}")
    db.session.commit()
    return invoice


def delete_tax_invoice(invoice_id: int, *, actor_id: int | None = None) -> None:
    """Delete a canceled invoice. Issued invoices must be canceled first."""
    invoice = get_tax_invoice(invoice_id)
    if invoice.status == "issued":
        raise ConflictError("Cancel the tax invoice before deleting it", {"tax_invoice_id": invoice.id})
    record_activity(actor_id, "delete", f"tax_invoice:{invoice.id}", f"Deleted {invoice.code}")
    db.session.delete(invoice)
    db.session.commit()


def get_tax_invoice(invoice_id: int) -> TaxInvoice:
    invoice = db.session.get(TaxInvoice, invoice_id)
    if invoice is None:
        raise NotFoundError("Tax invoice not found")
    return invoice


def list_tax_invoices(*, type: str | None = None, status: str | None = None) -> list[TaxInvoice]:
    query = db.session.query(TaxInvoice)
    if type is not None:
        query = query.filter(TaxInvoice.type == type)
    if status is not None:
        query = query.filter(TaxInvoice.status == status)
    return query.order_by(TaxInvoice.date.desc(), TaxInvoice.id.desc()).all()
