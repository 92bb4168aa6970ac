# Overview: Allocates human-readable document codes (transactions, vouchers, payments, tax invoices).

from __future__ import annotations

from datetime import date

from sqlalchemy import update

from ..extensions import db
from ..models import DocumentSequence
from smerp.time_utils import today


# document_type -> (prefix, zero padding)
TRANSACTION_PREFIXES = {"purchase": "P", "sale": "S"}
VOUCHER_PREFIXES = {"income": "VI", "expense": "VE", "transfer": "VT"}


def next_document_number(
    *,
    document_type: str,
    prefix: str,
    on_date: date | None = None,
    pad: int = 4,
    separator: str = "-",
) -> str:
    """
    Allocate the next code for a document type on a given business day.

    Format: {prefix}{sep}{yymmdd}-{NNNN}, numbering restarts every day.

    Runs inside the caller's DB transaction (no commit here), so a rolled
    back posting also gives its number back. The counter row is bumped with
    a single UPDATE ... SET next_number = next_number + 1, which serializes
    concurrent writers on the row.
    """
    period = (on_date or today()).strftime("%y%m%d")

    stmt = (
        update(DocumentSequence)
        .where(
            DocumentSequence.document_type == document_type,
            DocumentSequence.period == period,
        )
        .values(next_number=DocumentSequence.next_number + 1)
    )

    result = db.session.execute(stmt)
    if result.rowcount:
        current = (
            db.session.query(DocumentSequence.next_number)
            .filter_by(document_type=document_type, period=period)
            .scalar()
        )
        number = current - 1
    else:
        db.session.add(DocumentSequence(document_type=document_type, period=period, next_number=2))
        db.session.flush()
        number = 1

    return f"{prefix}{separator}{period}-{number:0{pad}d}"


def next_transaction_code(tx_type: str, on_date: date | None = None) -> str:
    return next_document_number(
        document_type=f"transaction:{tx_type}",
        prefix=TRANSACTION_PREFIXES[tx_type],
        on_date=on_date,
    )


def next_voucher_code(voucher_type: str, on_date: date | None = None) -> str:
    # VI240501-001 style: no separator after the prefix, three digits
    return next_document_number(
        document_type=f"voucher:{voucher_type}",
        prefix=VOUCHER_PREFIXES[voucher_type],
        on_date=on_date,
        pad=3,
        separator="",
    )


def next_payment_code(on_date: date | None = None) -> str:
    return next_document_number(document_type="payment", prefix="PM", on_date=on_date)


def next_tax_invoice_code(on_date: date | None = None) -> str:
    return next_document_number(document_type="tax_invoice", prefix="TI", on_date=on_date)
