# Overview: Service-layer operations for reporting; dashboard figures and monthly revenue/expense totals.

from __future__ import annotations

import calendar
from datetime import date

from sqlalchemy import func

from ..extensions import db
from ..errors import ValidationError
from ..models import Account, Payment, Transaction, Voucher, VoucherItem
from ..validation import coerce_date
from smerp.time_utils import to_iso_date, today

"""
Reporting rules

- Periods are inclusive business-date ranges over Transaction.date and
  Voucher.date.
- Canceled transactions and vouchers never count.
- Receivables/payables are the outstanding part (total minus completed
  payments) of unpaid and partial sales/purchases.
- Revenue is the credit balance of revenue accounts, expense the debit
  balance of expense accounts, taken from confirmed vouchers only.
"""

OUTSTANDING_STATUSES = ("unpaid", "partial")


def _parse_range(start, end) -> tuple[date, date]:
    end_date = coerce_date(end, "end") or today()
    start_date = coerce_date(start, "start") or end_date.replace(day=1)
    if start_date > end_date:
        raise ValidationError("start must be on or before end")
    return start_date, end_date


def _shift_month(d: date, months: int) -> date:
    month_index = d.year * 12 + (d.month - 1) + months
    year, month = divmod(month_index, 12)
    month += 1
    day = min(d.day, calendar.monthrange(year, month)[1])
    return date(year, month, day)


def _transaction_total(tx_type: str, start: date, end: date) -> int:
    total = (
        db.session.query(func.coalesce(func.sum(Transaction.total_amount_cents), 0))
        .filter(
            Transaction.type == tx_type,
            Transaction.status != "canceled",
            Transaction.date >= start,
            Transaction.date <= end,
        )
        .scalar()
    )
    return int(total or 0)


def _outstanding_total(tx_type: str, start: date, end: date) -> int:
    paid = (
        db.session.query(
            Payment.transaction_id.label("transaction_id"),
            func.sum(Payment.amount_cents).label("paid"),
        )
        .filter(Payment.status == "completed", Payment.transaction_id.isnot(None))
        .group_by(Payment.transaction_id)
        .subquery()
    )
    outstanding = Transaction.total_amount_cents - func.coalesce(paid.c.paid, 0)
    total = (
        db.session.query(func.coalesce(func.sum(outstanding), 0))
        .outerjoin(paid, paid.c.transaction_id == Transaction.id)
        .filter(
            Transaction.type == tx_type,
            Transaction.status.in_(OUTSTANDING_STATUSES),
            Transaction.date >= start,
            Transaction.date <= end,
        )
        .scalar()
    )
    return int(total or 0)


def _compare(current: int, previous: int) -> dict:
    return {
        "current": current,
        "previous": previous,
        "change_pct": round((current - previous) * 100 / previous, 1) if previous else None,
        "is_increase": current > previous,
    }


def dashboard_summary(*, start=None, end=None) -> dict:
    """
    Sales, purchases, receivables and payables for a period against the
    same period one month earlier.

    Defaults to the current month up to today.
    """
    start_date, end_date = _parse_range(start, end)
    prev_start, prev_end = _shift_month(start_date, -1), _shift_month(end_date, -1)

    def _figures(s: date, e: date) -> dict:
        return {
            "sales": _transaction_total("sale", s, e),
            "purchases": _transaction_total("purchase", s, e),
            "receivables": _outstanding_total("sale", s, e),
            "payables": _outstanding_total("purchase", s, e),
        }

    current = _figures(start_date, end_date)
    previous = _figures(prev_start, prev_end)

    report = {
        "period": {"start": to_iso_date(start_date), "end": to_iso_date(end_date)},
        "previous_period": {"start": to_iso_date(prev_start), "end": to_iso_date(prev_end)},
    }
    for key in current:
        report[key] = _compare(current[key], previous[key])
    return report


def _months_between(start: date, end: date) -> list[str]:
    months = []
    cursor = start.replace(day=1)
    while cursor <= end:
        months.append(cursor.strftime("%Y-%m"))
        cursor = _shift_month(cursor, 1)
    return months


def monthly_totals(*, start, end) -> dict:
    """Revenue and expense per calendar month, with every month in range listed."""
    if not start or not end:
        raise ValidationError("start and end are required")
    start_date, end_date = _parse_range(start, end)

    month_expr = func.strftime("%Y-%m", Voucher.date)
    rows = (
        db.session.query(
            month_expr.label("month"),
            Account.type.label("account_type"),
            func.coalesce(func.sum(VoucherItem.amount_cents), 0).label("balance"),
        )
        .join(Voucher, Voucher.id == VoucherItem.voucher_id)
        .join(Account, Account.id == VoucherItem.account_id)
        .filter(
            Voucher.status == "confirmed",
            Account.type.in_(("revenue", "expense")),
            Voucher.date >= start_date,
            Voucher.date <= end_date,
        )
        .group_by("month", Account.type)
        .all()
    )

    totals = {month: {"revenue_cents": 0, "expense_cents": 0} for month in _months_between(start_date, end_date)}
    for row in rows:
        bucket = totals.setdefault(row.month, {"revenue_cents": 0, "expense_cents": 0})
        # Item amounts are signed: debit positive, credit negative
        if row.account_type == "revenue":
            bucket["revenue_cents"] += -int(row.balance)
        else:
            bucket["expense_cents"] += int(row.balance)

    return {
        "start": to_iso_date(start_date),
        "end": to_iso_date(end_date),
        "rows": [
            {
                "month": month,
                "revenue_cents": values["revenue_cents"],
                "expense_cents": values["expense_cents"],
                "profit_cents": values["revenue_cents"] - values["expense_cents"],
            }
            for month, values in sorted(totals.items())
        ],
    }
