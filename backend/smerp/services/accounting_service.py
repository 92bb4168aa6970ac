# Overview: Service-layer operations for accounts and vouchers; encapsulates business logic and database work.

"""
Accounting Service

Accounts form the chart of accounts; vouchers are balanced journal entries
against them.

VOUCHER RULES:
- At least one item; every account must exist
- Item amounts are signed integers in cents (positive = debit,
  negative = credit), never zero
- Sum of debits == sum of credits == voucher.amount_cents
- Codes: V{I|E|T}YYMMDD-NNN by voucher type (income/expense/transfer)
- Status: draft -> confirmed | canceled, confirmed -> canceled.
  Only drafts may be edited.

TRANSACTION POSTING (post_transaction_voucher):
- Sale -> income voucher:
    debit receivable (total), credit sales (net), credit VAT payable (tax)
- Purchase -> expense voucher:
    debit purchases (net), debit VAT receivable (tax), credit payable (total)
- Account codes come from the POSTING_ACCOUNTS config mapping.
"""

from flask import current_app

from ..extensions import db
from ..errors import ConflictError, InvalidTransitionError, NotFoundError, ValidationError
from ..models import Account, Partner, Transaction, Voucher, VoucherItem
from ..models.accounting import ACCOUNT_TYPES, VOUCHER_STATUSES, VOUCHER_TYPES
from ..validation import coerce_date, coerce_int
from smerp.time_utils import today
from .activity_service import record_activity
from .document_service import next_voucher_code


# status -> statuses it may move to
VOUCHER_STATUS_FLOW = {
    "draft": ("confirmed", "canceled"),
    "confirmed": ("canceled",),
    "canceled": (),
}


# =============================================================================
# ACCOUNTS
# =============================================================================

def _clean_account_fields(data: dict, *, partial: bool) -> dict:
    patch = {}
    if "code" in data or not partial:
        code = str(data.get("code") or "").strip()
        if not code:
            raise ValidationError("code is required")
        if len(code) > 16:
            raise ValidationError("code exceeds max length 16")
        patch["code"] = code
    if "name" in data or not partial:
        name = str(data.get("name") or "").strip()
        if not name:
            raise ValidationError("name is required")
        patch["name"] = name
    if "type" in data or not partial:
        if data.get("type") not in ACCOUNT_TYPES:
            raise ValidationError(f"type must be one of: {', '.join(ACCOUNT_TYPES)}")
        patch["type"] = data["type"]
    if "is_active" in data:
        patch["is_active"] = bool(data["is_active"])
    return patch


def create_account(data: dict, *, actor_id: int | None = None) -> Account:
    patch = _clean_account_fields(data, partial=False)
    if db.session.query(Account.id).filter_by(code=patch["code"]).first():
        raise ConflictError("Account code already exists", {"code": patch["code"]})

    account = Account(**patch)
    db.session.add(account)
    db.session.flush()
    record_activity(actor_id, "create", f"account:{account.id}", f"Created account {account.code}")
    db.session.commit()
    return account


def get_account(account_id: int) -> Account:
    account = db.session.get(Account, account_id)
    if account is None:
        raise NotFoundError("Account not found")
    return account


def list_accounts(*, active_only: bool = False) -> list[Account]:
    query = db.session.query(Account)
    if active_only:
        query = query.filter(Account.is_active.is_(True))
    return query.order_by(Account.code.asc()).all()


def update_account(account_id: int, data: dict, *, actor_id: int | None = None) -> Account:
    account = get_account(account_id)
    patch = _clean_account_fields(data, partial=True)

    if "code" in patch and patch["code"] != account.code:
        if db.session.query(Account.id).filter_by(code=patch["code"]).first():
            raise ConflictError("Account code already exists", {"code": patch["code"]})

    for key, value in patch.items():
        setattr(account, key, value)
    record_activity(actor_id, "update", f"account:{account.id}", f"Updated account {account.code}")
    db.session.commit()
    return account


def delete_account(account_id: int, *, actor_id: int | None = None) -> None:
    account = get_account(account_id)
    if db.session.query(VoucherItem.id).filter_by(account_id=account.id).first():
        raise ConflictError("Account is referenced by vouchers; deactivate it instead")
    record_activity(actor_id, "delete", f"account:{account.id}", f"Deleted account {account.code}")
    db.session.delete(account)
    db.session.commit()


def get_account_by_code(code: str) -> Account:
    account = db.session.query(Account).filter_by(code=code).first()
    if account is None:
        raise ValidationError(f"Posting account {code} not found", {"account_code": code})
    return account


# POSTING_ACCOUNTS role -> (name, type) for seeding
DEFAULT_ACCOUNTS = {
    "cash": ("Cash", "asset"),
    "receivable": ("Accounts receivable", "asset"),
    "vat_receivable": ("VAT receivable", "asset"),
    "payable": ("Accounts payable", "liability"),
    "vat_payable": ("VAT payable", "liability"),
    "sales": ("Sales revenue", "revenue"),
    "purchases": ("Purchases", "expense"),
}


def ensure_posting_accounts() -> list[Account]:
    """Create any missing POSTING_ACCOUNTS entries. Does not commit; returns the new rows."""
    created = []
    for role, code in current_app.config["POSTING_ACCOUNTS"].items():
        if db.session.query(Account.id).filter_by(code=code).first():
            continue
        name, account_type = DEFAULT_ACCOUNTS.get(role, (role.replace("_", " ").title(), "asset"))
        account = Account(code=code, name=name, type=account_type)
        db.session.add(account)
        created.append(account)
    db.session.flush()
    return created


# =============================================================================
# VOUCHERS
# =============================================================================

def _validate_items(items) -> tuple[list[VoucherItem], int]:
    """Build voucher items, returning them with the (balanced) debit total."""
    if not isinstance(items, list) or not items:
        raise ValidationError("At least one voucher item is required")

    built = []
    debit_total = 0
    credit_total = 0
    for index, raw in enumerate(items):
        if not isinstance(raw, dict):
            raise ValidationError(f"Voucher item {index + 1} must be an object")
        if raw.get("account_id") is None:
            raise ValidationError(f"Voucher item {index + 1}: account_id is required")
        account_id = coerce_int(raw["account_id"], "account_id")
        if db.session.get(Account, account_id) is None:
            raise ValidationError(f"Voucher item {index + 1}: account not found", {"account_id": account_id})

        amount = coerce_int(raw.get("amount_cents"), "amount_cents")
        if amount == 0:
            raise ValidationError(f"Voucher item {index + 1}: amount_cents must be non-zero")
        if amount > 0:
            debit_total += amount
        else:
            credit_total += -amount

        built.append(VoucherItem(
            account_id=account_id,
            amount_cents=amount,
            description=raw.get("description"),
        ))

    if debit_total != credit_total:
        raise ValidationError(
            "Debits must equal credits",
            {"debit_total": debit_total, "credit_total": credit_total},
        )
    return built, debit_total


def create_voucher(
    data: dict,
    items: list[dict],
    *,
    actor_id: int | None = None,
    commit: bool = True,
) -> Voucher:
    """
    Create a balanced voucher.

    data: type, amount_cents, date (default today), partner_id,
    transaction_id, description, status (draft|confirmed, default draft).
    """
    if not isinstance(data, dict):
        raise ValidationError("Invalid JSON payload")

    vtype = data.get("type")
    if vtype not in VOUCHER_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(VOUCHER_TYPES)}")

    status = data.get("status", "draft")
    if status not in ("draft", "confirmed"):
        raise ValidationError("status must be draft or confirmed on creation")

    voucher_date = coerce_date(data.get("date"), "date") or today()

    partner_id = data.get("partner_id")
    if partner_id is not None:
        partner_id = coerce_int(partner_id, "partner_id")
        if db.session.get(Partner, partner_id) is None:
            raise ValidationError("Partner not found", {"partner_id": partner_id})

    transaction_id = data.get("transaction_id")
    if transaction_id is not None:
        transaction_id = coerce_int(transaction_id, "transaction_id")
        if db.session.get(Transaction, transaction_id) is None:
            raise ValidationError("Transaction not found", {"transaction_id": transaction_id})

    if data.get("amount_cents") is None:
        raise ValidationError("amount_cents is required")
    amount = coerce_int(data["amount_cents"], "amount_cents")
    if amount <= 0:
        raise ValidationError("amount_cents must be > 0")

    built, debit_total = _validate_items(items)
    if debit_total != amount:
        raise ValidationError(
            "Voucher amount must equal the debit total",
            {"amount_cents": amount, "debit_total": debit_total},
        )

    voucher = Voucher(
        code=next_voucher_code(vtype, voucher_date),
        date=voucher_date,
        type=vtype,
        partner_id=partner_id,
        transaction_id=transaction_id,
        amount_cents=amount,
        status=status,
        description=data.get("description"),
        created_by=actor_id,
    )
    voucher.items.extend(built)
    db.session.add(voucher)
    db.session.flush()
    record_activity(actor_id, "create", f"voucher:{voucher.id}", f"Created voucher {voucher.code}")

    if commit:
        db.session.commit()
    return voucher


def get_voucher(voucher_id: int) -> Voucher:
    voucher = db.session.get(Voucher, voucher_id)
    if voucher is None:
        raise NotFoundError("Voucher not found")
    return voucher


def list_vouchers(
    *,
    type: str | None = None,
    status: str | None = None,
    partner_id: int | None = None,
    transaction_id: int | None = None,
) -> list[Voucher]:
    query = db.session.query(Voucher)
    if type is not None:
        query = query.filter(Voucher.type == type)
    if status is not None:
        query = query.filter(Voucher.status == status)
    if partner_id is not None:
        query = query.filter(Voucher.partner_id == partner_id)
    if transaction_id is not None:
        query = query.filter(Voucher.transaction_id == transaction_id)
    return query.order_by(Voucher.date.desc(), Voucher.id.desc()).all()


def update_voucher(voucher_id: int, data: dict, *, actor_id: int | None = None) -> Voucher:
    """Edit description, date or partner of a draft voucher."""
    voucher = get_voucher(voucher_id)
    if voucher.status != "draft":
        raise ConflictError("Only draft vouchers can be edited", {"status": voucher.status})

    unknown = set(data) - {"description", "date", "partner_id"}
    if unknown:
        raise ValidationError(f"Field not allowed: {', '.join(sorted(unknown))}")

    if "description" in data:
        voucher.description = data["description"]
    if "date" in data:
        parsed = coerce_date(data["date"], "date")
        if parsed is None:
            raise ValidationError("date cannot be null")
        voucher.date = parsed
    if "partner_id" in data:
        partner_id = data["partner_id"]
        if partner_id is not None:
            partner_id = coerce_int(partner_id, "partner_id")
            if db.session.get(Partner, partner_id) is None:
                raise ValidationError("Partner not found", {"partner_id": partner_id})
        voucher.partner_id = partner_id

    record_activity(actor_id, "update", f"voucher:{voucher.id}", f"Updated voucher {voucher.code}")
    db.session.commit()
    return voucher


def set_voucher_status(voucher_id: int, status: str, *, actor_id: int | None = None) -> Voucher:
    if status not in VOUCHER_STATUSES:
        raise ValidationError(f"status must be one of: {', '.join(VOUCHER_STATUSES)}")

    voucher = get_voucher(voucher_id)
    if status not in VOUCHER_STATUS_FLOW[voucher.status]:
        raise InvalidTransitionError(
            f"Cannot change voucher from {voucher.status} to {status}",
            {"voucher_id": voucher.id, "status": voucher.status},
        )

    voucher.status = status
    record_activity(actor_id, "update", f"voucher:{voucher.id}", f"Voucher {voucher.code} -> {status}")
    db.session.commit()
    return voucher


def post_transaction_voucher(tx: Transaction, *, actor_id: int | None = None) -> Voucher | None:
    """
    Create the confirmed voucher for a posted transaction (no commit).

    Returns None for zero-value transactions.
    """
    if tx.total_amount_cents <= 0:
        return None

    codes = current_app.config["POSTING_ACCOUNTS"]
    net = tx.net_amount_cents
    tax = tx.tax_amount_cents
    total = tx.total_amount_cents

    if tx.type == "sale":
        vtype = "income"
        entries = [
            (codes["receivable"], total),
            (codes["sales"], -net),
            (codes["vat_payable"], -tax),
        ]
    else:
        vtype = "expense"
        entries = [
            (codes["purchases"], net),
            (codes["vat_receivable"], tax),
            (codes["payable"], -total),
        ]

    items = [
        {"account_id": get_account_by_code(code).id, "amount_cents": amount, "description": tx.code}
        for code, amount in entries
        if amount
    ]
    return create_voucher(
        {
            "type": vtype,
            "date": tx.date,
            "partner_id": tx.partner_id,
            "transaction_id": tx.id,
            "amount_cents": total,
            "status": "confirmed",
            "description": f"{tx.type.capitalize()} {tx.code}",
        },
        items,
        actor_id=actor_id,
        commit=False,
    )


def reissue_transaction_vouchers(tx: Transaction, *, actor_id: int | None = None) -> Voucher | None:
    """
    After a transaction's totals change: cancel its open vouchers and post a
    fresh one. No-op when the transaction never had a voucher.
    """
    open_vouchers = (
        db.session.query(Voucher)
        .filter(Voucher.transaction_id == tx.id, Voucher.status != "canceled")
        .all()
    )
    if not open_vouchers:
        return None
    for voucher in open_vouchers:
        voucher.status = "canceled"
    return post_transaction_voucher(tx, actor_id=actor_id)
