# Overview: Transaction processor; validates sales/purchases and posts them to the inventory ledger.

from __future__ import annotations

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    ConflictError,
    InsufficientStockError,
    NotFoundError,
    PostingError,
    SmerpError,
    ValidationError,
)
from ..models import (
    Inventory,
    InventoryHistory,
    Item,
    Partner,
    Payment,
    TaxInvoice,
    Transaction,
    TransactionItem,
    Voucher,
)
from ..models.transactions import TRANSACTION_STATUSES, TRANSACTION_TYPES
from ..validation import MAX_PRICE_CENTS, coerce_date, coerce_int
from smerp.time_utils import today
from .activity_service import record_activity
from .concurrency import lock_for_update, run_with_retry
from .document_service import next_transaction_code
from .inventory_service import adjust_inventory
from .transaction_state import can_fire, fire
from . import accounting_service, notification_service, payment_service, tax_invoice_service
"""
Transaction processing rules (authoritative)

Validation (all-or-nothing, nothing written on failure):
- type is purchase|sale, partner exists and is active
- at least one line; every line references an existing, active item
- quantity is an integer > 0, unit price an integer in [0, MAX_PRICE_CENTS]
  (defaults: item unit price for sales, cost price for purchases)

Totals:
- line amount = quantity * unit_price_cents
- line tax = amount * TAX_RATE_BPS / 10000, rounded half-up
- tax_amount_cents = sum(line tax); total_amount_cents = sum(amount) + tax

Stock policy:
- ALLOW_NEGATIVE_STOCK=False (default): a sale asking for more than is on
  hand is rejected with InsufficientStockError, per-item details attached.
- ALLOW_NEGATIVE_STOCK=True: the sale proceeds; the ledger warns.

Posting:
- Transaction + lines + ledger postings + voucher + payment share one DB
  transaction and commit once.
- A domain failure while posting (stock consumed concurrently, item vanished)
  reverses the postings already applied with inverse adjustments, moves the
  transaction to canceled (trigger posting_failed), commits that state and
  raises PostingError carrying the transaction id.
- Database-level failures roll back everything and retry (run_with_retry).
"""


SIGN = {"purchase": 1, "sale": -1}


def _allow_negative() -> bool:
    return bool(current_app.config.get("ALLOW_NEGATIVE_STOCK", False))


def _tax_rate_bps() -> int:
    return int(current_app.config.get("TAX_RATE_BPS", 1000))


def compute_line_tax(amount_cents: int, rate_bps: int) -> int:
    """Tax for one line amount, rounded half-up to the cent."""
    return (amount_cents * rate_bps + 5000) // 10000


def _validate_type(tx_type) -> str:
    if tx_type not in TRANSACTION_TYPES:
        raise ValidationError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")
    return tx_type


def _resolve_partner(partner_id) -> Partner:
    if partner_id is None:
        raise ValidationError("partner_id is required")
    partner = db.session.get(Partner, coerce_int(partner_id, "partner_id"))
    if partner is None:
        raise ValidationError("Partner not found", {"partner_id": partner_id})
    if not partner.is_active:
        raise ValidationError("Partner is inactive", {"partner_id": partner.id})
    return partner


def _normalize_lines(tx_type: str, lines) -> list[dict]:
    if not isinstance(lines, list) or not lines:
        raise ValidationError("At least one line is required")

    normalized = []
    for index, line in enumerate(lines):
        if not isinstance(line, dict):
            raise ValidationError(f"Line {index + 1} must be an object")
        if line.get("item_id") is None:
            raise ValidationError(f"Line {index + 1}: item_id is required")

        item_id = coerce_int(line["item_id"], "item_id")
        item = db.session.get(Item, item_id)
        if item is None:
            raise ValidationError(f"Line {index + 1}: item not found", {"item_id": item_id})
        if not item.is_active:
            raise ValidationError(f"Line {index + 1}: item {item.code} is inactive", {"item_id": item_id})

        if line.get("quantity") is None:
            raise ValidationError(f"Line {index + 1}: quantity is required")
        quantity = coerce_int(line["quantity"], "quantity")
        if quantity <= 0:
            raise ValidationError(f"Line {index + 1}: quantity must be > 0")

        if line.get("unit_price_cents") is None:
            unit_price = item.unit_price_cents if tx_type == "sale" else item.cost_price_cents
        else:
            unit_price = coerce_int(line["unit_price_cents"], "unit_price_cents")
        if unit_price < 0:
            raise ValidationError(f"Line {index + 1}: unit_price_cents must be >= 0")
        if unit_price > MAX_PRICE_CENTS:
            raise ValidationError(f"Line {index + 1}: unit_price_cents cannot exceed {MAX_PRICE_CENTS}")

        normalized.append({"item_id": item.id, "quantity": quantity, "unit_price_cents": unit_price})
    return normalized


def _quantities_by_item(lines) -> dict[int, int]:
    totals: dict[int, int] = {}
    for line in lines:
        item_id = line["item_id"] if isinstance(line, dict) else line.item_id
        quantity = line["quantity"] if isinstance(line, dict) else line.quantity
        totals[item_id] = totals.get(item_id, 0) + quantity
    return totals


def _ensure_stock(required: dict[int, int]) -> None:
    """Raise InsufficientStockError listing every item whose on-hand is short."""
    insufficient = []
    for item_id, quantity in sorted(required.items()):
        if quantity <= 0:
            continue
        on_hand = db.session.query(Inventory.quantity).filter_by(item_id=item_id).scalar() or 0
        if on_hand < quantity:
            insufficient.append({
                "item_id": item_id,
                "requested_quantity": quantity,
                "on_hand": on_hand,
            })

    if insufficient:
        raise InsufficientStockError(
            "Insufficient inventory",
            {"items": insufficient},
        )


def _build_lines(tx: Transaction, lines: list[dict]) -> None:
    """Replace tx lines and recompute totals."""
    rate = _tax_rate_bps()
    tx.items.clear()

    net_total = 0
    tax_total = 0
    for line in lines:
        amount = line["quantity"] * line["unit_price_cents"]
        tax = compute_line_tax(amount, rate)
        tx.items.append(TransactionItem(
            item_id=line["item_id"],
            quantity=line["quantity"],
            unit_price_cents=line["unit_price_cents"],
            amount_cents=amount,
            tax_amount_cents=tax,
        ))
        net_total += amount
        tax_total += tax

    tx.tax_amount_cents = tax_total
    tx.total_amount_cents = net_total + tax_total


def _lock_transaction(transaction_id: int) -> Transaction:
    query = db.session.query(Transaction).filter_by(id=transaction_id).populate_existing()
    tx = lock_for_update(query).first()
    if tx is None:
        raise NotFoundError("Transaction not found", {"transaction_id": transaction_id})
    return tx


def _compensate(
    tx: Transaction,
    posted: list[tuple[int, int]],
    actor_id: int | None,
    cause: SmerpError,
    known_alerts: set[int],
):
    """
    Undo this transaction's postings, cancel it, commit and raise PostingError.

    stock_low alerts raised by the reversed postings are withdrawn; alerts
    that were already unread before the posting (known_alerts) stay.
    """
    for item_id, delta in reversed(posted):
        adjust_inventory(
            item_id,
            -delta,
            f"{tx.type}_cancel",
            tx.id,
            actor_id,
            notes="Reversed after posting failure",
            allow_negative=True,
            commit=False,
        )
    notification_service.discard_stock_low_since(
        [item_id for item_id, _ in posted],
        known_alerts,
    )
    fire(tx, "posting_failed", reason=str(cause)[:255])
    record_activity(actor_id, "cancel", f"transaction:{tx.id}", f"Posting failed: {cause}")
    db.session.commit()

    current_app.logger.warning(
        "Posting of %s failed after %d line(s); reversed and canceled: %s",
        tx.code,
        len(posted),
        cause,
    )
    raise PostingError(
        "Posting failed; transaction canceled",
        {"transaction_id": tx.id, "cause": cause.to_dict()},
    ) from cause


def _validate_initial_payment(payment) -> dict | None:
    if payment is None:
        return None
    if not isinstance(payment, dict):
        raise ValidationError("payment must be an object")
    if payment.get("amount_cents") is None:
        raise ValidationError("payment.amount_cents is required")
    amount = coerce_int(payment["amount_cents"], "amount_cents")
    if amount <= 0:
        raise ValidationError("payment.amount_cents must be > 0")
    method = payment.get("method", "cash")
    if method not in payment_service.PAYMENT_METHODS:
        raise ValidationError(f"payment.method must be one of: {', '.join(payment_service.PAYMENT_METHODS)}")
    return {"amount_cents": amount, "method": method, "reference": payment.get("reference")}


def create_transaction(
    type: str,
    partner_id: int,
    lines: list[dict],
    date=None,
    *,
    code: str | None = None,
    notes: str | None = None,
    actor_id: int | None = None,
    post_voucher: bool = False,
    payment: dict | None = None,
) -> Transaction:
    """
    Validate, persist and post a sale or purchase.

    lines: [{"item_id": 1, "quantity": 3, "unit_price_cents": 1500}, ...]
    payment: optional {"amount_cents": ..., "method": "cash|bank|card"},
    recorded as a completed payment and reconciled against the total.

    Raises:
        ValidationError / InsufficientStockError: nothing written
        ConflictError: supplied code already used
        PostingError: posting failed mid-batch, transaction left canceled
    """
    def _op() -> Transaction:
        try:
            tx_type = _validate_type(type)
            partner = _resolve_partner(partner_id)
            tx_date = coerce_date(date, "date") or today()
            normalized = _normalize_lines(tx_type, lines)
            initial_payment = _validate_initial_payment(payment)
            allow_negative = _allow_negative()

            if tx_type == "sale" and not allow_negative:
                _ensure_stock(_quantities_by_item(normalized))

            tx_code = (code or "").strip()
            if tx_code:
                if db.session.query(Transaction.id).filter_by(code=tx_code).first():
                    raise ConflictError("Transaction code already exists", {"code": tx_code})
            else:
                tx_code = next_transaction_code(tx_type, tx_date)

            tx = Transaction(
                code=tx_code,
                type=tx_type,
                partner_id=partner.id,
                date=tx_date,
                status="pending",
                notes=notes,
                created_by=actor_id,
            )
            _build_lines(tx, normalized)
            db.session.add(tx)
            db.session.flush()
            record_activity(actor_id, "create", f"transaction:{tx.id}", f"Created {tx_type} {tx_code}")
        except SmerpError:
            db.session.rollback()
            raise

        known_alerts = notification_service.unread_stock_low_ids(
            [line.item_id for line in tx.items]
        )
        posted: list[tuple[int, int]] = []
        try:
            for line in tx.items:
                delta = SIGN[tx.type] * line.quantity
                adjust_inventory(
                    line.item_id,
                    delta,
                    tx.type,
                    tx.id,
                    actor_id,
                    allow_negative=allow_negative,
                    commit=False,
                )
                posted.append((line.item_id, delta))
        except (ValidationError, NotFoundError) as exc:
            _compensate(tx, posted, actor_id, exc, known_alerts)

        try:
            fire(tx, "post")
            if post_voucher:
                accounting_service.post_transaction_voucher(tx, actor_id=actor_id)
            if initial_payment:
                payment_service.create_payment(
                    {
                        "partner_id": tx.partner_id,
                        "transaction_id": tx.id,
                        "date": tx.date,
                        "status": "completed",
                        **initial_payment,
                    },
                    actor_id=actor_id,
                    commit=False,
                )
        except SmerpError:
            db.session.rollback()
            raise

        db.session.commit()
        current_app.logger.info("Posted %s %s (%d lines)", tx.type, tx.code, len(tx.items))
        return tx

    return run_with_retry(_op)


def _posted_net_by_item(tx: Transaction) -> dict[int, int]:
    """Net ledger effect of this transaction per item, from the history."""
    rows = (
        db.session.query(InventoryHistory.item_id, func.sum(InventoryHistory.change))
        .filter(InventoryHistory.transaction_id == tx.id)
        .group_by(InventoryHistory.item_id)
        .all()
    )
    return {item_id: int(total or 0) for item_id, total in rows}


def _cancel_locked(tx: Transaction, actor_id: int | None, reason: str | None) -> None:
    fire(tx, "cancel", reason=reason)

    allow_negative = _allow_negative()
    reversal = {item_id: -net for item_id, net in _posted_net_by_item(tx).items() if net}

    if not allow_negative:
        _ensure_stock({item_id: -delta for item_id, delta in reversal.items() if delta < 0})

    for item_id, delta in sorted(reversal.items()):
        adjust_inventory(
            item_id,
            delta,
            f"{tx.type}_cancel",
            tx.id,
            actor_id,
            notes=reason,
            allow_negative=allow_negative,
            commit=False,
        )

    for voucher in db.session.query(Voucher).filter(
        Voucher.transaction_id == tx.id,
        Voucher.status != "canceled",
    ).all():
        voucher.status = "canceled"

    db.session.query(Payment).filter(
        Payment.transaction_id == tx.id,
        Payment.status == "planned",
    ).delete(synchronize_session=False)

    for invoice in db.session.query(TaxInvoice).filter_by(transaction_id=tx.id, status="issued").all():
        tax_invoice_service.mark_canceled(invoice)

    record_activity(actor_id, "cancel", f"transaction:{tx.id}", reason or f"Canceled {tx.code}")


def cancel_transaction(transaction_id: int, actor_id: int | None = None, reason: str | None = None) -> Transaction:
    """
    Cancel a transaction and reverse its inventory effect exactly.

    Linked vouchers are canceled, planned payments removed, issued tax
    invoices canceled. Completed payments stay on record.
    """
    def _op() -> Transaction:
        try:
            tx = _lock_transaction(transaction_id)
            _cancel_locked(tx, actor_id, reason)
        except SmerpError:
            db.session.rollback()
            raise
        db.session.commit()
        current_app.logger.info("Canceled %s", tx.code)
        return tx

    return run_with_retry(_op)


def _ensure_no_partner_documents(tx: Transaction) -> None:
    linked = {
        "payments": db.session.query(Payment).filter_by(transaction_id=tx.id).count(),
        "vouchers": db.session.query(Voucher).filter(
            Voucher.transaction_id == tx.id,
            Voucher.status != "canceled",
        ).count(),
        "tax_invoices": db.session.query(TaxInvoice).filter_by(transaction_id=tx.id, status="issued").count(),
    }
    if any(linked.values()):
        raise ConflictError(
            "Cannot change the partner of a transaction with linked documents",
            {"transaction_id": tx.id, **linked},
        )


def update_transaction(
    transaction_id: int,
    lines: list[dict] | None = None,
    partner_id: int | None = None,
    date=None,
    notes: str | None = None,
    actor_id: int | None = None,
) -> Transaction:
    """
    Edit a non-canceled transaction.

    When lines are given they replace the existing ones; only the per-item
    net difference is posted to inventory ({type}_update history rows).
    Linked confirmed vouchers and issued tax invoices are reissued to match
    the new totals. The partner can only change while no payment, open
    voucher or issued tax invoice refers to the transaction.
    """
    def _op() -> Transaction:
        try:
            tx = _lock_transaction(transaction_id)
            if tx.status == "canceled":
                raise ConflictError("Cannot update a canceled transaction", {"transaction_id": tx.id})

            if partner_id is not None:
                partner = _resolve_partner(partner_id)
                if partner.id != tx.partner_id:
                    _ensure_no_partner_documents(tx)
                    tx.partner_id = partner.id
            if date is not None:
                tx.date = coerce_date(date, "date")
            if notes is not None:
                tx.notes = notes

            if lines is not None:
                normalized = _normalize_lines(tx.type, lines)
                old = _quantities_by_item(tx.items)
                new = _quantities_by_item(normalized)
                sign = SIGN[tx.type]
                deltas = {
                    item_id: sign * (new.get(item_id, 0) - old.get(item_id, 0))
                    for item_id in set(old) | set(new)
                }
                deltas = {item_id: d for item_id, d in deltas.items() if d}

                allow_negative = _allow_negative()
                if not allow_negative:
                    _ensure_stock({item_id: -d for item_id, d in deltas.items() if d < 0})

                old_total = tx.total_amount_cents
                _build_lines(tx, normalized)
                db.session.flush()

                for item_id, delta in sorted(deltas.items()):
                    adjust_inventory(
                        item_id,
                        delta,
                        f"{tx.type}_update",
                        tx.id,
                        actor_id,
                        allow_negative=allow_negative,
                        commit=False,
                    )

                if tx.total_amount_cents != old_total:
                    accounting_service.reissue_transaction_vouchers(tx, actor_id=actor_id)
                    if db.session.query(Payment.id).filter_by(transaction_id=tx.id).first():
                        payment_service.reconcile_status(tx)
                tax_invoice_service.reissue_for_transaction(tx, actor_id=actor_id)

            record_activity(actor_id, "update", f"transaction:{tx.id}", f"Updated {tx.code}")
        except SmerpError:
            db.session.rollback()
            raise
        db.session.commit()
        return tx

    return run_with_retry(_op)


def delete_transaction(transaction_id: int, actor_id: int | None = None) -> None:
    """
    Delete a transaction and its lines, canceling it first if needed.

    History rows keep the transaction id; vouchers, payments and tax
    invoices are detached rather than deleted.
    """
    def _op() -> None:
        try:
            tx = _lock_transaction(transaction_id)
            if can_fire(tx, "cancel"):
                _cancel_locked(tx, actor_id, "Deleted")

            db.session.query(Voucher).filter_by(transaction_id=tx.id).update(
                {"transaction_id": None}, synchronize_session=False
            )
            db.session.query(Payment).filter_by(transaction_id=tx.id).update(
                {"transaction_id": None}, synchronize_session=False
            )
            db.session.query(TaxInvoice).filter_by(transaction_id=tx.id).update(
                {"transaction_id": None}, synchronize_session=False
            )
            record_activity(actor_id, "delete", f"transaction:{tx.id}", f"Deleted {tx.code}")
            db.session.delete(tx)
        except SmerpError:
            db.session.rollback()
            raise
        db.session.commit()

    run_with_retry(_op)


def get_transaction(transaction_id: int) -> Transaction:
    tx = db.session.get(Transaction, transaction_id)
    if tx is None:
        raise NotFoundError("Transaction not found", {"transaction_id": transaction_id})
    return tx


def get_transaction_items(transaction_id: int) -> list[TransactionItem]:
    return list(get_transaction(transaction_id).items)


def list_transactions(
    *,
    type: str | None = None,
    status: str | None = None,
    partner_id: int | None = None,
    limit: int = 100,
    offset: int = 0,
) -> tuple[list[Transaction], int]:
    query = db.session.query(Transaction)
    if type is not None:
        query = query.filter(Transaction.type == _validate_type(type))
    if status is not None:
        if status not in TRANSACTION_STATUSES:
            raise ValidationError(f"status must be one of: {', '.join(TRANSACTION_STATUSES)}")
        query = query.filter(Transaction.status == status)
    if partner_id is not None:
        query = query.filter(Transaction.partner_id == partner_id)

    total = query.count()
    limit = max(1, min(limit, 500))
    offset = max(0, offset)
    rows = (
        query.order_by(Transaction.date.desc(), Transaction.id.desc())
        .offset(offset)
        .limit(limit)
        .all()
    )
    return rows, total
