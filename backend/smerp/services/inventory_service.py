# Overview: Inventory ledger; the only writer of Inventory.quantity and InventoryHistory.

from __future__ import annotations

import warnings

from flask import current_app
from sqlalchemy import func

from ..extensions import db
from ..errors import (
    InsufficientStockError,
    InventoryNotFound,
    NegativeStockWarning,
    SmerpError,
    ValidationError,
)
from ..models import Inventory, InventoryHistory, Item
from ..models.inventory import HISTORY_TYPES
from smerp.time_utils import to_utc_z
from .concurrency import lock_for_update, run_with_retry
from .notification_service import emit_stock_low
"""
Inventory ledger invariants (authoritative)

- Inventory holds one row per item with the current quantity. It is never
  written outside adjust_inventory.
- Every change appends an InventoryHistory row in the same DB transaction:
  quantity_after = quantity_before + change, and quantity_after equals the
  new Inventory.quantity.
- Replaying all history changes for an item reproduces Inventory.quantity
  (verify_ledger checks this).
- Purchases post positive deltas, sales negative ones; cancels and updates
  post the inverse or net difference under their own history types.

Negative stock:
- allow_negative=False: a posting that would go below zero raises
  InsufficientStockError before anything is written.
- allow_negative=True: the posting proceeds, a NegativeStockWarning is
  emitted through the warnings module and logged.

Concurrency:
- The inventory row is read with SELECT ... FOR UPDATE (ignored by SQLite)
  and carries a version_id_col, so a concurrent writer surfaces as
  StaleDataError at flush. When adjust_inventory owns the commit it retries
  through run_with_retry; when called inside a larger unit of work the
  caller's retry wrapper handles it.
"""


def _get_item(item_id: int) -> Item:
    item = db.session.get(Item, item_id)
    if item is None:
        raise InventoryNotFound(f"Item {item_id} not found", {"item_id": item_id})
    return item


def _locked_inventory_row(item_id: int) -> Inventory:
    query = db.session.query(Inventory).filter_by(item_id=item_id).populate_existing()
    inv = lock_for_update(query).first()
    if inv is None:
        inv = Inventory(item_id=item_id, quantity=0)
        db.session.add(inv)
        db.session.flush()
    return inv


def _apply_adjustment(
    item_id: int,
    delta: int,
    transaction_type: str,
    transaction_id: int | None,
    actor_id: int | None,
    notes: str | None,
    allow_negative: bool,
    inv: Inventory | None = None,
) -> InventoryHistory:
    """inv: row already locked by the caller in this unit of work."""
    if transaction_type not in HISTORY_TYPES:
        raise ValidationError(f"transaction_type must be one of: {', '.join(HISTORY_TYPES)}")
    if not isinstance(delta, int) or isinstance(delta, bool):
        raise ValidationError("delta must be an integer")
    if delta == 0:
        raise ValidationError("delta must be non-zero")

    item = _get_item(item_id)
    if inv is None:
        inv = _locked_inventory_row(item_id)

    before = inv.quantity
    after = before + delta

    if after < 0:
        if not allow_negative:
            raise InsufficientStockError(
                f"Insufficient stock for item {item.code}",
                {"item_id": item_id, "available": before, "requested": -delta},
            )
        message = f"Item {item.code} goes negative: {before} -> {after} ({transaction_type})"
        warnings.warn(message, NegativeStockWarning, stacklevel=3)
        current_app.logger.warning(message)

    inv.quantity = after
    history = InventoryHistory(
        item_id=item_id,
        transaction_type=transaction_type,
        transaction_id=transaction_id,
        quantity_before=before,
        quantity_after=after,
        change=delta,
        notes=notes,
        created_by=actor_id,
    )
    db.session.add(history)
    # Version check on the inventory row happens here
    db.session.flush()

    emit_stock_low(item, after)
    return history


def adjust_inventory(
    item_id: int,
    delta: int,
    transaction_type: str,
    transaction_id: int | None = None,
    actor_id: int | None = None,
    *,
    notes: str | None = None,
    allow_negative: bool = True,
    commit: bool = True,
) -> InventoryHistory:
    """
    Apply a quantity delta to one item and record it in the history.

    commit=True: standalone unit of work, committed here and retried on
    concurrency failures. commit=False: joins the caller's DB transaction
    (used by the transaction processor); nothing is committed or rolled back.

    Raises:
        InventoryNotFound: item_id does not reference an item
        ValidationError: zero delta or unknown transaction_type
        InsufficientStockError: allow_negative=False and the result is < 0
    """
    if not commit:
        return _apply_adjustment(item_id, delta, transaction_type, transaction_id, actor_id, notes, allow_negative)

    def _op() -> InventoryHistory:
        try:
            history = _apply_adjustment(
                item_id, delta, transaction_type, transaction_id, actor_id, notes, allow_negative
            )
        except SmerpError:
            db.session.rollback()
            raise
        db.session.commit()
        return history

    return run_with_retry(_op)


def get_quantity(item_id: int) -> int:
    _get_item(item_id)
    quantity = db.session.query(Inventory.quantity).filter_by(item_id=item_id).scalar()
    return int(quantity or 0)


def get_item_inventory(item_id: int) -> dict:
    item = _get_item(item_id)
    inv = db.session.query(Inventory).filter_by(item_id=item_id).first()
    quantity = inv.quantity if inv else 0
    return {
        "item_id": item.id,
        "code": item.code,
        "name": item.name,
        "quantity": quantity,
        "min_stock_level": item.min_stock_level,
        "is_low": item.min_stock_level > 0 and quantity <= item.min_stock_level,
        "updated_at": to_utc_z(inv.updated_at) if inv else None,
    }


def get_inventory_overview(*, active_only: bool = False) -> list[dict]:
    """Every item with its quantity and low-stock flag."""
    query = (
        db.session.query(Item, Inventory)
        .outerjoin(Inventory, Inventory.item_id == Item.id)
    )
    if active_only:
        query = query.filter(Item.is_active.is_(True))

    rows = []
    for item, inv in query.order_by(Item.code.asc()).all():
        quantity = inv.quantity if inv else 0
        rows.append({
            "item_id": item.id,
            "code": item.code,
            "name": item.name,
            "unit": item.unit,
            "is_active": item.is_active,
            "quantity": quantity,
            "min_stock_level": item.min_stock_level,
            "is_low": item.min_stock_level > 0 and quantity <= item.min_stock_level,
            "updated_at": to_utc_z(inv.updated_at) if inv else None,
        })
    return rows


def list_low_stock() -> list[dict]:
    """Active items below their minimum level, with the shortage."""
    quantity = func.coalesce(Inventory.quantity, 0)
    rows = (
        db.session.query(Item, quantity)
        .outerjoin(Inventory, Inventory.item_id == Item.id)
        .filter(
            Item.is_active.is_(True),
            Item.min_stock_level > 0,
            quantity < Item.min_stock_level,
        )
        .order_by(Item.code.asc())
        .all()
    )
    return [
        {
            "item_id": item.id,
            "code": item.code,
            "name": item.name,
            "quantity": qty,
            "min_stock_level": item.min_stock_level,
            "shortage": item.min_stock_level - qty,
        }
        for item, qty in rows
    ]


def list_history(item_id: int, *, limit: int = 100) -> list[InventoryHistory]:
    _get_item(item_id)
    limit = max(1, min(limit, 1000))
    return (
        db.session.query(InventoryHistory)
        .filter_by(item_id=item_id)
        .order_by(InventoryHistory.id.desc())
        .limit(limit)
        .all()
    )


def set_quantity(
    item_id: int,
    quantity: int,
    actor_id: int | None = None,
    notes: str | None = None,
) -> InventoryHistory | None:
    """
    Manual stock correction to an absolute quantity.

    Recorded as an 'adjustment' with the computed delta. Returns None when
    the quantity is already correct.
    """
    if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 0:
        raise ValidationError("quantity must be an integer >= 0")

    def _op() -> InventoryHistory | None:
        try:
            _get_item(item_id)
            # Delta from the locked row; a concurrent write fails its version check
            inv = _locked_inventory_row(item_id)
            delta = quantity - inv.quantity
            if delta == 0:
                db.session.rollback()
                return None
            history = _apply_adjustment(
                item_id,
                delta,
                "adjustment",
                None,
                actor_id,
                notes or "Manual adjustment",
                False,
                inv=inv,
            )
        except SmerpError:
            db.session.rollback()
            raise
        db.session.commit()
        return history

    return run_with_retry(_op)


def verify_ledger(item_id: int | None = None) -> list[dict]:
    """
    Replay check of the history against current quantities.

    Returns one dict per discrepancy (empty list when consistent):
    - kind='row': a history row where after != before + change
    - kind='balance': sum of changes differs from Inventory.quantity
    """
    problems: list[dict] = []

    row_query = db.session.query(InventoryHistory).filter(
        InventoryHistory.quantity_after != InventoryHistory.quantity_before + InventoryHistory.change
    )
    if item_id is not None:
        row_query = row_query.filter(InventoryHistory.item_id == item_id)
    for row in row_query.order_by(InventoryHistory.id.asc()).all():
        problems.append({
            "kind": "row",
            "item_id": row.item_id,
            "history_id": row.id,
            "quantity_before": row.quantity_before,
            "change": row.change,
            "quantity_after": row.quantity_after,
        })

    sums = (
        db.session.query(InventoryHistory.item_id, func.sum(InventoryHistory.change))
        .group_by(InventoryHistory.item_id)
    )
    if item_id is not None:
        sums = sums.filter(InventoryHistory.item_id == item_id)
    replayed = {iid: int(total or 0) for iid, total in sums.all()}

    inv_query = db.session.query(Inventory)
    if item_id is not None:
        inv_query = inv_query.filter(Inventory.item_id == item_id)
    stored = {inv.item_id: inv.quantity for inv in inv_query.all()}

    for iid in sorted(set(replayed) | set(stored)):
        expected = replayed.get(iid, 0)
        actual = stored.get(iid, 0)
        if expected != actual:
            problems.append({
                "kind": "balance",
                "item_id": iid,
                "replayed_quantity": expected,
                "stored_quantity": actual,
            })

    return problems
