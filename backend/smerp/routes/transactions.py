# Overview: Flask API routes for sales and purchases.

"""
Transaction Routes

Permissions follow the transaction type: sales need the "sales" resource,
purchases the "purchases" resource. Listing without a type filter needs
read access to both.
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, current_context, current_user_id
from ..errors import ValidationError
from ..models.transactions import TRANSACTION_TYPES
from ..services import transaction_service
from ..services.permission_service import ensure_permission


transactions_bp = Blueprint("transactions", __name__, url_prefix="/api/transactions")

TYPE_RESOURCES = {"sale": "sales", "purchase": "purchases"}


def _resource_for(tx_type) -> str:
    if tx_type not in TYPE_RESOURCES:
        raise ValidationError(f"type must be one of: {', '.join(TRANSACTION_TYPES)}")
    return TYPE_RESOURCES[tx_type]


def _load_checked(transaction_id: int, action: str):
    tx = transaction_service.get_transaction(transaction_id)
    ensure_permission(current_context(), _resource_for(tx.type), action)
    return tx


@transactions_bp.get("")
@require_auth
def list_transactions_route():
    """
    Query parameters:
    - type: sale | purchase
    - status: pending | completed | unpaid | partial | canceled
    - partner_id
    - limit (default 100, max 500), offset

    Returns:
        {items: Transaction[], count: int, limit: int, offset: int}
    """
    ctx = current_context()
    tx_type = request.args.get("type")
    if tx_type:
        ensure_permission(ctx, _resource_for(tx_type), "read")
    else:
        for resource in TYPE_RESOURCES.values():
            ensure_permission(ctx, resource, "read")

    limit = request.args.get("limit", 100, type=int)
    offset = request.args.get("offset", 0, type=int)

    rows, total = transaction_service.list_transactions(
        type=tx_type or None,
        status=request.args.get("status") or None,
        partner_id=request.args.get("partner_id", type=int),
        limit=limit,
        offset=offset,
    )
    return jsonify({
        "items": [t.to_dict() for t in rows],
        "count": total,
        "limit": limit,
        "offset": offset,
    })


@transactions_bp.post("")
@require_auth
def create_transaction_route():
    """
    Create and post a transaction.

    Request body:
    {
        "type": "sale",                 // sale | purchase
        "partner_id": 1,
        "date": "2024-05-01",           // optional, default today
        "code": "S-240501-0001",        // optional, generated when omitted
        "notes": "...",
        "post_voucher": true,           // optional, write the accounting voucher
        "payment": {                    // optional, record a completed payment
            "amount_cents": 11000,
            "method": "cash",
            "reference": "..."
        },
        "items": [
            {"item_id": 1, "quantity": 3, "unit_price_cents": 1500}
        ]
    }

    Errors:
    - 400 validation / insufficient stock (nothing written)
    - 409 posting failed; the transaction was canceled, its id is returned
    """
    data = request.get_json(silent=True) or {}
    tx_type = data.get("type")
    ensure_permission(current_context(), _resource_for(tx_type), "write")

    tx = transaction_service.create_transaction(
        tx_type,
        data.get("partner_id"),
        data.get("items"),
        data.get("date"),
        code=data.get("code"),
        notes=data.get("notes"),
        actor_id=current_user_id(),
        post_voucher=bool(data.get("post_voucher", False)),
        payment=data.get("payment"),
    )
    return jsonify(tx.to_dict(include_items=True)), 201


@transactions_bp.get("/<int:transaction_id>")
@require_auth
def get_transaction_route(transaction_id: int):
    tx = _load_checked(transaction_id, "read")
    return jsonify(tx.to_dict(include_items=True))


@transactions_bp.get("/<int:transaction_id>/items")
@require_auth
def get_transaction_items_route(transaction_id: int):
    _load_checked(transaction_id, "read")
    rows = transaction_service.get_transaction_items(transaction_id)
    return jsonify({"items": [r.to_dict() for r in rows]})


@transactions_bp.put("/<int:transaction_id>")
@require_auth
def update_transaction_route(transaction_id: int):
    """
    Edit partner, date, notes and/or replace the lines.

    Only the per-item quantity difference is posted to inventory.
    """
    _load_checked(transaction_id, "write")
    data = request.get_json(silent=True) or {}

    tx = transaction_service.update_transaction(
        transaction_id,
        lines=data.get("items"),
        partner_id=data.get("partner_id"),
        date=data.get("date"),
        notes=data.get("notes"),
        actor_id=current_user_id(),
    )
    return jsonify(tx.to_dict(include_items=True))


@transactions_bp.post("/<int:transaction_id>/cancel")
@require_auth
def cancel_transaction_route(transaction_id: int):
    """Request body: {"reason": "..."} (optional). 409 if already canceled."""
    _load_checked(transaction_id, "write")
    data = request.get_json(silent=True) or {}

    tx = transaction_service.cancel_transaction(
        transaction_id,
        actor_id=current_user_id(),
        reason=data.get("reason"),
    )
    return jsonify(tx.to_dict(include_items=True))


@transactions_bp.delete("/<int:transaction_id>")
@require_auth
def delete_transaction_route(transaction_id: int):
    _load_checked(transaction_id, "delete")
    transaction_service.delete_transaction(transaction_id, actor_id=current_user_id())
    return jsonify({"message": "Transaction deleted"}), 200
