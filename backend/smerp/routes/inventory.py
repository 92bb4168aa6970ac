# Overview: Flask API routes for stock levels, history and manual adjustments.

"""
Inventory Routes

Stock only changes through the ledger: every change writes an
InventoryHistory row. Manual corrections are "adjustment" rows and never
drive stock below zero.
"""

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission, current_user_id
from ..services import inventory_service
from ..validation import coerce_int


inventory_bp = Blueprint("inventory", __name__, url_prefix="/api/inventory")


@inventory_bp.get("")
@require_auth
@require_permission("inventory", "read")
def inventory_overview_route():
    active_only = request.args.get("active_only", "false").lower() == "true"
    return jsonify({"items": inventory_service.get_inventory_overview(active_only=active_only)})


@inventory_bp.get("/alerts/low")
@require_auth
@require_permission("inventory", "read")
def low_stock_route():
    """Active items whose quantity is below min_stock_level."""
    return jsonify({"items": inventory_service.list_low_stock()})


@inventory_bp.get("/verify")
@require_auth
@require_permission("inventory", "export")
def verify_ledger_route():
    """Replay the history; an empty problem list means the ledger is consistent."""
    problems = inventory_service.verify_ledger(request.args.get("item_id", type=int))
    return jsonify({"consistent": not problems, "problems": problems})


@inventory_bp.get("/<int:item_id>")
@require_auth
@require_permission("inventory", "read")
def item_inventory_route(item_id: int):
    return jsonify(inventory_service.get_item_inventory(item_id))


@inventory_bp.get("/<int:item_id>/history")
@require_auth
@require_permission("inventory", "read")
def item_history_route(item_id: int):
    limit = request.args.get("limit", 100, type=int)
    rows = inventory_service.list_history(item_id, limit=limit)
    return jsonify({"items": [r.to_dict() for r in rows]})


@inventory_bp.post("/<int:item_id>/adjust")
@require_auth
@require_permission("inventory", "write")
def adjust_route(item_id: int):
    """
    Manual stock correction.

    Request body, one of:
    {"quantity": 12, "notes": "..."}   // set the absolute quantity
    {"delta": -2, "notes": "..."}      // apply a relative change

    Returns the history row written, or {"changed": false} when the
    quantity was already correct.
    """
    data = request.get_json(silent=True) or {}
    actor_id = current_user_id()
    notes = data.get("notes")

    if "quantity" in data:
        history = inventory_service.set_quantity(
            item_id, data["quantity"], actor_id=actor_id, notes=notes
        )
    elif "delta" in data:
        history = inventory_service.adjust_inventory(
            item_id,
            coerce_int(data["delta"], "delta"),
            "adjustment",
            actor_id=actor_id,
            notes=notes or "Manual adjustment",
            allow_negative=False,
        )
    else:
        return jsonify({"error": "quantity or delta is required"}), 400

    if history is None:
        return jsonify({"changed": False, "quantity": inventory_service.get_quantity(item_id)})
    return jsonify({"changed": True, "history": history.to_dict()}), 201
