# Overview: Flask API routes for categories, items and barcodes.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission, current_user_id
from ..services import catalog_service, inventory_service


catalog_bp = Blueprint("catalog", __name__, url_prefix="/api")


# =============================================================================
# Categories
# =============================================================================

@catalog_bp.get("/categories")
@require_auth
@require_permission("items", "read")
def list_categories_route():
    return jsonify({"items": [c.to_dict() for c in catalog_service.list_categories()]})


@catalog_bp.post("/categories")
@require_auth
@require_permission("items", "write")
def create_category_route():
    """Request body: {"name": "Drinks", "parent_id": null}"""
    data = request.get_json(silent=True) or {}
    category = catalog_service.create_category(
        data.get("name"),
        data.get("parent_id"),
        actor_id=current_user_id(),
    )
    return jsonify(category.to_dict()), 201


@catalog_bp.put("/categories/<int:category_id>")
@require_auth
@require_permission("items", "write")
def update_category_route(category_id: int):
    data = request.get_json(silent=True) or {}
    category = catalog_service.update_category(category_id, data, actor_id=current_user_id())
    return jsonify(category.to_dict())


@catalog_bp.delete("/categories/<int:category_id>")
@require_auth
@require_permission("items", "delete")
def delete_category_route(category_id: int):
    catalog_service.delete_category(category_id, actor_id=current_user_id())
    return jsonify({"message": "Category deleted"}), 200


# =============================================================================
# Items
# =============================================================================

@catalog_bp.get("/items")
@require_auth
@require_permission("items", "read")
def list_items_route():
    """
    Query parameters:
    - category_id: only items in this category
    - active_only: true to hide inactive items
    - q: substring match on code or name
    """
    items = catalog_service.list_items(
        category_id=request.args.get("category_id", type=int),
        active_only=request.args.get("active_only", "false").lower() == "true",
        q=request.args.get("q"),
    )
    return jsonify({"items": [i.to_dict() for i in items]})


@catalog_bp.post("/items")
@require_auth
@require_permission("items", "write")
def create_item_route():
    """
    Request body:
    {
        "code": "A-100",             // required, unique, stored upper-case
        "name": "Widget",            // required
        "unit_price_cents": 1500,
        "cost_price_cents": 900,
        "category_id": 1,
        "min_stock_level": 5
    }
    """
    data = request.get_json(silent=True) or {}
    item = catalog_service.create_item(data, actor_id=current_user_id())
    return jsonify(item.to_dict()), 201


@catalog_bp.get("/items/<int:item_id>")
@require_auth
@require_permission("items", "read")
def get_item_route(item_id: int):
    payload = catalog_service.get_item(item_id).to_dict()
    payload["quantity"] = inventory_service.get_quantity(item_id)
    return jsonify(payload)


@catalog_bp.put("/items/<int:item_id>")
@require_auth
@require_permission("items", "write")
def update_item_route(item_id: int):
    data = request.get_json(silent=True) or {}
    item = catalog_service.update_item(item_id, data, actor_id=current_user_id())
    return jsonify(item.to_dict())


@catalog_bp.delete("/items/<int:item_id>")
@require_auth
@require_permission("items", "delete")
def delete_item_route(item_id: int):
    """409 once the item has transactions or inventory history; deactivate it instead."""
    catalog_service.delete_item(item_id, actor_id=current_user_id())
    return jsonify({"message": "Item deleted"}), 200


@catalog_bp.get("/items/<int:item_id>/barcodes")
@require_auth
@require_permission("barcodes", "read")
def list_item_barcodes_route(item_id: int):
    rows = catalog_service.list_barcodes(item_id=item_id)
    return jsonify({"items": [b.to_dict() for b in rows]})


@catalog_bp.post("/items/<int:item_id>/barcodes")
@require_auth
@require_permission("barcodes", "write")
def add_item_barcode_route(item_id: int):
    """Request body: {"barcode": "8801234567890"}. 409 if already used."""
    data = request.get_json(silent=True) or {}
    row = catalog_service.add_barcode(item_id, data.get("barcode"), actor_id=current_user_id())
    return jsonify(row.to_dict()), 201


# =============================================================================
# Barcodes
# =============================================================================

@catalog_bp.get("/barcodes")
@require_auth
@require_permission("barcodes", "read")
def list_barcodes_route():
    rows = catalog_service.list_barcodes(item_id=request.args.get("item_id", type=int))
    return jsonify({"items": [b.to_dict() for b in rows]})


@catalog_bp.get("/barcodes/lookup/<value>")
@require_auth
@require_permission("barcodes", "read")
def lookup_barcode_route(value: str):
    row = catalog_service.lookup_barcode(value)
    return jsonify({
        "barcode": row.to_dict(),
        "item": row.item.to_dict(),
        "quantity": inventory_service.get_quantity(row.item_id),
    })


@catalog_bp.delete("/barcodes/<int:barcode_id>")
@require_auth
@require_permission("barcodes", "delete")
def delete_barcode_route(barcode_id: int):
    catalog_service.delete_barcode(barcode_id, actor_id=current_user_id())
    return jsonify({"message": "Barcode deleted"}), 200
