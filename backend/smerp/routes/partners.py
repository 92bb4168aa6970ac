# Overview: Flask API routes for customer and supplier records.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission, current_user_id
from ..services import partner_service


partners_bp = Blueprint("partners", __name__, url_prefix="/api/partners")


@partners_bp.get("")
@require_auth
@require_permission("partners", "read")
def list_partners_route():
    """
    Query parameters:
    - type: customer | supplier (partners of type "both" match either)
    - active_only: true to hide deactivated partners
    """
    partners = partner_service.list_partners(
        type=request.args.get("type"),
        active_only=request.args.get("active_only", "false").lower() == "true",
    )
    return jsonify({"items": [p.to_dict() for p in partners]})


@partners_bp.post("")
@require_auth
@require_permission("partners", "write")
def create_partner_route():
    data = request.get_json(silent=True) or {}
    partner = partner_service.create_partner(data, actor_id=current_user_id())
    return jsonify(partner.to_dict()), 201


@partners_bp.get("/<int:partner_id>")
@require_auth
@require_permission("partners", "read")
def get_partner_route(partner_id: int):
    return jsonify(partner_service.get_partner(partner_id).to_dict())


@partners_bp.put("/<int:partner_id>")
@require_auth
@require_permission("partners", "write")
def update_partner_route(partner_id: int):
    data = request.get_json(silent=True) or {}
    partner = partner_service.update_partner(partner_id, data, actor_id=current_user_id())
    return jsonify(partner.to_dict())


@partners_bp.delete("/<int:partner_id>")
@require_auth
@require_permission("partners", "delete")
def delete_partner_route(partner_id: int):
    """409 if transactions or payments reference the partner."""
    partner_service.delete_partner(partner_id, actor_id=current_user_id())
    return jsonify({"message": "Partner deleted"}), 200
