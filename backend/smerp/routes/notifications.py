# Overview: Flask API routes for in-app notifications and per-user notification preferences.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission, current_user_id
from ..services import notification_service


notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/notifications")


@notifications_bp.get("")
@require_auth
@require_permission("notifications", "read")
def list_notifications_route():
    """
    Notifications addressed to the current user or broadcast to everyone,
    newest first. Types the user disabled are left out.

    Query parameters:
    - unread_only: true to hide read notifications
    - limit (default 100, max 500)
    """
    rows = notification_service.list_notifications(
        current_user_id(),
        unread_only=request.args.get("unread_only", "false").lower() == "true",
        limit=request.args.get("limit", 100, type=int),
    )
    return jsonify({"items": [n.to_dict() for n in rows]})


@notifications_bp.post("/<int:notification_id>/read")
@require_auth
@require_permission("notifications", "read")
def mark_read_route(notification_id: int):
    notification = notification_service.mark_read(notification_id, current_user_id())
    return jsonify(notification.to_dict())


@notifications_bp.post("/scan")
@require_auth
@require_permission("notifications", "write")
def scan_route():
    """Run the stock_low / unpaid checks now. Safe to repeat."""
    created = notification_service.scan_notifications()
    return jsonify({"created": len(created), "items": [n.to_dict() for n in created]})


@notifications_bp.get("/settings")
@require_auth
@require_permission("notifications", "read")
def get_settings_route():
    return jsonify(notification_service.get_notification_settings(current_user_id()))


@notifications_bp.post("/settings")
@require_auth
@require_permission("notifications", "read")
def set_settings_route():
    """Request body: {"stock_low": false, "unpaid": true}"""
    data = request.get_json(silent=True) or {}
    if not isinstance(data, dict) or not data:
        return jsonify({"error": "At least one notification type is required"}), 400

    user_id = current_user_id()
    for ntype, enabled in data.items():
        notification_service.set_notification_setting(user_id, ntype, enabled)
    return jsonify(notification_service.get_notification_settings(user_id))
