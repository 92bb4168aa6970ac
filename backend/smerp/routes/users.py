# Overview: Flask API routes for user administration and permission grants.

from flask import Blueprint, request, jsonify

from ..decorators import require_auth, require_permission, current_user_id
from ..extensions import db
from ..models import UserPermission
from ..services import activity_service, auth_service, permission_service, session_service
from .auth import serialize_permissions


users_bp = Blueprint("users", __name__, url_prefix="/api/users")


def _user_payload(user) -> dict:
    payload = user.to_dict()
    payload["permissions"] = serialize_permissions(permission_service.get_user_permissions(user.id))
    return payload


@users_bp.get("")
@require_auth
@require_permission("users", "read")
def list_users_route():
    return jsonify({"items": [_user_payload(u) for u in auth_service.list_users()]})


@users_bp.post("")
@require_auth
@require_permission("users", "write")
def create_user_route():
    """
    Create a user.

    Request body:
    {
        "username": "kim",       // required, unique
        "password": "...",       // required, strength-checked
        "name": "Kim",           // required
        "email": "...",          // optional
        "role": "staff"          // admin | manager | staff
    }

    Non-admin users receive the default staff permission set.
    """
    data = request.get_json(silent=True) or {}
    actor_id = current_user_id()

    user = auth_service.create_user(
        data.get("username"),
        data.get("password"),
        data.get("name"),
        email=data.get("email"),
        role=data.get("role", "staff"),
        actor_id=actor_id,
        commit=False,
    )
    permission_service.grant_default_permissions(user.id, full=user.is_admin)
    db.session.commit()

    return jsonify(_user_payload(user)), 201


@users_bp.put("/<int:user_id>")
@require_auth
@require_permission("users", "write")
def update_user_route(user_id: int):
    """
    Update name, email, role, is_active, preferences or password.

    Deactivating a user revokes all of their sessions.
    """
    data = request.get_json(silent=True) or {}
    user = auth_service.update_user(user_id, data, actor_id=current_user_id())

    if data.get("is_active") is False:
        session_service.revoke_all_user_sessions(user.id, reason="User account deactivated")

    return jsonify(_user_payload(user))


@users_bp.put("/<int:user_id>/permissions")
@require_auth
@require_permission("users", "write")
def set_permissions_route(user_id: int):
    """
    Request body: {"items": {"read": true, "write": false}, ...}
    """
    data = request.get_json(silent=True) or {}
    rows = permission_service.set_user_permissions(user_id, data, actor_id=current_user_id())
    return jsonify({"items": [r.to_dict() for r in rows]})


@users_bp.get("/<int:user_id>/permissions")
@require_auth
@require_permission("users", "read")
def get_permissions_route(user_id: int):
    rows = (
        db.session.query(UserPermission)
        .filter_by(user_id=user_id)
        .order_by(UserPermission.resource.asc())
        .all()
    )
    return jsonify({"items": [r.to_dict() for r in rows]})


@users_bp.get("/activities")
@require_auth
@require_permission("users", "read")
def list_activities_route():
    user_id = request.args.get("user_id", type=int)
    limit = request.args.get("limit", 100, type=int)
    limit = max(1, min(limit, 500))
    rows = activity_service.list_activities(user_id=user_id, limit=limit)
    return jsonify({"items": [r.to_dict() for r in rows]})
