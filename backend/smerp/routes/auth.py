# Overview: Flask API routes for login, logout and the current session.

"""
Authentication API routes

- Users are created by admins (POST /api/users) or the CLI (flask users create)
- Login returns a bearer token; only its SHA-256 hash is stored
- Logout revokes the presented token
"""

from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..services import session_service
from ..services import permission_service
from ..services.activity_service import record_activity
from ..extensions import db
from ..decorators import require_auth, current_context
from smerp.time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


def serialize_permissions(permissions: dict[str, set[str]]) -> dict[str, list[str]]:
    return {resource: sorted(actions) for resource, actions in sorted(permissions.items())}


@auth_bp.post("/login")
def login_route():
    """
    Authenticate user and create session token.

    Request body: {"username": "...", "password": "..."}

    Returns user info, permissions and the session token. The token must be
    sent as "Authorization: Bearer <token>" on every other route.
    """
    data = request.get_json(silent=True) or {}
    username = data.get("username")
    password = data.get("password")

    if not all([username, password]):
        return jsonify({"error": "username and password required"}), 400

    user = auth_service.authenticate(username, password)
    if not user:
        current_app.logger.info("Failed login for %s from %s", username, request.remote_addr)
        return jsonify({"error": "Invalid credentials"}), 401

    session, token = session_service.create_session(
        user_id=user.id,
        user_agent=request.headers.get("User-Agent"),
        ip_address=request.remote_addr,
    )
    record_activity(user.id, "login", f"user:{user.id}", None)
    db.session.commit()

    return jsonify({
        "user": user.to_dict(),
        "permissions": serialize_permissions(permission_service.get_user_permissions(user.id)),
        "token": token,
        "expires_at": to_utc_z(session.expires_at),
        "message": "Login successful"
    }), 200


@auth_bp.post("/logout")
@require_auth
def logout_route():
    """Revoke the presented session token."""
    token = request.headers["Authorization"].split(" ", 1)[1].strip()
    user_id = current_context().user_id

    session_service.revoke_session(token, reason="User logout")
    record_activity(user_id, "logout", f"user:{user_id}", None)
    db.session.commit()

    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    """Current user and permissions, for UI filtering."""
    ctx = current_context()
    return jsonify({
        "user": ctx.user.to_dict(),
        "permissions": serialize_permissions(ctx.permissions),
    })
